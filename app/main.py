"""DeathCast Market FastAPI application.

Parimutuel-style wagering on mortality predictions: markets open when the
Prediction Producer emits a prediction, take bets on before/exact/after,
and settle when the Verification Oracle reports the real outcome.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app import __version__
from app.api.routes import health, leaderboard, markets, predictions, settlements
from app.config import Settings, get_settings
from app.models.base import Database
from app.services.market import ErrorKind, InvariantViolation, MarketCore, MarketError

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around one Database handle and one MarketCore."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("starting_deathcast_market", version=__version__)
        database = Database(settings)
        if settings.create_tables_on_startup:
            await database.create_all()

        odds_config = settings.load_defaults_config().get("market", {}).get("odds")
        app.state.settings = settings
        app.state.database = database
        app.state.market_core = MarketCore.build(odds_config)
        try:
            yield
        finally:
            await database.dispose()
            logger.info("shutting_down_deathcast_market")

    app = FastAPI(
        title="DeathCast Market",
        description="Wagering markets on mortality predictions",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(predictions.router)
    app.include_router(markets.router)
    app.include_router(settlements.router)
    app.include_router(leaderboard.router)

    @app.exception_handler(MarketError)
    async def market_error_handler(request: Request, exc: MarketError):
        """Render typed rejections as {kind, reason}."""
        if isinstance(exc, InvariantViolation):
            logger.error(
                "invariant_violation_surfaced",
                path=request.url.path,
                reason=exc.reason,
                **exc.context,
            )
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                kind=exc.kind.value,
                reason=exc.reason,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies use the same {kind, reason} shape."""
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        missing = first.get("type") == "missing"
        return JSONResponse(
            status_code=422,
            content={
                "kind": (
                    ErrorKind.MISSING_FIELD if missing else ErrorKind.INVALID_REQUEST
                ).value,
                "reason": f"{location}: {first.get('msg', 'invalid request')}",
            },
        )

    return app


app = create_app()
