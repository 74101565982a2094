"""Market store.

Owns the per-market aggregates: total pool, bet count and the odds snapshot.
Every method works inside the caller's transaction and only flushes; the
bet ledger and the settlement engine decide when to commit.
"""

import uuid
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain import Bet, Market, MarketStatus, Prediction, Settlement
from app.services.market.errors import (
    ConflictError,
    ErrorKind,
    InvariantViolation,
    NotFoundError,
)
from app.services.market.odds import OddsEngine, StakeSnapshot
from app.services.market.validation import CENTS, IdentifierKind, normalize_identifier

logger = structlog.get_logger(__name__)


class MarketStore:
    """Create, read, update and close markets."""

    def __init__(self, odds_engine: OddsEngine):
        self.odds_engine = odds_engine

    async def create_market(self, db: AsyncSession, prediction_id: str) -> Market:
        """
        Open the market for a prediction.

        Raises:
            NotFoundError: If the prediction has not been recorded
            ConflictError: DuplicateMarket if the prediction already has one
        """
        prediction_id = normalize_identifier(prediction_id, IdentifierKind.PREDICTION)

        existing = await db.execute(
            select(Market.id).where(Market.prediction_id == prediction_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                ErrorKind.DUPLICATE_MARKET,
                f"Prediction {prediction_id} already has a market",
                prediction_id=prediction_id,
            )

        if await db.get(Prediction, prediction_id) is None:
            raise NotFoundError("Prediction", prediction_id)

        odds = self.odds_engine.baseline_odds()
        market = Market(
            id=str(uuid.uuid4()),
            prediction_id=prediction_id,
            status=MarketStatus.ACTIVE.value,
            total_pool=Decimal("0.00"),
            bet_count=0,
            odds_before=odds.before,
            odds_exact=odds.exact,
            odds_after=odds.after,
        )
        db.add(market)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with another writer for the same prediction
            raise ConflictError(
                ErrorKind.DUPLICATE_MARKET,
                f"Prediction {prediction_id} already has a market",
                prediction_id=prediction_id,
            ) from None

        logger.info("market_created", market_id=market.id, prediction_id=prediction_id)
        return market

    async def get_market(
        self,
        db: AsyncSession,
        market_id: str,
        for_update: bool = False,
    ) -> Market:
        """
        Get a market by id.

        Args:
            db: Database session
            market_id: Market identifier (canonicalized here)
            for_update: Take a row lock and refresh any cached copy

        Raises:
            NotFoundError: If no such market exists
        """
        market_id = normalize_identifier(market_id, IdentifierKind.MARKET)
        query = select(Market).where(Market.id == market_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await db.execute(query)
        market = result.scalar_one_or_none()
        if market is None:
            raise NotFoundError("Market", market_id)
        return market

    async def get_market_for_prediction(
        self, db: AsyncSession, prediction_id: str
    ) -> Market:
        """Get the market opened for a prediction."""
        prediction_id = normalize_identifier(prediction_id, IdentifierKind.PREDICTION)
        result = await db.execute(
            select(Market).where(Market.prediction_id == prediction_id)
        )
        market = result.scalar_one_or_none()
        if market is None:
            raise NotFoundError("Market for prediction", prediction_id)
        return market

    async def list_markets(
        self,
        db: AsyncSession,
        status: MarketStatus | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Market], int]:
        """List markets newest first, returning (page of markets, total count)."""
        query = select(Market)
        if status is not None:
            query = query.where(Market.status == status.value)

        count_result = await db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar() or 0

        result = await db.execute(
            query.order_by(Market.created_at.desc(), Market.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def ledger_totals(
        self, db: AsyncSession, market_id: str
    ) -> tuple[StakeSnapshot, int]:
        """Per-type stake and bet count as recorded in the ledger."""
        result = await db.execute(
            select(Bet.bet_type, func.sum(Bet.amount), func.count(Bet.id))
            .where(Bet.market_id == market_id)
            .group_by(Bet.bet_type)
        )
        rows = result.all()
        stakes = StakeSnapshot.from_rows((bet_type, total) for bet_type, total, _ in rows)
        count = sum(n for _, _, n in rows)
        return stakes, count

    async def audit(self, db: AsyncSession, market: Market) -> StakeSnapshot:
        """
        Check the market aggregates against the ledger.

        Raises:
            InvariantViolation: If pool or bet count disagree with the bets
        """
        stakes, count = await self.ledger_totals(db, market.id)
        ledger_pool = stakes.pool.quantize(CENTS)
        if market.total_pool != ledger_pool or market.bet_count != count:
            logger.error(
                "invariant_violation",
                market_id=market.id,
                pool=str(market.total_pool),
                ledger_pool=str(ledger_pool),
                bet_count=market.bet_count,
                ledger_count=count,
            )
            raise InvariantViolation(
                market.id,
                f"Market {market.id} pool/count ({market.total_pool}/{market.bet_count}) "
                f"disagrees with ledger ({ledger_pool}/{count})",
            )
        return stakes

    async def apply_bet(self, db: AsyncSession, market: Market, bet: Bet) -> Market:
        """
        Fold an appended bet into the market aggregates and refresh odds.

        The bet must already be flushed to the ledger in the same
        transaction.

        Raises:
            ConflictError: MarketClosed if the market is not active
            InvariantViolation: If the new aggregates disagree with the ledger
        """
        if not market.is_active:
            raise ConflictError(
                ErrorKind.MARKET_CLOSED,
                f"Market {market.id} is closed",
                market_id=market.id,
            )

        market.total_pool = (market.total_pool + bet.amount).quantize(CENTS)
        market.bet_count += 1

        stakes = await self.audit(db, market)
        odds = self.odds_engine.compute(stakes, pool=market.total_pool)
        market.odds_before = odds.before
        market.odds_exact = odds.exact
        market.odds_after = odds.after
        await db.flush()
        return market

    async def close_market(
        self, db: AsyncSession, market: Market, settlement: Settlement
    ) -> Market:
        """
        Close a market. Irreversible.

        Raises:
            ConflictError: AlreadyClosed if the market is not active
        """
        if not market.is_active:
            raise ConflictError(
                ErrorKind.ALREADY_CLOSED,
                f"Market {market.id} is already closed",
                market_id=market.id,
            )
        market.status = MarketStatus.CLOSED.value
        await db.flush()

        logger.info(
            "market_closed",
            market_id=market.id,
            winning_type=settlement.winning_type,
        )
        return market

    @staticmethod
    def market_summary(market: Market) -> dict[str, Any]:
        """Pool, count, odds and status for the market query endpoint."""
        return {
            "market_id": market.id,
            "prediction_id": market.prediction_id,
            "pool": market.total_pool,
            "bet_count": market.bet_count,
            "odds": market.odds_dict(),
            "status": market.status,
        }
