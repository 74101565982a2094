"""Pytest configuration and fixtures for DeathCast Market tests."""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import pytest

from app.config import Settings
from app.models.base import Database
from app.services.ingestion import PredictionIngestionService
from app.services.market import MarketCore, PredictionRecord


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        redis_url="redis://localhost:6399/15",
        producer_base_url="http://producer.test",
        oracle_base_url="http://oracle.test",
        collaborator_max_retries=3,
        create_tables_on_startup=True,
    )


@pytest.fixture
def odds_config(settings):
    return settings.load_defaults_config()["market"]["odds"]


@pytest.fixture
def market_env(settings, odds_config):
    """
    Factory for a fresh (Database, MarketCore) pair with tables created.

    Usage inside a test coroutine:
        async with market_env() as (database, core): ...
    """

    @asynccontextmanager
    async def _env():
        database = Database(settings)
        await database.create_all()
        try:
            yield database, MarketCore.build(odds_config)
        finally:
            await database.dispose()

    return _env


@pytest.fixture
def prediction_record():
    """Factory for producer predictions."""

    def _record(
        prediction_id: str = "pred_1750144121240",
        target_date: date = date(2030, 6, 15),
        confidence="87.5",
        cause: str = "Cardiac arrest",
        subject_id: str = "demo-user-1750144109460",
    ) -> PredictionRecord:
        return PredictionRecord(
            prediction_id=prediction_id,
            subject_id=subject_id,
            target_date=target_date,
            cause=cause,
            confidence=Decimal(str(confidence)),
            days_remaining=1500,
            risk_factors={"smoking": "high", "exercise": "low"},
            preventable_factor="Quit smoking",
        )

    return _record


@pytest.fixture
def open_market(prediction_record):
    """Coroutine factory: record a prediction, open its market and commit."""

    async def _open(database: Database, core: MarketCore, **kwargs):
        ingestion = PredictionIngestionService(core.store)
        async with database.session() as db:
            result = await ingestion.ingest(db, prediction_record(**kwargs))
            await db.commit()
            return result.market

    return _open
