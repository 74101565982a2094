"""FastAPI dependencies for DeathCast Market."""

from collections.abc import AsyncGenerator

import redis.asyncio as redis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.models.base import Database
from app.services.ingestion import PredictionIngestionService
from app.services.market import MarketCore


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_database(request: Request) -> Database:
    """The persistence handle created in the application lifespan."""
    return request.app.state.database


def get_market_core(request: Request) -> MarketCore:
    """The market core built in the application lifespan."""
    return request.app.state.market_core


def get_ingestion_service(request: Request) -> PredictionIngestionService:
    return PredictionIngestionService(request.app.state.market_core.store)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_database(request).session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_redis(request: Request) -> AsyncGenerator[redis.Redis, None]:
    """Get Redis client dependency."""
    client = redis.from_url(get_app_settings(request).redis_url)
    try:
        yield client
    finally:
        await client.aclose()
