"""Database models for DeathCast Market."""

from app.models.base import Base, Database, get_task_session
from app.models.domain import (
    Bet,
    BetStatus,
    BetType,
    JobRun,
    Market,
    MarketStatus,
    Prediction,
    Settlement,
)

__all__ = [
    # Base
    "Base",
    "Database",
    "get_task_session",
    # Domain models
    "Prediction",
    "Market",
    "Bet",
    "Settlement",
    "JobRun",
    # Enums
    "MarketStatus",
    "BetType",
    "BetStatus",
]
