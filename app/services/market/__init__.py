"""Death-market wagering core."""

from app.services.market.core import MarketCore
from app.services.market.errors import (
    ConflictError,
    ErrorKind,
    InvariantViolation,
    MarketError,
    NotFoundError,
    UpstreamTimeoutError,
    ValidationError,
)
from app.services.market.ledger import BetLedger, BetListing
from app.services.market.locks import MarketLockRegistry
from app.services.market.odds import OddsEngine, OddsTriple, StakeSnapshot
from app.services.market.records import PredictionRecord, VerifiedOutcome
from app.services.market.settlement import SettlementEngine, SettlementResult, classify_outcome
from app.services.market.store import MarketStore

__all__ = [
    "MarketCore",
    "MarketStore",
    "BetLedger",
    "BetListing",
    "OddsEngine",
    "OddsTriple",
    "StakeSnapshot",
    "SettlementEngine",
    "SettlementResult",
    "classify_outcome",
    "MarketLockRegistry",
    "PredictionRecord",
    "VerifiedOutcome",
    # Errors
    "MarketError",
    "ErrorKind",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "UpstreamTimeoutError",
    "InvariantViolation",
]
