"""Error taxonomy for the market core.

Every rejection carries a stable ``kind`` string and a human-readable
``reason``. The HTTP layer renders both; Celery tasks use ``retryable`` to
decide whether to back off and try again.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable error kind strings exposed to callers."""

    # Validation
    NOT_A_NUMBER = "NotANumber"
    BELOW_MINIMUM = "BelowMinimum"
    ABOVE_MAXIMUM = "AboveMaximum"
    TOO_MANY_DECIMALS = "TooManyDecimals"
    INVALID_IDENTIFIER = "InvalidIdentifier"
    INVALID_BET_TYPE = "InvalidBetType"
    INVALID_VERIFICATION = "InvalidVerification"
    MISSING_FIELD = "MissingField"
    INVALID_REQUEST = "InvalidRequest"
    # Conflict
    DUPLICATE_MARKET = "DuplicateMarket"
    MARKET_CLOSED = "MarketClosed"
    ALREADY_CLOSED = "AlreadyClosed"
    # Other
    NOT_FOUND = "NotFound"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    INVARIANT_VIOLATION = "InvariantViolation"


class MarketError(Exception):
    """Base class for all market core errors."""

    status_code = 400

    def __init__(
        self,
        kind: ErrorKind,
        reason: str,
        retryable: bool = False,
        **context: Any,
    ):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason
        self.retryable = retryable
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation of a rejection."""
        return {"kind": self.kind.value, "reason": self.reason}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind.value}: {self.reason}>"


class ValidationError(MarketError):
    """Malformed or out-of-range input. The caller can resubmit corrected input."""

    status_code = 422


class ConflictError(MarketError):
    """Duplicate market or closed market. Retrying the same call cannot succeed."""

    status_code = 409


class NotFoundError(MarketError):
    """Unknown market, bet, prediction or settlement."""

    status_code = 404

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            ErrorKind.NOT_FOUND,
            f"{entity} {identifier} not found",
            entity=entity,
            identifier=identifier,
        )


class UpstreamTimeoutError(MarketError):
    """Prediction Producer or Verification Oracle unreachable. Safe to retry."""

    status_code = 503

    def __init__(self, collaborator: str, reason: str):
        super().__init__(
            ErrorKind.UPSTREAM_TIMEOUT,
            f"{collaborator}: {reason}",
            retryable=True,
            collaborator=collaborator,
        )


class InvariantViolation(MarketError):
    """
    Internal aggregate mismatch (e.g. pool != sum of bets).

    Fatal for the affected market: the transaction is aborted and the error
    surfaces for manual inspection. It is never corrected automatically.
    """

    status_code = 500

    def __init__(self, market_id: str, reason: str):
        super().__init__(
            ErrorKind.INVARIANT_VIOLATION,
            reason,
            market_id=market_id,
        )
