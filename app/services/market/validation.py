"""Validation layer for the market core.

Everything supplied from outside (amounts, payouts, identifiers, bet types)
passes through here before it can reach persistent state. Monetary values are
stored as NUMERIC(10, 2), so the bounds below keep every amount and payout
inside that format.

Identifier canonicalization: callers may send proper UUIDs or legacy/demo
identifiers such as ``demo-user-1750144109460`` or ``pred_1750144121240``.
A value that parses as a UUID is returned in canonical lowercase form; any
other value is mapped with UUIDv5 under a fixed namespace per identifier
kind, so the same input always refers to the same entity.
"""

import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from app.models.domain import BetType
from app.services.market.errors import ErrorKind, ValidationError

MIN_BET = Decimal("1.00")
MAX_BET = Decimal("10000.00")
MAX_PAYOUT = Decimal("50000.00")
DECIMAL_PLACES = 2

CENTS = Decimal("0.01")


class IdentifierKind(str, Enum):
    SUBJECT = "subject"
    MARKET = "market"
    PREDICTION = "prediction"
    BETTOR = "bettor"


# Namespaces for deriving canonical ids from non-UUID input. Changing any of
# these re-keys every legacy identifier.
_ID_ROOT_NAMESPACE = uuid.UUID("5f0c6b1e-8d7a-4c1b-9a55-3d2f6e4b7a10")
_ID_NAMESPACES = {
    kind: uuid.uuid5(_ID_ROOT_NAMESPACE, kind.value) for kind in IdentifierKind
}


def _parse_decimal(raw: Any, field: str) -> Decimal:
    """Parse a raw value into a finite Decimal or raise NotANumber."""
    if raw is None or isinstance(raw, bool):
        raise ValidationError(
            ErrorKind.NOT_A_NUMBER, f"{field} must be a valid number", field=field
        )
    if isinstance(raw, Decimal):
        value = raw
    else:
        # str() keeps floats at their shortest repr (0.1 -> "0.1")
        text = str(raw).strip().replace(",", "")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise ValidationError(
                ErrorKind.NOT_A_NUMBER,
                f"{field} must be a valid number, got {raw!r}",
                field=field,
            ) from None
    if not value.is_finite():
        raise ValidationError(
            ErrorKind.NOT_A_NUMBER, f"{field} must be a finite number", field=field
        )
    return value


def _decimal_places(value: Decimal) -> int:
    """Fractional digits that carry information (1.500 has one)."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def validate_amount(raw: Any) -> Decimal:
    """
    Validate a bet amount.

    Precision is checked before range, so 0.999 fails with TooManyDecimals
    rather than BelowMinimum.

    Returns:
        The amount quantized to two decimal places.

    Raises:
        ValidationError: NotANumber, TooManyDecimals, BelowMinimum or
            AboveMaximum.
    """
    value = _parse_decimal(raw, "amount")

    if _decimal_places(value) > DECIMAL_PLACES:
        raise ValidationError(
            ErrorKind.TOO_MANY_DECIMALS,
            f"Amount can only have {DECIMAL_PLACES} decimal places",
            field="amount",
        )
    if value < MIN_BET:
        raise ValidationError(
            ErrorKind.BELOW_MINIMUM,
            f"Minimum bet is {format_currency(MIN_BET)}",
            field="amount",
        )
    if value > MAX_BET:
        raise ValidationError(
            ErrorKind.ABOVE_MAXIMUM,
            f"Maximum bet is {format_currency(MAX_BET)}",
            field="amount",
        )
    return value.quantize(CENTS)


def validate_payout(raw: Any) -> Decimal:
    """
    Validate a potential payout.

    The payout ceiling is separate from the bet ceiling: it bounds the
    worst-case liability of a single bet regardless of the odds it got.
    """
    value = _parse_decimal(raw, "payout").quantize(CENTS, rounding=ROUND_HALF_UP)

    if value < 0:
        raise ValidationError(
            ErrorKind.BELOW_MINIMUM, "Payout cannot be negative", field="payout"
        )
    if value > MAX_PAYOUT:
        raise ValidationError(
            ErrorKind.ABOVE_MAXIMUM,
            f"Maximum payout is {format_currency(MAX_PAYOUT)}",
            field="payout",
        )
    return value


def validate_confidence_percentage(raw: Any) -> Decimal:
    """Validate a prediction confidence: 0-100, rounded to two places."""
    value = _parse_decimal(raw, "confidence").quantize(CENTS, rounding=ROUND_HALF_UP)
    if value < 0:
        raise ValidationError(
            ErrorKind.BELOW_MINIMUM, "Confidence cannot be negative", field="confidence"
        )
    if value > 100:
        raise ValidationError(
            ErrorKind.ABOVE_MAXIMUM, "Confidence cannot exceed 100", field="confidence"
        )
    return value


def normalize_identifier(raw: Any, kind: IdentifierKind | str) -> str:
    """
    Canonicalize an externally supplied identifier.

    Pure and deterministic: the same (raw, kind) always yields the same id.
    """
    kind = IdentifierKind(kind)
    if raw is None:
        raise ValidationError(
            ErrorKind.INVALID_IDENTIFIER,
            f"{kind.value} id is required",
            field=f"{kind.value}_id",
        )
    if isinstance(raw, uuid.UUID):
        return str(raw)

    text = str(raw).strip()
    if not text:
        raise ValidationError(
            ErrorKind.INVALID_IDENTIFIER,
            f"{kind.value} id cannot be blank",
            field=f"{kind.value}_id",
        )
    try:
        return str(uuid.UUID(text))
    except ValueError:
        return str(uuid.uuid5(_ID_NAMESPACES[kind], text))


def parse_bet_type(raw: Any) -> BetType:
    """Parse a bet type, case-insensitively."""
    if isinstance(raw, BetType):
        return raw
    try:
        return BetType(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in BetType)
        raise ValidationError(
            ErrorKind.INVALID_BET_TYPE,
            f"Bet type must be one of {allowed}, got {raw!r}",
            field="bet_type",
        ) from None


def format_currency(amount: Any) -> str:
    """Format an amount for display, e.g. Decimal('1234.5') -> '$1,234.50'."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return "$0.00"
    if not value.is_finite():
        return "$0.00"
    value = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
