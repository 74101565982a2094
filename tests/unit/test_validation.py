"""Unit tests for the validation layer.

Amounts, payouts, identifiers and bet types are all checked here before
they can reach persistent state.
"""

import uuid
from decimal import Decimal

import pytest

from app.models.domain import BetType
from app.services.market.errors import ErrorKind, ValidationError
from app.services.market.validation import (
    MAX_BET,
    MAX_PAYOUT,
    MIN_BET,
    IdentifierKind,
    format_currency,
    normalize_identifier,
    parse_bet_type,
    validate_amount,
    validate_confidence_percentage,
    validate_payout,
)


def _kind(exc_info) -> ErrorKind:
    return exc_info.value.kind


class TestValidateAmount:
    """Bet amount validation."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1.00", Decimal("1.00")),
            ("10000.00", Decimal("10000.00")),
            (100, Decimal("100.00")),
            ("1,234.50", Decimal("1234.50")),
            (Decimal("42.1"), Decimal("42.10")),
            (0.1 + 0.9, Decimal("1.00")),
        ],
    )
    def test_accepts_valid_amounts(self, raw, expected):
        assert validate_amount(raw) == expected

    def test_result_has_two_decimal_places(self):
        assert str(validate_amount("5")) == "5.00"

    @pytest.mark.parametrize("raw", ["abc", "", None, True, "NaN", "Infinity", [1]])
    def test_not_a_number(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount(raw)
        assert _kind(exc_info) == ErrorKind.NOT_A_NUMBER

    def test_below_minimum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount("0.99")
        assert _kind(exc_info) == ErrorKind.BELOW_MINIMUM

    def test_above_maximum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount("10000.01")
        assert _kind(exc_info) == ErrorKind.ABOVE_MAXIMUM

    def test_precision_checked_before_range(self):
        """0.999 has too many decimals AND is below the minimum."""
        with pytest.raises(ValidationError) as exc_info:
            validate_amount("0.999")
        assert _kind(exc_info) == ErrorKind.TOO_MANY_DECIMALS

    def test_trailing_zeros_do_not_count_as_precision(self):
        assert validate_amount("12.5000") == Decimal("12.50")

    def test_negative_amount_below_minimum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount("-5")
        assert _kind(exc_info) == ErrorKind.BELOW_MINIMUM

    def test_rejection_is_422_with_reason(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount("0.50")
        assert exc_info.value.status_code == 422
        assert exc_info.value.to_dict() == {
            "kind": "BelowMinimum",
            "reason": "Minimum bet is $1.00",
        }

    def test_bounds_constants(self):
        assert MIN_BET == Decimal("1.00")
        assert MAX_BET == Decimal("10000.00")
        assert MAX_PAYOUT == Decimal("50000.00")


class TestValidatePayout:
    """Potential payout validation."""

    def test_rounds_half_up_to_cents(self):
        assert validate_payout(Decimal("10.005")) == Decimal("10.01")
        assert validate_payout(Decimal("10.004")) == Decimal("10.00")

    def test_ceiling_is_inclusive(self):
        assert validate_payout("50000.00") == MAX_PAYOUT

    def test_above_ceiling(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payout("50000.01")
        assert _kind(exc_info) == ErrorKind.ABOVE_MAXIMUM

    def test_negative(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payout("-1")
        assert _kind(exc_info) == ErrorKind.BELOW_MINIMUM

    def test_max_bet_at_exact_baseline_exceeds_ceiling(self):
        """10000 x 50.0 would owe 500000, far past the ceiling."""
        with pytest.raises(ValidationError):
            validate_payout(MAX_BET * Decimal("50.0"))


class TestValidateConfidencePercentage:
    def test_in_range(self):
        assert validate_confidence_percentage("87.456") == Decimal("87.46")
        assert validate_confidence_percentage(0) == Decimal("0.00")
        assert validate_confidence_percentage(100) == Decimal("100.00")

    def test_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_confidence_percentage("100.01")
        assert _kind(exc_info) == ErrorKind.ABOVE_MAXIMUM

        with pytest.raises(ValidationError) as exc_info:
            validate_confidence_percentage(-1)
        assert _kind(exc_info) == ErrorKind.BELOW_MINIMUM


class TestNormalizeIdentifier:
    """Identifier canonicalization."""

    def test_uuid_is_canonicalized(self):
        raw = "6F9619FF-8B86-D011-B42D-00CF4FC964FF"
        assert normalize_identifier(raw, IdentifierKind.MARKET) == raw.lower()

    def test_uuid_object_passes_through(self):
        value = uuid.uuid4()
        assert normalize_identifier(value, IdentifierKind.BETTOR) == str(value)

    def test_legacy_id_is_deterministic(self):
        first = normalize_identifier("demo-user-1750144109460", IdentifierKind.BETTOR)
        second = normalize_identifier("demo-user-1750144109460", "bettor")
        assert first == second
        assert str(uuid.UUID(first)) == first

    def test_legacy_id_ignores_surrounding_whitespace(self):
        assert normalize_identifier(
            "  pred_1750144121240 ", IdentifierKind.PREDICTION
        ) == normalize_identifier("pred_1750144121240", IdentifierKind.PREDICTION)

    def test_kind_separates_namespaces(self):
        as_bettor = normalize_identifier("42", IdentifierKind.BETTOR)
        as_subject = normalize_identifier("42", IdentifierKind.SUBJECT)
        assert as_bettor != as_subject

    def test_integers_are_accepted(self):
        assert normalize_identifier(42, IdentifierKind.BETTOR) == normalize_identifier(
            "42", IdentifierKind.BETTOR
        )

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_is_rejected(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_identifier(raw, IdentifierKind.MARKET)
        assert _kind(exc_info) == ErrorKind.INVALID_IDENTIFIER


class TestParseBetType:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("before", BetType.BEFORE),
            ("EXACT", BetType.EXACT),
            (" After ", BetType.AFTER),
            (BetType.EXACT, BetType.EXACT),
        ],
    )
    def test_known_types(self, raw, expected):
        assert parse_bet_type(raw) == expected

    @pytest.mark.parametrize("raw", ["sometime", "", None])
    def test_unknown_type(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_bet_type(raw)
        assert _kind(exc_info) == ErrorKind.INVALID_BET_TYPE


class TestFormatCurrency:
    def test_formats_with_grouping(self):
        assert format_currency(Decimal("1234.5")) == "$1,234.50"
        assert format_currency("50000") == "$50,000.00"

    def test_negative(self):
        assert format_currency("-3.2") == "-$3.20"

    def test_garbage(self):
        assert format_currency("abc") == "$0.00"
