"""Unit tests for outcome classification and oracle payload checks."""

from datetime import date
from decimal import Decimal

import pytest

from app.models.domain import BetType
from app.services.market.errors import ErrorKind, ValidationError
from app.services.market.records import VerifiedOutcome, parse_date
from app.services.market.settlement import (
    classify_outcome,
    validate_verification_confidence,
)

TARGET = date(2030, 6, 15)


class TestClassifyOutcome:
    def test_same_day_is_exact(self):
        assert classify_outcome(TARGET, date(2030, 6, 15)) == BetType.EXACT

    def test_earlier_is_before(self):
        assert classify_outcome(TARGET, date(2030, 6, 14)) == BetType.BEFORE
        assert classify_outcome(TARGET, date(2024, 1, 1)) == BetType.BEFORE

    def test_later_is_after(self):
        assert classify_outcome(TARGET, date(2030, 6, 16)) == BetType.AFTER


class TestVerificationConfidence:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (0, Decimal("0.0000")),
            (1, Decimal("1.0000")),
            (0.95, Decimal("0.9500")),
            ("0.123456", Decimal("0.1235")),
        ],
    )
    def test_accepts_unit_interval(self, raw, expected):
        assert validate_verification_confidence(raw) == expected

    @pytest.mark.parametrize("raw", [None, "high", True, -0.01, 1.01, "NaN"])
    def test_rejects_everything_else(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            validate_verification_confidence(raw)
        assert exc_info.value.kind == ErrorKind.INVALID_VERIFICATION


class TestVerifiedOutcomePayload:
    def test_snake_case(self):
        outcome = VerifiedOutcome.from_payload(
            {
                "prediction_id": "pred_1",
                "actual_date": "2030-06-10",
                "source": "county-records",
                "confidence": 0.99,
                "cause": "Stroke",
            }
        )
        assert outcome.actual_date == date(2030, 6, 10)
        assert outcome.source == "county-records"
        assert outcome.cause == "Stroke"

    def test_camel_case_with_timestamp(self):
        outcome = VerifiedOutcome.from_payload(
            {
                "predictionId": "pred_1",
                "actualDeathDate": "2030-06-10T23:15:00Z",
                "verificationSource": "obituary",
                "confidence": "0.8",
            }
        )
        assert outcome.prediction_id == "pred_1"
        assert outcome.actual_date == date(2030, 6, 10)

    def test_missing_date(self):
        outcome = VerifiedOutcome.from_payload({"prediction_id": "p", "source": "x"})
        assert outcome.actual_date is None


class TestParseDate:
    def test_passthrough_and_empty(self):
        assert parse_date(TARGET) == TARGET
        assert parse_date(None) is None
        assert parse_date("") is None

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_date("not-a-date")
