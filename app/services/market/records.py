"""Records exchanged with the external collaborators.

The Prediction Producer supplies PredictionRecord; the Verification Oracle
supplies VerifiedOutcome. Both are plain dataclasses: parsing from wire
payloads happens here, bounds checking happens in the validation layer.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string (or pass a date through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text or " " in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


@dataclass
class PredictionRecord:
    """Prediction emitted by the Prediction Producer."""

    prediction_id: str
    subject_id: str
    target_date: date
    cause: str
    confidence: Decimal
    days_remaining: int | None = None
    risk_factors: dict[str, Any] = field(default_factory=dict)
    preventable_factor: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PredictionRecord":
        """Build from a producer payload (snake_case or camelCase keys)."""
        target = parse_date(payload.get("target_date", payload.get("deathDate")))
        if target is None:
            raise ValueError("prediction payload has no target date")
        return cls(
            prediction_id=str(payload.get("prediction_id", payload.get("id", ""))),
            subject_id=str(payload.get("subject_id", payload.get("userId", ""))),
            target_date=target,
            cause=str(payload.get("cause", "")),
            confidence=Decimal(str(payload.get("confidence", "0"))),
            days_remaining=payload.get("days_remaining", payload.get("daysRemaining")),
            risk_factors=payload.get("risk_factors", payload.get("riskFactors")) or {},
            preventable_factor=payload.get(
                "preventable_factor", payload.get("preventableFactor")
            ),
        )


@dataclass
class VerifiedOutcome:
    """Real-world outcome asserted by the Verification Oracle."""

    prediction_id: str
    actual_date: date | None
    source: str
    confidence: Decimal | float | str | None
    cause: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VerifiedOutcome":
        """Build from an oracle payload (snake_case or camelCase keys)."""
        return cls(
            prediction_id=str(payload.get("prediction_id", payload.get("predictionId", ""))),
            actual_date=parse_date(
                payload.get("actual_date", payload.get("actualDeathDate"))
            ),
            source=str(payload.get("source", payload.get("verificationSource", ""))),
            confidence=payload.get("confidence"),
            cause=payload.get("cause"),
        )
