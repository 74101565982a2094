"""Prediction ingestion service.

Records predictions from the Prediction Producer and opens one market per
prediction. Predictions are immutable: re-delivery of a known prediction id
never rewrites it, and a prediction that already has a market is reported as
a DuplicateMarket conflict.
"""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain import Market, Prediction
from app.services.market.errors import ConflictError, ErrorKind, ValidationError
from app.services.market.records import PredictionRecord
from app.services.market.store import MarketStore
from app.services.market.validation import (
    IdentifierKind,
    normalize_identifier,
    validate_confidence_percentage,
)

logger = structlog.get_logger(__name__)


@dataclass
class IngestResult:
    """A recorded prediction and the market opened for it."""

    prediction: Prediction
    market: Market
    prediction_created: bool


class PredictionIngestionService:
    """
    Turn producer predictions into open markets.

    The service flushes but does not commit; callers own the transaction.
    """

    def __init__(self, store: MarketStore):
        self.store = store

    async def ingest(self, db: AsyncSession, record: PredictionRecord) -> IngestResult:
        """
        Record one prediction and open its market.

        Raises:
            ValidationError: Bad identifiers, confidence or cause
            ConflictError: DuplicateMarket if the prediction already has a market
        """
        prediction_id = normalize_identifier(record.prediction_id, IdentifierKind.PREDICTION)
        subject_id = normalize_identifier(record.subject_id, IdentifierKind.SUBJECT)
        confidence = validate_confidence_percentage(record.confidence)
        cause = (record.cause or "").strip()
        if not cause:
            raise ValidationError(
                ErrorKind.MISSING_FIELD, "Prediction has no cause", field="cause"
            )

        prediction = await db.get(Prediction, prediction_id)
        created = prediction is None
        if created:
            prediction = Prediction(
                id=prediction_id,
                subject_id=subject_id,
                target_date=record.target_date,
                cause=cause[:200],
                confidence=confidence,
                days_remaining=(
                    max(0, int(record.days_remaining))
                    if record.days_remaining is not None
                    else None
                ),
                risk_factors=record.risk_factors or None,
                preventable_factor=record.preventable_factor,
            )
            db.add(prediction)
            await db.flush()
            logger.info(
                "prediction_recorded",
                prediction_id=prediction_id,
                target_date=record.target_date.isoformat(),
                confidence=str(confidence),
            )

        market = await self.store.create_market(db, prediction_id)
        return IngestResult(prediction=prediction, market=market, prediction_created=created)

    async def latest_for_subject(
        self, db: AsyncSession, subject_id: str
    ) -> Prediction | None:
        """Most recently recorded prediction for a subject, or None."""
        subject_id = normalize_identifier(subject_id, IdentifierKind.SUBJECT)
        result = await db.execute(
            select(Prediction)
            .where(Prediction.subject_id == subject_id)
            .order_by(Prediction.created_at.desc(), Prediction.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def ingest_many(
        self, db: AsyncSession, records: list[PredictionRecord]
    ) -> dict[str, Any]:
        """
        Ingest a batch of predictions and commit.

        Rejected and duplicate records are counted and logged; they do not
        stop the batch. Everything else propagates and aborts the batch.

        Returns:
            Dict with counts of what happened
        """
        stats = {
            "received": len(records),
            "predictions_recorded": 0,
            "markets_opened": 0,
            "duplicates": 0,
            "rejected": 0,
        }

        try:
            for record in records:
                try:
                    result = await self.ingest(db, record)
                except ConflictError:
                    stats["duplicates"] += 1
                    logger.debug("prediction_duplicate", prediction_id=record.prediction_id)
                    continue
                except ValidationError as e:
                    stats["rejected"] += 1
                    logger.warning(
                        "prediction_rejected",
                        prediction_id=record.prediction_id,
                        kind=e.kind.value,
                        reason=e.reason,
                    )
                    continue

                stats["markets_opened"] += 1
                if result.prediction_created:
                    stats["predictions_recorded"] += 1

            await db.commit()
        except Exception as e:
            logger.error("prediction_ingestion_failed", error=str(e))
            await db.rollback()
            raise

        logger.info("prediction_ingestion_complete", **stats)
        return stats
