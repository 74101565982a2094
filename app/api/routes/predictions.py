"""Prediction intake endpoints (Prediction Producer push)."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db, get_ingestion_service, get_market_core
from app.api.routes.markets import MarketResponse
from app.models.domain import Prediction
from app.services.ingestion import PredictionIngestionService
from app.services.market import MarketCore, NotFoundError, PredictionRecord
from app.services.market.validation import IdentifierKind, normalize_identifier

router = APIRouter(prefix="/api/predictions", tags=["predictions"])


class PredictionRequest(BaseModel):
    """Prediction as emitted by the Prediction Producer."""

    prediction_id: str
    subject_id: str
    target_date: date
    cause: str
    confidence: Decimal
    days_remaining: int | None = None
    risk_factors: dict[str, Any] | None = None
    preventable_factor: str | None = None


class PredictionResponse(BaseModel):
    """Recorded prediction."""

    id: str
    subject_id: str
    target_date: date
    cause: str
    confidence: Decimal
    days_remaining: int | None = None
    preventable_factor: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class PredictionMarketResponse(BaseModel):
    """Prediction together with its market."""

    prediction: PredictionResponse
    market: MarketResponse


@router.post("", response_model=PredictionMarketResponse, status_code=201)
async def create_prediction(
    body: PredictionRequest,
    db: AsyncSession = Depends(get_db),
    ingestion: PredictionIngestionService = Depends(get_ingestion_service),
):
    """
    Record a prediction and open its market.

    Re-delivering a prediction that already has a market is rejected with
    DuplicateMarket.
    """
    record = PredictionRecord(
        prediction_id=body.prediction_id,
        subject_id=body.subject_id,
        target_date=body.target_date,
        cause=body.cause,
        confidence=body.confidence,
        days_remaining=body.days_remaining,
        risk_factors=body.risk_factors or {},
        preventable_factor=body.preventable_factor,
    )
    result = await ingestion.ingest(db, record)
    await db.commit()

    return PredictionMarketResponse(
        prediction=PredictionResponse.model_validate(result.prediction),
        market=MarketResponse.from_market(result.market),
    )


@router.get("", response_model=PredictionMarketResponse)
async def get_latest_prediction_for_subject(
    subject_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
    ingestion: PredictionIngestionService = Depends(get_ingestion_service),
):
    """Get a subject's latest prediction and its market."""
    prediction = await ingestion.latest_for_subject(db, subject_id)
    if prediction is None:
        raise NotFoundError("Prediction for subject", subject_id)

    market = await core.store.get_market_for_prediction(db, prediction.id)
    return PredictionMarketResponse(
        prediction=PredictionResponse.model_validate(prediction),
        market=MarketResponse.from_market(market),
    )


@router.get("/{prediction_id}", response_model=PredictionMarketResponse)
async def get_prediction(
    prediction_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """Get a prediction and its market."""
    prediction_id = normalize_identifier(prediction_id, IdentifierKind.PREDICTION)
    prediction = await db.get(Prediction, prediction_id)
    if prediction is None:
        raise NotFoundError("Prediction", prediction_id)

    market = await core.store.get_market_for_prediction(db, prediction_id)
    return PredictionMarketResponse(
        prediction=PredictionResponse.model_validate(prediction),
        market=MarketResponse.from_market(market),
    )
