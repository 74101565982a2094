"""Settlement endpoints (Verification Oracle push)."""

from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db, get_market_core
from app.services.market import MarketCore, VerifiedOutcome

router = APIRouter(prefix="/api/settlements", tags=["settlements"])


class VerificationRequest(BaseModel):
    """Verified outcome as delivered by the Verification Oracle."""

    prediction_id: str
    actual_date: date | None = None
    cause: str | None = None
    source: str = ""
    confidence: Decimal | None = None


class PayoutResponse(BaseModel):
    """Resolution of one bet."""

    bet_id: str
    bettor_id: str
    bet_type: str
    amount: Decimal
    status: str
    owed: Decimal


class SettlementResultResponse(BaseModel):
    """Result of settling a market."""

    market_id: str
    prediction_id: str
    winning_type: str
    winners: int
    losers: int
    total_owed: Decimal
    payouts: list[PayoutResponse]


class SettlementResponse(BaseModel):
    """Stored settlement record."""

    market_id: str
    prediction_id: str
    actual_date: date
    actual_cause: str | None = None
    source: str
    confidence: Decimal
    winning_type: str
    winners_count: int
    total_owed: Decimal
    resolved_at: datetime

    class Config:
        from_attributes = True


@router.post("", response_model=SettlementResultResponse, status_code=201)
async def settle_market(
    body: VerificationRequest,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """
    Settle the market of a verified prediction.

    A second delivery for the same prediction is rejected with AlreadyClosed
    and changes nothing.
    """
    outcome = VerifiedOutcome(
        prediction_id=body.prediction_id,
        actual_date=body.actual_date,
        source=body.source,
        confidence=body.confidence,
        cause=body.cause,
    )
    result = await core.settlement.settle(db, outcome)
    return SettlementResultResponse(**result.to_dict())


@router.get("/{market_id}", response_model=SettlementResponse)
async def get_settlement(
    market_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """Get the settlement record of a closed market."""
    settlement = await core.settlement.get_settlement(db, market_id)
    return SettlementResponse.model_validate(settlement)
