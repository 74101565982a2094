"""Leaderboard endpoint."""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db
from app.models.domain import Market, Prediction

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


class LeaderboardEntry(BaseModel):
    """One prediction with its market headline figures."""

    prediction_id: str
    subject_id: str
    target_date: date
    cause: str
    confidence: Decimal
    market_id: str
    status: str
    pool: Decimal
    bet_count: int


@router.get("", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1, le=500),
):
    """
    Predictions ranked by confidence, then by pool size.

    Only predictions with a market are listed.
    """
    result = await db.execute(
        select(Prediction, Market)
        .join(Market, Market.prediction_id == Prediction.id)
        .order_by(
            Prediction.confidence.desc(),
            Market.total_pool.desc(),
            Prediction.id,
        )
        .limit(limit)
    )

    return [
        LeaderboardEntry(
            prediction_id=prediction.id,
            subject_id=prediction.subject_id,
            target_date=prediction.target_date,
            cause=prediction.cause,
            confidence=prediction.confidence,
            market_id=market.id,
            status=market.status,
            pool=market.total_pool,
            bet_count=market.bet_count,
        )
        for prediction, market in result.all()
    ]
