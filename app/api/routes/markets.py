"""Market and bet API endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db, get_market_core
from app.models.domain import Bet, Market, MarketStatus
from app.services.market import MarketCore, MarketStore, NotFoundError

router = APIRouter(prefix="/api/markets", tags=["markets"])


class OddsResponse(BaseModel):
    """Current payout multipliers."""

    before: Decimal
    exact: Decimal
    after: Decimal


class MarketResponse(BaseModel):
    """Market state as returned by the query endpoint."""

    id: str
    prediction_id: str
    status: str
    pool: Decimal
    bet_count: int
    odds: OddsResponse
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_market(cls, market: Market) -> "MarketResponse":
        summary = MarketStore.market_summary(market)
        return cls(
            id=summary["market_id"],
            prediction_id=summary["prediction_id"],
            status=summary["status"],
            pool=summary["pool"],
            bet_count=summary["bet_count"],
            odds=OddsResponse(**summary["odds"]),
            created_at=market.created_at,
            updated_at=market.updated_at,
        )


class MarketListResponse(BaseModel):
    """Paginated market list response."""

    items: list[MarketResponse]
    total: int
    page: int
    page_size: int


class BetRequest(BaseModel):
    """Bet submission. Values are validated by the market core, not here."""

    bettor_id: str | int
    bet_type: str
    amount: str | int = Field(
        description="Stake as a decimal string or whole number, at most two decimal places"
    )


class BetResponse(BaseModel):
    """Bet in API response."""

    id: str
    market_id: str
    bettor_id: str
    bet_type: str
    amount: Decimal
    odds_at_bet: Decimal
    potential_payout: Decimal
    status: str
    placed_at: datetime
    settled_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get("", response_model=MarketListResponse)
async def list_markets(
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
    status: MarketStatus | None = Query(None, description="Market status filter"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List markets, newest first."""
    markets, total = await core.store.list_markets(
        db, status=status, page=page, page_size=page_size
    )
    return MarketListResponse(
        items=[MarketResponse.from_market(m) for m in markets],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/by-prediction/{prediction_id}", response_model=MarketResponse)
async def get_market_for_prediction(
    prediction_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """Get the market opened for a prediction."""
    market = await core.store.get_market_for_prediction(db, prediction_id)
    return MarketResponse.from_market(market)


@router.get("/{market_id}", response_model=MarketResponse)
async def get_market(
    market_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """Current pool, bet count, odds and status of a market."""
    market = await core.store.get_market(db, market_id)
    return MarketResponse.from_market(market)


@router.get("/{market_id}/bets", response_model=list[BetResponse])
async def list_bets(
    market_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
    limit: int = Query(100, ge=1, le=1000),
):
    """Bets on a market, newest first."""
    market = await core.store.get_market(db, market_id)

    bets: list[Bet] = []
    async for bet in core.ledger.list_bets(db, market.id):
        bets.append(bet)
        if len(bets) >= limit:
            break
    return [BetResponse.model_validate(b) for b in bets]


@router.post("/{market_id}/bets", response_model=BetResponse, status_code=201)
async def place_bet(
    market_id: str,
    body: BetRequest,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """
    Place a bet.

    Returns the created bet, or a typed rejection ({kind, reason}).
    """
    bet = await core.ledger.place_bet(
        db,
        market_id=market_id,
        bettor_id=body.bettor_id,
        bet_type=body.bet_type,
        amount=body.amount,
    )
    return BetResponse.model_validate(bet)


@router.get("/{market_id}/bets/{bet_id}", response_model=BetResponse)
async def get_bet(
    market_id: str,
    bet_id: str,
    db: AsyncSession = Depends(get_db),
    core: MarketCore = Depends(get_market_core),
):
    """Get a single bet."""
    market = await core.store.get_market(db, market_id)
    bet = await core.ledger.get_bet(db, bet_id)
    if bet is None or bet.market_id != market.id:
        raise NotFoundError("Bet", bet_id)
    return BetResponse.model_validate(bet)
