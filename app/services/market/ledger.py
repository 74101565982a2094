"""Bet ledger.

Append-only record of wagers. Placing a bet is one transaction: the bet row,
the market aggregates and the refreshed odds are committed together or not
at all.
"""

import uuid
from collections.abc import AsyncIterator
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.domain import Bet, BetStatus, BetType, Market
from app.services.market.errors import ConflictError, ErrorKind
from app.services.market.locks import MarketLockRegistry
from app.services.market.store import MarketStore
from app.services.market.validation import (
    IdentifierKind,
    normalize_identifier,
    parse_bet_type,
    validate_amount,
    validate_payout,
)

logger = structlog.get_logger(__name__)


class BetListing:
    """
    Lazy, restartable view over a market's bets.

    Nothing is queried until iteration starts, and every iteration runs a
    fresh query, so a listing can be iterated again to see newer bets.
    """

    def __init__(self, db: AsyncSession, market_id: str, newest_first: bool = True):
        self.db = db
        self.market_id = market_id
        self.newest_first = newest_first

    def query(self) -> Select:
        query = select(Bet).where(Bet.market_id == self.market_id)
        if self.newest_first:
            return query.order_by(Bet.placed_at.desc(), Bet.id.desc())
        return query.order_by(Bet.placed_at, Bet.id)

    def __aiter__(self) -> AsyncIterator[Bet]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Bet]:
        result = await self.db.execute(self.query())
        for bet in result.scalars():
            yield bet

    async def all(self) -> list[Bet]:
        return [bet async for bet in self]


class BetLedger:
    """Place, list and settle bets."""

    def __init__(self, store: MarketStore, locks: MarketLockRegistry):
        self.store = store
        self.locks = locks

    async def place_bet(
        self,
        db: AsyncSession,
        market_id: Any,
        bettor_id: Any,
        bet_type: Any,
        amount: Any,
    ) -> Bet:
        """
        Validate and record a bet, then fold it into the market.

        Process:
        1. Canonicalize identifiers, parse bet type, validate amount
        2. Take the market's lock and row lock
        3. Price the bet at current odds and validate the payout
        4. Append the bet, update pool/count/odds, commit

        The session's transaction is owned by this call: any failure, including
        cancellation, rolls back everything done on the session since the last
        commit.

        Raises:
            ValidationError: First validation failure encountered
            NotFoundError: Unknown market
            ConflictError: MarketClosed
            InvariantViolation: Aggregates disagree with the ledger
        """
        market_id = normalize_identifier(market_id, IdentifierKind.MARKET)
        bettor_id = normalize_identifier(bettor_id, IdentifierKind.BETTOR)
        bet_type = parse_bet_type(bet_type)
        amount = validate_amount(amount)

        async with self.locks.hold(market_id):
            try:
                market = await self.store.get_market(db, market_id, for_update=True)
                if not market.is_active:
                    raise ConflictError(
                        ErrorKind.MARKET_CLOSED,
                        f"Market {market_id} is closed",
                        market_id=market_id,
                    )

                odds = market.odds_for(bet_type)
                potential_payout = validate_payout(amount * odds)

                bet = Bet(
                    id=str(uuid.uuid4()),
                    market_id=market_id,
                    bettor_id=bettor_id,
                    bet_type=bet_type.value,
                    amount=amount,
                    odds_at_bet=odds,
                    potential_payout=potential_payout,
                    status=BetStatus.ACTIVE.value,
                    placed_at=utcnow(),
                )
                db.add(bet)
                await db.flush()

                await self.store.apply_bet(db, market, bet)
                await db.commit()
            except BaseException:
                # CancelledError included: no partial bet may survive
                await db.rollback()
                raise

        logger.info(
            "bet_placed",
            bet_id=bet.id,
            market_id=market_id,
            bet_type=bet_type.value,
            amount=str(amount),
            odds=str(odds),
            potential_payout=str(potential_payout),
            pool=str(market.total_pool),
            bet_count=market.bet_count,
        )
        return bet

    def list_bets(
        self, db: AsyncSession, market_id: Any, newest_first: bool = True
    ) -> BetListing:
        """List a market's bets, newest first by default. No side effects."""
        market_id = normalize_identifier(market_id, IdentifierKind.MARKET)
        return BetListing(db, market_id, newest_first=newest_first)

    async def get_bet(self, db: AsyncSession, bet_id: Any) -> Bet | None:
        """Get a bet by ID. Bet ids are UUIDs; anything else matches nothing."""
        try:
            bet_id = str(uuid.UUID(str(bet_id).strip()))
        except ValueError:
            return None
        result = await db.execute(select(Bet).where(Bet.id == bet_id))
        return result.scalar_one_or_none()

    async def settle_bets(
        self,
        db: AsyncSession,
        market: Market,
        winning_type: BetType,
        settled_at: datetime | None = None,
    ) -> list[Bet]:
        """
        Resolve every active bet on a market.

        Bets of the winning type become 'won' and are owed their recorded
        potential payout; all others become 'lost'. Runs inside the
        settlement transaction and only flushes.
        """
        settled_at = settled_at or utcnow()
        result = await db.execute(
            select(Bet)
            .where(Bet.market_id == market.id)
            .where(Bet.status == BetStatus.ACTIVE.value)
            .order_by(Bet.placed_at, Bet.id)
        )
        bets = list(result.scalars().all())

        for bet in bets:
            if bet.bet_type == winning_type.value:
                bet.status = BetStatus.WON.value
            else:
                bet.status = BetStatus.LOST.value
            bet.settled_at = settled_at

        await db.flush()
        return bets

    @staticmethod
    def amount_owed(bet: Bet) -> Decimal:
        """What the house owes on a settled bet."""
        if bet.status == BetStatus.WON.value:
            return bet.potential_payout
        return Decimal("0.00")
