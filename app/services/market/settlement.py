"""Settlement engine.

Resolves a market once the Verification Oracle reports the real outcome:

    active --(verified outcome)--> closed

The winning bet type comes from comparing the actual date with the
prediction's target date. Bets, the settlement record and the market status
change in one transaction under the same per-market lock bet placement
uses, so no bet can slip in after settlement has started.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.domain import Bet, BetStatus, BetType, Market, Prediction, Settlement
from app.services.market.errors import ConflictError, ErrorKind, NotFoundError, ValidationError
from app.services.market.ledger import BetLedger
from app.services.market.locks import MarketLockRegistry
from app.services.market.records import VerifiedOutcome
from app.services.market.store import MarketStore
from app.services.market.validation import CENTS, IdentifierKind, normalize_identifier

logger = structlog.get_logger(__name__)

CONFIDENCE_QUANTUM = Decimal("0.0001")


def classify_outcome(target_date: date, actual_date: date) -> BetType:
    """
    Decide which bet type wins.

    Exact wins only on the same calendar date; otherwise before/after by
    comparing the actual date with the predicted one.
    """
    if actual_date == target_date:
        return BetType.EXACT
    if actual_date < target_date:
        return BetType.BEFORE
    return BetType.AFTER


def validate_verification_confidence(raw: Any) -> Decimal:
    """Oracle confidence must be a number in [0, 1]."""
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        value = None
    if raw is None or isinstance(raw, bool) or value is None or not value.is_finite():
        raise ValidationError(
            ErrorKind.INVALID_VERIFICATION,
            f"Verification confidence must be a number, got {raw!r}",
            field="confidence",
        )
    if value < 0 or value > 1:
        raise ValidationError(
            ErrorKind.INVALID_VERIFICATION,
            f"Verification confidence must be within [0, 1], got {value}",
            field="confidence",
        )
    return value.quantize(CONFIDENCE_QUANTUM)


@dataclass
class SettlementResult:
    """Outcome of settling one market."""

    settlement: Settlement
    market: Market
    bets: list[Bet] = field(default_factory=list)

    @property
    def winners(self) -> list[Bet]:
        return [b for b in self.bets if b.status == BetStatus.WON.value]

    @property
    def losers(self) -> list[Bet]:
        return [b for b in self.bets if b.status == BetStatus.LOST.value]

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market.id,
            "prediction_id": self.settlement.prediction_id,
            "winning_type": self.settlement.winning_type,
            "winners": len(self.winners),
            "losers": len(self.losers),
            "total_owed": self.settlement.total_owed,
            "payouts": [
                {
                    "bet_id": b.id,
                    "bettor_id": b.bettor_id,
                    "bet_type": b.bet_type,
                    "amount": b.amount,
                    "status": b.status,
                    "owed": BetLedger.amount_owed(b),
                }
                for b in self.bets
            ],
        }


class SettlementEngine:
    """Resolve markets against verified outcomes."""

    def __init__(
        self,
        store: MarketStore,
        ledger: BetLedger,
        locks: MarketLockRegistry,
    ):
        self.store = store
        self.ledger = ledger
        self.locks = locks

    async def settle(self, db: AsyncSession, outcome: VerifiedOutcome) -> SettlementResult:
        """
        Settle the market for a verified outcome.

        Process:
        1. Validate the outcome (confidence in [0, 1], actual date present)
        2. Take the market's lock; reject if it is already closed
        3. Classify the winning bet type
        4. Resolve bets, write the settlement record, close the market, commit

        Raises:
            ValidationError: InvalidVerification
            NotFoundError: No market for the prediction
            ConflictError: AlreadyClosed (duplicate oracle delivery); no state
                changes in that case
            InvariantViolation: Aggregates disagree with the ledger
        """
        prediction_id = normalize_identifier(
            outcome.prediction_id, IdentifierKind.PREDICTION
        )
        confidence = validate_verification_confidence(outcome.confidence)
        if outcome.actual_date is None:
            raise ValidationError(
                ErrorKind.INVALID_VERIFICATION,
                "Verification has no actual date",
                field="actual_date",
            )
        source = (outcome.source or "").strip()
        if not source:
            raise ValidationError(
                ErrorKind.INVALID_VERIFICATION,
                "Verification has no source",
                field="source",
            )

        market_id = (await self.store.get_market_for_prediction(db, prediction_id)).id

        async with self.locks.hold(market_id):
            try:
                market = await self.store.get_market(db, market_id, for_update=True)
                if not market.is_active:
                    raise ConflictError(
                        ErrorKind.ALREADY_CLOSED,
                        f"Market {market_id} is already closed",
                        market_id=market_id,
                    )

                prediction = await db.get(Prediction, prediction_id)
                if prediction is None:
                    raise NotFoundError("Prediction", prediction_id)

                winning_type = classify_outcome(prediction.target_date, outcome.actual_date)

                await self.store.audit(db, market)
                resolved_at = utcnow()
                bets = await self.ledger.settle_bets(
                    db, market, winning_type, settled_at=resolved_at
                )
                winners = [b for b in bets if b.status == BetStatus.WON.value]
                total_owed = sum(
                    (b.potential_payout for b in winners), Decimal("0.00")
                ).quantize(CENTS)

                settlement = Settlement(
                    market_id=market.id,
                    prediction_id=prediction_id,
                    actual_date=outcome.actual_date,
                    actual_cause=outcome.cause,
                    source=source,
                    confidence=confidence,
                    winning_type=winning_type.value,
                    winners_count=len(winners),
                    total_owed=total_owed,
                    resolved_at=resolved_at,
                )
                db.add(settlement)
                await self.store.close_market(db, market, settlement)
                await db.commit()
            except ConflictError as e:
                await db.rollback()
                logger.warning(
                    "settlement_rejected",
                    market_id=market_id,
                    prediction_id=prediction_id,
                    kind=e.kind.value,
                )
                raise
            except BaseException:
                await db.rollback()
                raise

        logger.info(
            "market_settled",
            market_id=market.id,
            prediction_id=prediction_id,
            winning_type=winning_type.value,
            bets=len(bets),
            winners=len(winners),
            total_owed=str(total_owed),
            source=source,
        )
        return SettlementResult(settlement=settlement, market=market, bets=bets)

    async def get_settlement(self, db: AsyncSession, market_id: Any) -> Settlement:
        """Get the settlement record of a closed market."""
        market_id = normalize_identifier(market_id, IdentifierKind.MARKET)
        result = await db.execute(
            select(Settlement).where(Settlement.market_id == market_id)
        )
        settlement = result.scalar_one_or_none()
        if settlement is None:
            raise NotFoundError("Settlement for market", market_id)
        return settlement
