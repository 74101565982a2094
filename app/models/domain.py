"""Domain models for DeathCast Market.

This module defines all database models for the death-market wagering system.
Money columns are NUMERIC(10, 2) and are only ever handled as Decimal; odds
are NUMERIC(8, 4). Identifiers are canonical lowercase UUID strings.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONVariant = JSON().with_variant(JSONB(), "postgresql")

ID_LENGTH = 36


class MarketStatus(str, Enum):
    """Market lifecycle. Only ACTIVE -> CLOSED is ever allowed."""

    ACTIVE = "active"
    CLOSED = "closed"


class BetType(str, Enum):
    """Wagered relationship between the actual and the predicted date."""

    BEFORE = "before"
    EXACT = "exact"
    AFTER = "after"


class BetStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


class Prediction(Base):
    """
    Mortality prediction supplied by the Prediction Producer.

    Immutable once recorded: the market core reads it but never updates it.
    """

    __tablename__ = "predictions"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    cause: Mapped[str] = mapped_column(String(200), nullable=False)
    confidence: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, doc="0-100, two decimal places"
    )
    days_remaining: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_factors: Mapped[dict[str, Any] | None] = mapped_column(
        JSONVariant, nullable=True
    )
    preventable_factor: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    market: Mapped["Market | None"] = relationship(
        "Market", back_populates="prediction", uselist=False
    )

    __table_args__ = (
        Index("idx_predictions_confidence", "confidence"),
        Index("idx_predictions_subject_created", "subject_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Prediction {self.id} {self.target_date} ({self.cause})>"


class Market(Base, TimestampMixin):
    """
    Wagering pool for exactly one prediction.

    The market owns the aggregate counters (pool, bet count, odds snapshot);
    individual bets live in the ledger and are only summed, never copied.
    """

    __tablename__ = "markets"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    prediction_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("predictions.id"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MarketStatus.ACTIVE.value
    )
    total_pool: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    bet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Odds snapshot, refreshed after every accepted bet
    odds_before: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    odds_exact: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    odds_after: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)

    # Relationships
    prediction: Mapped["Prediction"] = relationship(
        "Prediction", back_populates="market"
    )
    bets: Mapped[list["Bet"]] = relationship("Bet", back_populates="market")
    settlement: Mapped["Settlement | None"] = relationship(
        "Settlement", back_populates="market", uselist=False
    )

    __table_args__ = (
        Index("idx_markets_status", "status"),
        CheckConstraint("total_pool >= 0", name="ck_markets_pool_non_negative"),
        CheckConstraint("bet_count >= 0", name="ck_markets_bet_count_non_negative"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MarketStatus.ACTIVE.value

    def odds_for(self, bet_type: BetType) -> Decimal:
        """Current payout multiplier for a bet type."""
        return {
            BetType.BEFORE: self.odds_before,
            BetType.EXACT: self.odds_exact,
            BetType.AFTER: self.odds_after,
        }[bet_type]

    def odds_dict(self) -> dict[str, Decimal]:
        return {
            BetType.BEFORE.value: self.odds_before,
            BetType.EXACT.value: self.odds_exact,
            BetType.AFTER.value: self.odds_after,
        }

    def __repr__(self) -> str:
        return f"<Market {self.id} pool={self.total_pool} status={self.status}>"


class Bet(Base):
    """
    Single wager in the append-only ledger.

    Amount, bet type and potential payout are fixed at placement. Only the
    settlement engine moves status from 'active' to 'won' or 'lost'.
    """

    __tablename__ = "bets"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    market_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("markets.id"), nullable=False
    )
    bettor_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    bet_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    odds_at_bet: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), nullable=False, doc="Multiplier the payout was priced at"
    )
    potential_payout: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=BetStatus.ACTIVE.value
    )
    placed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    market: Mapped["Market"] = relationship("Market", back_populates="bets")

    __table_args__ = (
        Index("idx_bets_market_placed", "market_id", "placed_at"),
        CheckConstraint(
            "bet_type IN ('before', 'exact', 'after')", name="ck_bets_bet_type"
        ),
        CheckConstraint(
            "amount >= 1.00 AND amount <= 10000.00", name="ck_bets_amount_range"
        ),
    )

    def __repr__(self) -> str:
        return f"<Bet {self.id} {self.bet_type} {self.amount} status={self.status}>"


class Settlement(Base):
    """
    Terminal resolution of a market against a verified outcome.

    Written once, in the same transaction that closes the market.
    """

    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    market_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("markets.id"), unique=True, nullable=False
    )
    prediction_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    actual_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_cause: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source: Mapped[str] = mapped_column(
        String(200), nullable=False, doc="Verification source reported by the oracle"
    )
    confidence: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, doc="Oracle confidence, 0-1"
    )
    winning_type: Mapped[str] = mapped_column(String(10), nullable=False)
    winners_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_owed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    resolved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    market: Mapped["Market"] = relationship("Market", back_populates="settlement")

    def __repr__(self) -> str:
        return f"<Settlement market={self.market_id} winner={self.winning_type}>"


class JobRun(Base):
    """
    Task execution audit log.

    Every scheduled task run is logged here for:
    1. Monitoring and alerting
    2. Debugging failures
    3. Performance tracking
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, doc="'running', 'success', 'failed'"
    )
    records_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONVariant, nullable=True
    )

    __table_args__ = (Index("idx_job_runs_name_started", "job_name", "started_at"),)

    def __repr__(self) -> str:
        return f"<JobRun {self.job_name} status={self.status}>"
