"""Initial schema for DeathCast Market.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

This migration creates all the core tables for the market system:
- Predictions (immutable, supplied by the Prediction Producer)
- Markets with their pool, bet count and odds snapshot
- Bets, the append-only ledger
- Settlements, one per closed market
- JobRuns for task audit logging

The unique constraint on markets.prediction_id is what guarantees one market
per prediction.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Predictions table
    op.create_table(
        "predictions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("cause", sa.String(length=200), nullable=False),
        sa.Column("confidence", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("days_remaining", sa.Integer(), nullable=True),
        sa.Column("risk_factors", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("preventable_factor", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_predictions_confidence", "predictions", ["confidence"])
    op.create_index(
        "idx_predictions_subject_created", "predictions", ["subject_id", "created_at"]
    )

    # Markets table, one per prediction
    op.create_table(
        "markets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("prediction_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="active"),
        sa.Column(
            "total_pool",
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("bet_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("odds_before", sa.Numeric(precision=8, scale=4), nullable=False),
        sa.Column("odds_exact", sa.Numeric(precision=8, scale=4), nullable=False),
        sa.Column("odds_after", sa.Numeric(precision=8, scale=4), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["prediction_id"], ["predictions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prediction_id"),
        sa.CheckConstraint("total_pool >= 0", name="ck_markets_pool_non_negative"),
        sa.CheckConstraint("bet_count >= 0", name="ck_markets_bet_count_non_negative"),
    )
    op.create_index("idx_markets_status", "markets", ["status"])

    # Bets table (append-only ledger)
    op.create_table(
        "bets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("market_id", sa.String(length=36), nullable=False),
        sa.Column("bettor_id", sa.String(length=36), nullable=False),
        sa.Column("bet_type", sa.String(length=10), nullable=False),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("odds_at_bet", sa.Numeric(precision=8, scale=4), nullable=False),
        sa.Column("potential_payout", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="active"),
        sa.Column(
            "placed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "bet_type IN ('before', 'exact', 'after')", name="ck_bets_bet_type"
        ),
        sa.CheckConstraint(
            "amount >= 1.00 AND amount <= 10000.00", name="ck_bets_amount_range"
        ),
    )
    op.create_index("idx_bets_market_placed", "bets", ["market_id", "placed_at"])

    # Settlements table, one per closed market
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("market_id", sa.String(length=36), nullable=False),
        sa.Column("prediction_id", sa.String(length=36), nullable=False),
        sa.Column("actual_date", sa.Date(), nullable=False),
        sa.Column("actual_cause", sa.String(length=200), nullable=True),
        sa.Column("source", sa.String(length=200), nullable=False),
        sa.Column("confidence", sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column("winning_type", sa.String(length=10), nullable=False),
        sa.Column("winners_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "total_owed",
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "resolved_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["market_id"], ["markets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("market_id"),
    )

    # Job runs table
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=True, default=0),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_job_runs_name_started", "job_runs", ["job_name", "started_at"])


def downgrade() -> None:
    op.drop_index("idx_job_runs_name_started", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_table("settlements")
    op.drop_index("idx_bets_market_placed", table_name="bets")
    op.drop_table("bets")
    op.drop_index("idx_markets_status", table_name="markets")
    op.drop_table("markets")
    op.drop_index("idx_predictions_subject_created", table_name="predictions")
    op.drop_index("idx_predictions_confidence", table_name="predictions")
    op.drop_table("predictions")
