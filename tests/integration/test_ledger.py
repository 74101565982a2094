"""Integration tests for market creation and bet placement.

Each test runs against a fresh SQLite database.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models.domain import Bet, MarketStatus
from app.services.market.errors import (
    ConflictError,
    ErrorKind,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from app.services.market.validation import IdentifierKind, normalize_identifier


class TestMarketCreation:
    def test_new_market_has_baseline_odds(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    return stored

        market = asyncio.run(_run())
        assert market.status == MarketStatus.ACTIVE.value
        assert market.total_pool == Decimal("0.00")
        assert market.bet_count == 0
        assert market.odds_dict() == {
            "before": Decimal("2.5"),
            "exact": Decimal("50.0"),
            "after": Decimal("1.8"),
        }

    def test_one_market_per_prediction(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    with pytest.raises(ConflictError) as exc_info:
                        await core.store.create_market(db, "pred_1750144121240")
                    return market, exc_info.value

        market, error = asyncio.run(_run())
        assert error.kind == ErrorKind.DUPLICATE_MARKET
        assert market.prediction_id == normalize_identifier(
            "pred_1750144121240", IdentifierKind.PREDICTION
        )

    def test_market_requires_recorded_prediction(self, market_env):
        async def _run():
            async with market_env() as (database, core):
                async with database.session() as db:
                    await core.store.create_market(db, "pred_unknown")

        with pytest.raises(NotFoundError):
            asyncio.run(_run())

    def test_unknown_market(self, market_env):
        async def _run():
            async with market_env() as (database, core):
                async with database.session() as db:
                    await core.store.get_market(db, "no-such-market")

        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(_run())
        assert exc_info.value.status_code == 404


class TestPlaceBet:
    """Bet placement through the ledger."""

    def test_exact_bet_on_fresh_market(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    bet = await core.ledger.place_bet(
                        db, market.id, "demo-user-1", "exact", "100.00"
                    )
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                return bet, stored

        bet, market = asyncio.run(_run())
        assert bet.odds_at_bet == Decimal("50.0")
        assert bet.potential_payout == Decimal("5000.00")
        assert bet.status == "active"
        assert market.total_pool == Decimal("100.00")
        assert market.bet_count == 1
        # All stake on exact: pool / stake = 1.0, clamped up to the minimum
        assert market.odds_exact == Decimal("10.0")

    def test_three_before_bets(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                bets = []
                for bettor in ("alice", "bob", "carol"):
                    async with database.session() as db:
                        bets.append(
                            await core.ledger.place_bet(
                                db, market.id, bettor, "before", "50.00"
                            )
                        )
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                return bets, stored

        bets, market = asyncio.run(_run())
        assert market.total_pool == Decimal("150.00")
        assert market.bet_count == 3
        assert Decimal("1.5") <= market.odds_before <= Decimal("4.0")
        assert market.odds_before == Decimal("1.5")
        # Each bet keeps the odds it was priced at
        assert [b.odds_at_bet for b in bets] == [
            Decimal("2.5"),
            Decimal("1.5"),
            Decimal("1.5"),
        ]
        assert [b.potential_payout for b in bets] == [
            Decimal("125.00"),
            Decimal("75.00"),
            Decimal("75.00"),
        ]

    def test_mixed_bets_move_odds(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                for bet_type, amount in (("before", "100"), ("after", "60"), ("exact", "10")):
                    async with database.session() as db:
                        await core.ledger.place_bet(db, market.id, "x", bet_type, amount)
                async with database.session() as db:
                    return await core.store.get_market(db, market.id)

        market = asyncio.run(_run())
        assert market.total_pool == Decimal("170.00")
        assert market.odds_before == Decimal("1.7")  # 170 / 100
        assert market.odds_after == Decimal("2.8333")  # 170 / 60
        assert market.odds_exact == Decimal("17.0")  # 170 / 10

    @pytest.mark.parametrize("amount", ["1.00", "10000.00"])
    def test_boundary_amounts_accepted(self, market_env, open_market, amount):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    return await core.ledger.place_bet(db, market.id, "u", "before", amount)

        bet = asyncio.run(_run())
        assert bet.amount == Decimal(amount)

    @pytest.mark.parametrize(
        "amount,kind",
        [
            ("0.99", ErrorKind.BELOW_MINIMUM),
            ("10000.01", ErrorKind.ABOVE_MAXIMUM),
            ("0.999", ErrorKind.TOO_MANY_DECIMALS),
            ("lots", ErrorKind.NOT_A_NUMBER),
        ],
    )
    def test_invalid_amounts_leave_no_trace(self, market_env, open_market, amount, kind):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    with pytest.raises(ValidationError) as exc_info:
                        await core.ledger.place_bet(db, market.id, "u", "before", amount)
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    bets = await core.ledger.list_bets(db, market.id).all()
                return exc_info.value, stored, bets

        error, market, bets = asyncio.run(_run())
        assert error.kind == kind
        assert market.total_pool == Decimal("0.00")
        assert market.bet_count == 0
        assert bets == []

    def test_payout_ceiling(self, market_env, open_market):
        """2000 at exact baseline 50.0 would owe 100000."""

        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    with pytest.raises(ValidationError) as exc_info:
                        await core.ledger.place_bet(db, market.id, "u", "exact", "2000")
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                return exc_info.value, stored

        error, market = asyncio.run(_run())
        assert error.kind == ErrorKind.ABOVE_MAXIMUM
        assert market.bet_count == 0

    def test_invalid_bet_type(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    await core.ledger.place_bet(db, market.id, "u", "never", "10")

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(_run())
        assert exc_info.value.kind == ErrorKind.INVALID_BET_TYPE

    def test_bet_on_closed_market(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    stored.status = MarketStatus.CLOSED.value
                    await db.commit()
                async with database.session() as db:
                    with pytest.raises(ConflictError) as exc_info:
                        await core.ledger.place_bet(db, market.id, "u", "before", "10")
                async with database.session() as db:
                    bets = await core.ledger.list_bets(db, market.id).all()
                return exc_info.value, bets

        error, bets = asyncio.run(_run())
        assert error.kind == ErrorKind.MARKET_CLOSED
        assert error.status_code == 409
        assert bets == []

    def test_bettor_ids_are_canonicalized(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    return await core.ledger.place_bet(
                        db, market.id, "demo-user-1750144109460", "after", "5"
                    )

        bet = asyncio.run(_run())
        assert bet.bettor_id == normalize_identifier(
            "demo-user-1750144109460", IdentifierKind.BETTOR
        )


class TestConcurrency:
    def test_concurrent_bets_on_one_market(self, market_env, open_market):
        """Concurrent placements serialize; no update is lost."""

        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)

                async def place(i: int):
                    async with database.session() as db:
                        bet_type = ("before", "exact", "after")[i % 3]
                        return await core.ledger.place_bet(
                            db, market.id, f"bettor-{i}", bet_type, "10.00"
                        )

                bets = await asyncio.gather(*(place(i) for i in range(12)))
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    await core.store.audit(db, stored)
                return bets, stored

        bets, market = asyncio.run(_run())
        assert len({b.id for b in bets}) == 12
        assert market.bet_count == 12
        assert market.total_pool == Decimal("120.00")
        # 40 per type in a pool of 120
        assert market.odds_before == Decimal("3.0")
        assert market.odds_after == Decimal("3.0")
        assert market.odds_exact == Decimal("10.0")

    def test_cancelled_placement_leaves_no_bet(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    async with core.locks.hold(market.id):
                        task = asyncio.create_task(
                            core.ledger.place_bet(db, market.id, "u", "before", "10")
                        )
                        await asyncio.sleep(0)
                        task.cancel()
                    with pytest.raises(asyncio.CancelledError):
                        await task
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    bets = await core.ledger.list_bets(db, market.id).all()
                return stored, bets

        market, bets = asyncio.run(_run())
        assert market.bet_count == 0
        assert bets == []

    def test_cancelled_after_flush_rolls_back(self, monkeypatch, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                folded = asyncio.Event()
                never = asyncio.Event()
                flushed = []
                apply_bet = core.store.apply_bet

                async def apply_then_stall(db, market, bet):
                    await apply_bet(db, market, bet)
                    flushed.append(bet.id)
                    folded.set()
                    await never.wait()

                monkeypatch.setattr(core.store, "apply_bet", apply_then_stall)

                async with database.session() as db:
                    task = asyncio.create_task(
                        core.ledger.place_bet(db, market.id, "u", "before", "10")
                    )
                    await folded.wait()
                    task.cancel()
                    with pytest.raises(asyncio.CancelledError):
                        await task

                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    result = await db.execute(select(Bet).where(Bet.market_id == market.id))
                    return stored, list(result.scalars().all()), flushed, core

        market, bets, flushed, core = asyncio.run(_run())
        assert len(flushed) == 1
        assert bets == []
        assert market.total_pool == Decimal("0.00")
        assert market.bet_count == 0
        assert not core.locks.is_held(market.id)


class TestInvariant:
    def test_tampered_pool_is_detected(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                async with database.session() as db:
                    await core.ledger.place_bet(db, market.id, "u", "before", "10")
                async with database.session() as db:
                    stored = await core.store.get_market(db, market.id)
                    stored.total_pool = Decimal("999.00")
                    await db.commit()
                async with database.session() as db:
                    with pytest.raises(InvariantViolation) as exc_info:
                        await core.ledger.place_bet(db, market.id, "u", "before", "10")
                async with database.session() as db:
                    result = await db.execute(select(Bet).where(Bet.market_id == market.id))
                    return exc_info.value, list(result.scalars().all())

        error, bets = asyncio.run(_run())
        assert error.status_code == 500
        # The failed placement was rolled back
        assert len(bets) == 1


class TestListBets:
    def test_newest_first_and_restartable(self, market_env, open_market):
        async def _run():
            async with market_env() as (database, core):
                market = await open_market(database, core)
                for amount in ("1", "2", "3"):
                    async with database.session() as db:
                        await core.ledger.place_bet(db, market.id, "u", "after", amount)
                async with database.session() as db:
                    listing = core.ledger.list_bets(db, market.id)
                    first = [b.amount async for b in listing]
                    again = [b.amount for b in await listing.all()]
                    oldest = await core.ledger.list_bets(
                        db, market.id, newest_first=False
                    ).all()
                return first, again, [b.amount for b in oldest]

        first, again, oldest = asyncio.run(_run())
        assert first == [Decimal("3.00"), Decimal("2.00"), Decimal("1.00")]
        assert again == first
        assert oldest == list(reversed(first))
