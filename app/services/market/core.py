"""Wiring for the market core components."""

from dataclasses import dataclass
from typing import Any

from app.services.market.ledger import BetLedger
from app.services.market.locks import MarketLockRegistry
from app.services.market.odds import OddsEngine
from app.services.market.settlement import SettlementEngine
from app.services.market.store import MarketStore


@dataclass
class MarketCore:
    """
    The market core components, built once per process.

    All of them share one lock registry, which is what serializes bet
    placement and settlement per market within the process.
    """

    odds: OddsEngine
    locks: MarketLockRegistry
    store: MarketStore
    ledger: BetLedger
    settlement: SettlementEngine

    @classmethod
    def build(cls, odds_config: dict[str, Any] | None = None) -> "MarketCore":
        odds = OddsEngine(odds_config)
        locks = MarketLockRegistry()
        store = MarketStore(odds)
        ledger = BetLedger(store, locks)
        settlement = SettlementEngine(store, ledger, locks)
        return cls(
            odds=odds,
            locks=locks,
            store=store,
            ledger=ledger,
            settlement=settlement,
        )
