"""Odds engine.

Derives the three-way odds triple (before / exact / after) from ledger state
so that every bet is priced against current demand rather than stale priors.

Formula, per bet type x with stake S_x in a pool of P:

    odds_x = baseline_x                              if S_x == 0
    odds_x = clamp(P / S_x, min_x, max_x)            otherwise

The baseline keeps an entry price for outcomes nobody has backed yet. The
exact-date type gets a far higher ceiling because it is the least likely
outcome. Since P >= S_x, adding stake to x can only lower or hold odds_x, and
raising P can only lift the other two types.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from app.config import get_settings
from app.models.domain import BetType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OddsTriple:
    """Payout multipliers for the three bet types."""

    before: Decimal
    exact: Decimal
    after: Decimal

    def for_type(self, bet_type: BetType) -> Decimal:
        return getattr(self, bet_type.value)

    def to_dict(self) -> dict[str, Decimal]:
        return {"before": self.before, "exact": self.exact, "after": self.after}


@dataclass(frozen=True)
class StakeSnapshot:
    """Accumulated stake per bet type, read from the ledger."""

    before: Decimal = Decimal("0")
    exact: Decimal = Decimal("0")
    after: Decimal = Decimal("0")

    @property
    def pool(self) -> Decimal:
        return self.before + self.exact + self.after

    def for_type(self, bet_type: BetType) -> Decimal:
        return getattr(self, bet_type.value)

    @classmethod
    def from_rows(cls, rows: Any) -> "StakeSnapshot":
        """Build from (bet_type, summed amount) rows."""
        stakes = {t.value: Decimal("0") for t in BetType}
        for bet_type, total in rows:
            stakes[str(bet_type)] = Decimal(str(total or 0))
        return cls(**stakes)


class OddsEngine:
    """
    Compute odds triples from pool and per-type stakes.

    Stateless apart from its configuration, so one instance is shared by
    every market.
    """

    def __init__(self, config: dict[str, Any] | None = None):
        """
        Initialize odds engine.

        Args:
            config: Optional odds configuration. If not provided,
                   loads the market.odds section of defaults.yaml
        """
        if config is None:
            config = self._load_default_config()

        self.config = config
        self.baseline = {
            BetType(k): Decimal(str(v)) for k, v in config.get("baseline", {}).items()
        }
        self.bounds = {
            BetType(k): (Decimal(str(v["min"])), Decimal(str(v["max"])))
            for k, v in config.get("bounds", {}).items()
        }
        self.quantum = Decimal(1).scaleb(-int(config.get("precision", 4)))

        self._validate_config()

    def _load_default_config(self) -> dict[str, Any]:
        """Load odds config from defaults.yaml."""
        full_config = get_settings().load_defaults_config()
        odds_config = full_config.get("market", {}).get("odds")
        if odds_config:
            return odds_config
        return self._get_fallback_config()

    def _get_fallback_config(self) -> dict[str, Any]:
        """Fallback configuration if defaults.yaml not found."""
        return {
            "baseline": {"before": "2.5", "exact": "50.0", "after": "1.8"},
            "bounds": {
                "before": {"min": "1.5", "max": "4.0"},
                "exact": {"min": "10.0", "max": "100.0"},
                "after": {"min": "1.2", "max": "3.0"},
            },
            "precision": 4,
        }

    def _validate_config(self) -> None:
        """Validate configuration covers every bet type with sane values."""
        for bet_type in BetType:
            if bet_type not in self.baseline:
                raise ValueError(f"Missing baseline odds: {bet_type.value}")
            if bet_type not in self.bounds:
                raise ValueError(f"Missing odds bounds: {bet_type.value}")
            low, high = self.bounds[bet_type]
            if low < 1 or low > high:
                raise ValueError(f"Invalid odds bounds for {bet_type.value}: {low}..{high}")
            if self.baseline[bet_type] < 1:
                raise ValueError(f"Baseline odds below 1.0: {bet_type.value}")

    @staticmethod
    def clamp(value: Decimal, min_val: Decimal, max_val: Decimal) -> Decimal:
        """Clamp value between min and max."""
        return max(min_val, min(value, max_val))

    def baseline_odds(self) -> OddsTriple:
        """Priors for a market with no bets."""
        return OddsTriple(
            before=self._quantize(self.baseline[BetType.BEFORE]),
            exact=self._quantize(self.baseline[BetType.EXACT]),
            after=self._quantize(self.baseline[BetType.AFTER]),
        )

    def odds_for_type(
        self, bet_type: BetType, pool: Decimal, stake: Decimal
    ) -> Decimal:
        """Odds for one bet type given the total pool and that type's stake."""
        if stake <= 0:
            return self._quantize(self.baseline[bet_type])
        low, high = self.bounds[bet_type]
        return self._quantize(self.clamp(pool / stake, low, high))

    def compute(self, stakes: StakeSnapshot, pool: Decimal | None = None) -> OddsTriple:
        """
        Compute a fresh odds triple.

        Args:
            stakes: Per-type stake totals from the ledger
            pool: Total pool; defaults to the sum of stakes

        Returns:
            OddsTriple with every value inside its configured range
            (or at its baseline while untested)
        """
        if pool is None:
            pool = stakes.pool

        odds = OddsTriple(
            **{
                t.value: self.odds_for_type(t, pool, stakes.for_type(t))
                for t in BetType
            }
        )
        logger.debug(
            "odds_computed",
            pool=str(pool),
            before=str(odds.before),
            exact=str(odds.exact),
            after=str(odds.after),
        )
        return odds

    def _quantize(self, value: Decimal) -> Decimal:
        return value.quantize(self.quantum, rounding=ROUND_HALF_UP)
