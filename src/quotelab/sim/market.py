from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from typing import Optional

import numpy as np

from quotelab.errors import ConfigError, InvariantViolation
from quotelab.types import MarketSummary, RiskState, Side, Trade, side_sign

logger = logging.getLogger(__name__)

# Positions and exposures this close to a bound count as at the bound.
LIMIT_TOL = 1e-9


def _finite(x) -> bool:
    """Real, non-bool and finite; anything else (None, str, nan) is a config problem."""
    return isinstance(x, numbers.Real) and not isinstance(x, bool) and bool(np.isfinite(x))


def _whole(x) -> bool:
    return _finite(x) and float(x).is_integer()


@dataclass
class MarketConfig:
    """
    Initial configuration of one binary-outcome market.

    Prices are probabilities in (0, 1). Limits are absolute:
    - inventory_limit bounds |inventory| (contracts)
    - exposure_limit bounds the cost basis of the open position
    """
    market_id: str
    initial_mid: float = 0.5
    initial_spread: float = 0.05
    inventory_limit: float = 200.0
    exposure_limit: float = 10000.0
    step_count: int = 200
    seed: Optional[int] = None

    def problems(self) -> list[str]:
        out: list[str] = []
        if not isinstance(self.market_id, str) or not self.market_id:
            out.append(f"market_id must be a non-empty string, got {self.market_id!r}")
        if not _finite(self.initial_mid) or not 0.0 < self.initial_mid < 1.0:
            out.append(f"initial_mid must lie in (0, 1), got {self.initial_mid!r}")
        if not _finite(self.initial_spread) or self.initial_spread < 0.0:
            out.append(f"initial_spread must be >= 0, got {self.initial_spread!r}")
        if not _finite(self.inventory_limit) or self.inventory_limit <= 0.0:
            out.append(f"inventory_limit must be > 0, got {self.inventory_limit!r}")
        if not _finite(self.exposure_limit) or self.exposure_limit <= 0.0:
            out.append(f"exposure_limit must be > 0, got {self.exposure_limit!r}")
        if not _whole(self.step_count) or self.step_count <= 0:
            out.append(f"step_count must be a positive integer, got {self.step_count!r}")
        if self.seed is not None and (not _whole(self.seed) or self.seed < 0):
            out.append(f"seed must be a non-negative integer, got {self.seed!r}")
        return out

    def validate(self) -> None:
        found = self.problems()
        if found:
            raise ConfigError(f"market {self.market_id!r}", found)


class MarketState:
    """
    Mutable trading state of one market.

    Only two operations mutate it:
    - apply_fill(): clamp to risk headroom, then book the fill
    - advance(): move the mid price

    Accounting uses average cost. Realized pnl changes only when a fill
    reduces the open position; exposure is the cost basis of that position,
    so it moves only with fills.
    """

    def __init__(self, config: MarketConfig) -> None:
        config.validate()
        self.config = config
        self._mid = float(config.initial_mid)
        self._spread = float(config.initial_spread)
        self._inventory = 0.0
        self._avg_entry = 0.0
        self._cash = 0.0
        self._pnl = 0.0
        self._peak_pnl = 0.0
        self._drawdown = 0.0
        self._max_drawdown = 0.0
        self._notional = 0.0
        self._trades: list[Trade] = []
        self._risk = RiskState.ACTIVE

    # -- read-only view -------------------------------------------------

    @property
    def market_id(self) -> str:
        return self.config.market_id

    @property
    def mid(self) -> float:
        return self._mid

    @property
    def spread(self) -> float:
        return self._spread

    @property
    def inventory(self) -> float:
        return self._inventory

    @property
    def inventory_limit(self) -> float:
        return float(self.config.inventory_limit)

    @property
    def exposure_limit(self) -> float:
        return float(self.config.exposure_limit)

    @property
    def avg_entry(self) -> float:
        return self._avg_entry

    @property
    def exposure(self) -> float:
        return abs(self._inventory) * self._avg_entry

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def pnl(self) -> float:
        return self._pnl

    @property
    def peak_pnl(self) -> float:
        return self._peak_pnl

    @property
    def drawdown(self) -> float:
        return self._drawdown

    @property
    def max_drawdown(self) -> float:
        return self._max_drawdown

    @property
    def notional(self) -> float:
        return self._notional

    @property
    def mark_to_market(self) -> float:
        return self._cash + self._inventory * self._mid

    @property
    def trades(self) -> tuple[Trade, ...]:
        return tuple(self._trades)

    @property
    def fill_count(self) -> int:
        return len(self._trades)

    @property
    def risk_state(self) -> RiskState:
        return self._risk

    def recent_trades(self, n: int) -> list[Trade]:
        if n <= 0:
            return []
        return self._trades[-n:]

    def worsens(self, side: Side) -> bool:
        """True if a fill on `side` would grow |inventory| (or open from flat)."""
        return side_sign(side) * self._inventory >= 0.0

    def headroom(self, side: Side, price: Optional[float] = None) -> float:
        """
        Largest size (contracts) a fill on `side` at `price` may have right now.

        Exposure is a cost basis, so its remaining room is converted to
        contracts at the fill price; `price` defaults to the current mid.
        Growing fills are bounded by
            min(inventory_limit - |inventory|, (exposure_limit - exposure) / price)
        Reducing fills may close the whole position and then open the other
        way, bounded as if starting flat.
        """
        px = self._mid if price is None else float(price)
        if self.worsens(side):
            room = min(self.inventory_limit - abs(self._inventory), (self.exposure_limit - self.exposure) / px)
            return max(0.0, room)
        return abs(self._inventory) + min(self.inventory_limit, self.exposure_limit / px)

    # -- mutation -------------------------------------------------------

    def apply_fill(self, side: Side, price: float, size: float, step: int) -> Optional[Trade]:
        """
        Book one fill at `price`, clamped to the remaining risk headroom.

        Returns the recorded Trade, or None when nothing (or less than
        LIMIT_TOL contracts) could be filled.
        """
        sign = side_sign(side)
        if not np.isfinite(price) or not 0.0 < price < 1.0:
            raise ValueError(f"fill price must lie in (0, 1), got {price}")
        if not np.isfinite(size) or size < 0.0:
            raise ValueError(f"fill size must be finite and >= 0, got {size}")

        qty = min(float(size), self.headroom(side, price))
        # Room left over from float rounding is not a tradable size.
        if qty <= LIMIT_TOL:
            return None

        inv = self._inventory
        avg = self._avg_entry
        pnl = self._pnl
        new_inv = inv + sign * qty

        if inv * sign < 0.0:
            closed = min(qty, abs(inv))
            direction = 1.0 if inv > 0.0 else -1.0
            pnl += closed * (price - avg) * direction
            if qty > abs(inv):
                avg = float(price)
        else:
            avg = (abs(inv) * avg + qty * price) / abs(new_inv)

        if abs(new_inv) <= LIMIT_TOL:
            new_inv, avg = 0.0, 0.0
        elif abs(new_inv) >= self.inventory_limit - LIMIT_TOL:
            new_inv = float(np.copysign(self.inventory_limit, new_inv))

        self._inventory = new_inv
        self._avg_entry = avg
        self._cash -= sign * qty * price
        self._notional += qty * price
        self._pnl = pnl
        self._peak_pnl = max(self._peak_pnl, pnl)
        self._drawdown = self._peak_pnl - pnl
        self._max_drawdown = max(self._max_drawdown, self._drawdown)

        trade = Trade(step=step, side=side, price=float(price), size=qty, inventory=new_inv, pnl=pnl)
        self._trades.append(trade)
        self._refresh_risk(step)
        return trade

    def advance(self, mid: float, step: int, spread: Optional[float] = None) -> None:
        """Move the mid price (and record the spread quoted this step)."""
        if not np.isfinite(mid) or not 0.0 < mid < 1.0:
            raise InvariantViolation(self.market_id, step, f"mid escaped (0, 1): {mid}")
        if spread is not None:
            if not np.isfinite(spread) or spread < 0.0:
                raise InvariantViolation(self.market_id, step, f"spread must be finite and >= 0: {spread}")
            self._spread = float(spread)
        self._mid = float(mid)
        self._refresh_risk(step)

    def _refresh_risk(self, step: int) -> None:
        at_bound = (
            abs(self._inventory) >= self.inventory_limit - LIMIT_TOL
            or self.exposure >= self.exposure_limit - LIMIT_TOL
        )
        new = RiskState.HALTED if at_bound else RiskState.ACTIVE
        if new is not self._risk:
            logger.debug(
                "%s step %d: risk %s -> %s (inventory=%.4f exposure=%.4f)",
                self.market_id, step, self._risk.value, new.value, self._inventory, self.exposure,
            )
            self._risk = new

    def summary(self) -> MarketSummary:
        return MarketSummary(
            market_id=self.market_id,
            total_pnl=self._pnl,
            total_fills=self.fill_count,
            max_drawdown=self._max_drawdown,
            final_inventory=self._inventory,
            final_mid=self._mid,
            final_spread=self._spread,
            exposure=self.exposure,
            notional=self._notional,
            mark_to_market=self.mark_to_market,
        )
