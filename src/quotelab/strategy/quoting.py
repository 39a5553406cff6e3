from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from quotelab.errors import ConfigError
from quotelab.sim.market import MarketState
from quotelab.types import Quote, RiskState, Trade


@dataclass
class QuotingParams:
    """
    Adaptive quoting around a mean-reverting mid.

    Mid evolution (one step):
        mid' = clip(mid + reversion_rate * (0.5 - mid) + noise_sigma * z, mid_floor, mid_ceiling)

    Quote:
        center = mid - skew_coefficient * inventory / inventory_limit
        spread = clip(base_spread * (1 + imbalance_sensitivity * |imbalance|), min_spread, max_spread)
        bid, ask = center -/+ spread / 2, shifted together into [mid / 2, (1 + mid) / 2]

    max_spread is capped at 0.5, the width of that band, so the quoted
    width ask - bid always equals the spread.

    base_spread=None means "use the market's initial spread".
    """
    reversion_rate: float = 0.005
    noise_sigma: float = 0.005
    mid_floor: float = 0.01
    mid_ceiling: float = 0.99

    skew_coefficient: float = 0.02
    imbalance_sensitivity: float = 1.0
    base_spread: Optional[float] = None
    min_spread: float = 0.01
    max_spread: float = 0.5
    window_size: int = 20

    quote_size: float = 10.0

    def validate(self) -> None:
        problems: list[str] = []
        if not 0.0 < self.reversion_rate <= 1.0:
            problems.append(f"reversion_rate must lie in (0, 1], got {self.reversion_rate}")
        if self.noise_sigma < 0.0:
            problems.append(f"noise_sigma must be >= 0, got {self.noise_sigma}")
        if not 0.0 < self.mid_floor < 0.5 < self.mid_ceiling < 1.0:
            problems.append(
                f"need 0 < mid_floor < 0.5 < mid_ceiling < 1, got [{self.mid_floor}, {self.mid_ceiling}]"
            )
        if self.skew_coefficient < 0.0:
            problems.append(f"skew_coefficient must be >= 0, got {self.skew_coefficient}")
        if self.imbalance_sensitivity < 0.0:
            problems.append(f"imbalance_sensitivity must be >= 0, got {self.imbalance_sensitivity}")
        if self.base_spread is not None and self.base_spread < 0.0:
            problems.append(f"base_spread must be >= 0, got {self.base_spread}")
        if not 0.0 < self.min_spread <= self.max_spread <= 0.5:
            problems.append(f"need 0 < min_spread <= max_spread <= 0.5, got [{self.min_spread}, {self.max_spread}]")
        if self.window_size < 1:
            problems.append(f"window_size must be >= 1, got {self.window_size}")
        if self.quote_size <= 0.0:
            problems.append(f"quote_size must be > 0, got {self.quote_size}")
        if problems:
            raise ConfigError("quoting params", problems)


def order_flow_imbalance(trades: Sequence[Trade]) -> float:
    """(buy fills - sell fills) / total fills, in [-1, 1]; 0 with no fills."""
    if len(trades) == 0:
        return 0.0
    buys = sum(1 for t in trades if t.side == "buy")
    return (2 * buys - len(trades)) / len(trades)


class QuotingEngine:
    """
    Stateless quote computation.

    Everything it needs comes from the MarketState passed in (mid, inventory,
    trailing trades, risk flag); it never mutates that state.
    """

    def __init__(self, params: Optional[QuotingParams] = None) -> None:
        self.p = params or QuotingParams()
        self.p.validate()

    def next_mid(self, mid: float, z: float) -> float:
        """One mean-reversion step. `z` is a standard normal draw from the market's stream."""
        reverted = mid + self.p.reversion_rate * (0.5 - mid) + self.p.noise_sigma * z
        return float(np.clip(reverted, self.p.mid_floor, self.p.mid_ceiling))

    def spread_for(self, imbalance: float, base_spread: float) -> float:
        widened = base_spread * (1.0 + self.p.imbalance_sensitivity * abs(imbalance))
        return float(np.clip(widened, self.p.min_spread, self.p.max_spread))

    def quote(self, state: MarketState) -> Quote:
        mid = state.mid
        base = self.p.base_spread if self.p.base_spread is not None else state.config.initial_spread

        imbalance = order_flow_imbalance(state.recent_trades(self.p.window_size))
        spread = self.spread_for(imbalance, base)
        half = 0.5 * spread

        # Keep the center strictly inside the quote so bid < mid < ask.
        skew = self.p.skew_coefficient * state.inventory / state.inventory_limit
        max_shift = 0.99 * half
        skew = float(np.clip(skew, -max_shift, max_shift))
        center = mid - skew

        # A side that hits its bound pushes the other one out, so the quoted
        # width stays equal to the spread.
        lo, hi = 0.5 * mid, 0.5 * (1.0 + mid)
        bid, ask = center - half, center + half
        if bid < lo:
            bid, ask = lo, lo + spread
        elif ask > hi:
            bid, ask = hi - spread, hi
        bid, ask = max(bid, lo), min(ask, hi)

        bid_size = min(self.p.quote_size, state.headroom("buy", bid))
        ask_size = min(self.p.quote_size, state.headroom("sell", ask))
        if state.risk_state is RiskState.HALTED:
            if state.worsens("buy"):
                bid_size = 0.0
            if state.worsens("sell"):
                ask_size = 0.0

        return Quote(
            bid=float(bid),
            ask=float(ask),
            bid_size=float(bid_size),
            ask_size=float(ask_size),
            mid=mid,
            spread=spread,
            imbalance=imbalance,
        )
