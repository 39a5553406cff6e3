from __future__ import annotations

import zlib
from dataclasses import dataclass
from typing import Optional

import numpy as np

from quotelab.errors import ConfigError
from quotelab.types import Quote, Side


@dataclass
class FlowParams:
    """
    Synthetic taker flow: one arriving order per step.

    - side: taker buy with probability buy_prob (a buy lifts our ask)
    - size: uniform in [size_min, size_max]
    - crossing: with probability cross_base * exp(-cross_decay * spread)

    Tighter quotes cross more often; cross_decay sets how fast fill
    probability dies off as the spread widens.
    """
    buy_prob: float = 0.5
    size_min: float = 4.0
    size_max: float = 8.0
    cross_base: float = 0.9
    cross_decay: float = 10.0

    def validate(self) -> None:
        problems: list[str] = []
        if not 0.0 <= self.buy_prob <= 1.0:
            problems.append(f"buy_prob must lie in [0, 1], got {self.buy_prob}")
        if not 0.0 < self.size_min <= self.size_max:
            problems.append(f"need 0 < size_min <= size_max, got [{self.size_min}, {self.size_max}]")
        if not 0.0 <= self.cross_base <= 1.0:
            problems.append(f"cross_base must lie in [0, 1], got {self.cross_base}")
        if self.cross_decay < 0.0:
            problems.append(f"cross_decay must be >= 0, got {self.cross_decay}")
        if problems:
            raise ConfigError("flow params", problems)

    def cross_probability(self, spread: float) -> float:
        return float(self.cross_base * np.exp(-self.cross_decay * max(spread, 0.0)))


@dataclass(frozen=True)
class IncomingOrder:
    """One taker arrival and, if it crossed, the fill it implies for us."""
    taker_side: Side
    size: float
    crossed: bool
    maker_side: Optional[Side] = None   # our side of the fill
    price: Optional[float] = None       # our quoted price it hit
    fill_size: float = 0.0


def derive_seed(base_seed: int, market_id: str) -> int:
    """Stable per-market seed (does not depend on PYTHONHASHSEED or market order)."""
    ss = np.random.SeedSequence([int(base_seed), zlib.crc32(market_id.encode("utf-8"))])
    return int(ss.generate_state(1, dtype=np.uint64)[0])


class OrderFlow:
    """
    Private random stream of one market.

    Every step consumes exactly four draws in a fixed order (side, size,
    crossing, mid noise), whether or not they end up being used.
    """

    def __init__(self, params: FlowParams, seed: int) -> None:
        params.validate()
        self.p = params
        self.seed = int(seed)
        self.rng = np.random.default_rng(self.seed)

    def next_order(self, quote: Quote) -> IncomingOrder:
        u_side = self.rng.random()
        size = float(self.rng.uniform(self.p.size_min, self.p.size_max))
        u_cross = self.rng.random()

        taker_side: Side = "buy" if u_side < self.p.buy_prob else "sell"
        if u_cross >= self.p.cross_probability(quote.spread):
            return IncomingOrder(taker_side=taker_side, size=size, crossed=False)

        # Taker buy lifts our ask (we sell); taker sell hits our bid (we buy).
        if taker_side == "buy":
            maker_side: Side = "sell"
            price, available = quote.ask, quote.ask_size
        else:
            maker_side = "buy"
            price, available = quote.bid, quote.bid_size

        return IncomingOrder(
            taker_side=taker_side,
            size=size,
            crossed=True,
            maker_side=maker_side,
            price=price,
            fill_size=min(size, available),
        )

    def noise(self) -> float:
        return float(self.rng.standard_normal())
