from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

Side = Literal["buy", "sell"]


class RiskState(Enum):
    """Risk-control flag of one market."""
    ACTIVE = "active"
    HALTED = "halted"


def side_sign(side: Side) -> float:
    """+1 for buy (inventory goes up), -1 for sell."""
    if side == "buy":
        return 1.0
    if side == "sell":
        return -1.0
    raise ValueError(f"unknown side: {side!r}")


@dataclass(frozen=True)
class Quote:
    """Two-sided quote for one step. Sizes are 0 on a risk-limited side."""
    bid: float
    ask: float
    bid_size: float
    ask_size: float
    mid: float
    spread: float
    imbalance: float = 0.0


@dataclass(frozen=True)
class Trade:
    """Fill against the market maker's quote (side from the market's perspective)."""
    step: int
    side: Side
    price: float
    size: float
    inventory: float  # inventory after the fill
    pnl: float        # cumulative realized pnl after the fill


@dataclass(frozen=True)
class TraceRecord:
    """Per-step snapshot handed to the reporter."""
    step: int
    market_id: str
    mid: float
    bid: float
    ask: float
    bid_size: float
    ask_size: float
    inventory: float
    pnl: float
    drawdown: float
    filled: bool
    fill_side: Optional[Side] = None
    fill_price: Optional[float] = None
    fill_size: Optional[float] = None


@dataclass(frozen=True)
class MarketSummary:
    """End-of-run record for one market."""
    market_id: str
    total_pnl: float
    total_fills: int
    max_drawdown: float
    final_inventory: float
    final_mid: float
    final_spread: float = 0.0
    exposure: float = 0.0
    notional: float = 0.0
    mark_to_market: float = 0.0
