from __future__ import annotations

from typing import Sequence

import numpy as np

from quotelab.types import Trade, TraceRecord


def drawdown_series(pnl: Sequence[float]) -> np.ndarray:
    """
    Peak-to-current decline at every observation.

    The running peak starts at 0 (pnl before the first fill), so an
    initial loss already counts as drawdown.
    """
    x = np.asarray(pnl, dtype=float)
    if x.size == 0:
        return x
    peak = np.maximum.accumulate(np.maximum(x, 0.0))
    return peak - x


def max_drawdown(pnl: Sequence[float]) -> float:
    dd = drawdown_series(pnl)
    return float(dd.max()) if dd.size > 0 else 0.0


def fill_price_stats(trades: Sequence[Trade]) -> dict[str, float]:
    """Size-weighted and plain stats over executed prices."""
    if len(trades) == 0:
        return {"vwap": float("nan"), "avg": float("nan"), "min": float("nan"), "max": float("nan")}

    qty = np.array([t.size for t in trades], dtype=float)
    px = np.array([t.price for t in trades], dtype=float)
    return {
        "vwap": float(np.sum(qty * px) / np.sum(qty)),
        "avg": float(px.mean()),
        "min": float(px.min()),
        "max": float(px.max()),
    }


def trace_stats(trace: Sequence[TraceRecord]) -> dict[str, float]:
    """Quoting behaviour over one market's trace."""
    if len(trace) == 0:
        return {"fill_rate": float("nan"), "mean_spread": float("nan"), "one_sided_share": float("nan")}

    filled = np.array([r.filled for r in trace], dtype=bool)
    spread = np.array([r.ask - r.bid for r in trace], dtype=float)
    one_sided = np.array([(r.bid_size == 0.0) != (r.ask_size == 0.0) for r in trace], dtype=bool)
    return {
        "fill_rate": float(filled.mean()),
        "mean_spread": float(spread.mean()),
        "one_sided_share": float(one_sided.mean()),
    }
