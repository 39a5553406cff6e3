"""
run_sim.py

Simulate the three demo prediction markets and write:
- reports/simulation_report.csv (one row per market)
- reports/trace.json            (one record per market per step)

Usage:
    python scripts/run_sim.py
"""

from __future__ import annotations

from pathlib import Path

from quotelab.backtest.loop import run_markets
from quotelab.logging_config import setup_logging
from quotelab.metrics.pnl import fill_price_stats
from quotelab.report import write_summary_csv, write_trace_json
from quotelab.sim.market import MarketConfig


BASE_SEED = 42
STEPS = 200

REPORTS_DIR = Path("reports")
CSV_PATH = REPORTS_DIR / "simulation_report.csv"
TRACE_PATH = REPORTS_DIR / "trace.json"


def build_markets() -> dict[str, MarketConfig]:
    markets = [
        MarketConfig("inflation_gt_20", initial_mid=0.30),
        MarketConfig("election_candidate_a", initial_mid=0.55),
        MarketConfig("team_x_wins", initial_mid=0.50),
    ]
    for m in markets:
        m.initial_spread = 0.05
        m.inventory_limit = 200.0
        m.exposure_limit = 10000.0
        m.step_count = STEPS
    return {m.market_id: m for m in markets}


def main() -> None:
    setup_logging()

    result = run_markets(build_markets(), base_seed=BASE_SEED)

    write_summary_csv(result.summaries, CSV_PATH)
    write_trace_json(result.trace, TRACE_PATH)

    print("\n=== Final market states ===")
    for s in result.summaries.values():
        print("-" * 60)
        print(s.market_id)
        print(f"mid:          {s.final_mid:.4f}")
        print(f"spread:       {s.final_spread:.4f}")
        print(f"inventory:    {s.final_inventory:.2f}")
        print(f"pnl:          {s.total_pnl:.4f}")
        print(f"fills:        {s.total_fills}")
        print(f"notional:     {s.notional:.2f}")
        print(f"fill vwap:    {fill_price_stats(result.trades[s.market_id])['vwap']:.4f}")
        print(f"max drawdown: {s.max_drawdown:.4f}")

    for market_id, msg in {**result.rejected, **result.failed}.items():
        print(f"[skipped] {market_id}: {msg}")

    total_pnl = sum(s.total_pnl for s in result.summaries.values())
    total_fills = sum(s.total_fills for s in result.summaries.values())
    worst_dd = max((s.max_drawdown for s in result.summaries.values()), default=0.0)

    print("\n=== Totals ===")
    print(f"Total PnL:    {total_pnl:.4f}")
    print(f"Total fills:  {total_fills}")
    print(f"Max drawdown: {worst_dd:.4f}")

    print(f"\nSaved: {CSV_PATH}")
    print(f"Saved: {TRACE_PATH}")


if __name__ == "__main__":
    main()
