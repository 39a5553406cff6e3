# scripts/run_seed_grid.py
"""
Seed and spread-sensitivity sweep for one market.

We sweep:
- seed (order-flow realisation)
- imbalance_sensitivity (how hard one-sided flow widens the spread)

and record pnl, fills, drawdown and quoting stats per run in
reports/seed_grid.csv.
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np
import pandas as pd

from quotelab.backtest.loop import run_market
from quotelab.metrics.pnl import trace_stats
from quotelab.sim.market import MarketConfig
from quotelab.strategy.quoting import QuotingParams


# -----------------------------
# Experiment configuration
# -----------------------------
SEEDS = list(range(50))
SENSITIVITIES = [0.0, 0.5, 1.0, 2.0, 4.0]

MID0 = 0.30
SPREAD0 = 0.05
STEPS = 200

OUT_CSV = "reports/seed_grid.csv"


def ensure_reports_dir() -> None:
    import os
    os.makedirs("reports", exist_ok=True)


def summarize(x: List[float]) -> Dict[str, float]:
    a = np.asarray(x, dtype=float)
    a = a[np.isfinite(a)]
    if a.size == 0:
        return {"mean": float("nan"), "p10": float("nan"), "p50": float("nan"), "p90": float("nan")}
    return {
        "mean": float(a.mean()),
        "p10": float(np.quantile(a, 0.10)),
        "p50": float(np.quantile(a, 0.50)),
        "p90": float(np.quantile(a, 0.90)),
    }


def main() -> None:
    ensure_reports_dir()

    rows: List[Dict[str, float]] = []
    for sens in SENSITIVITIES:
        qp = QuotingParams(imbalance_sensitivity=float(sens))
        for seed in SEEDS:
            cfg = MarketConfig("grid", initial_mid=MID0, initial_spread=SPREAD0, step_count=STEPS, seed=seed)
            run = run_market(cfg, quoting=qp)
            stats = trace_stats(run.trace)
            rows.append({
                "imbalance_sensitivity": float(sens),
                "seed": seed,
                "total_pnl": run.summary.total_pnl,
                "total_fills": run.summary.total_fills,
                "max_drawdown": run.summary.max_drawdown,
                "final_inventory": run.summary.final_inventory,
                "mark_to_market": run.summary.mark_to_market,
                **stats,
            })

    df = pd.DataFrame(rows).sort_values(["imbalance_sensitivity", "seed"]).reset_index(drop=True)
    df.to_csv(OUT_CSV, index=False)

    print("\n=== Seed grid summary ===")
    for sens, grp in df.groupby("imbalance_sensitivity"):
        print("-" * 60)
        print(f"imbalance_sensitivity={sens:.2f}")
        print(f"PnL stats      : {summarize(grp['total_pnl'].tolist())}")
        print(f"Drawdown stats : {summarize(grp['max_drawdown'].tolist())}")
        print(f"Mean fill rate : {grp['fill_rate'].mean():.3f}")
        print(f"Mean spread    : {grp['mean_spread'].mean():.4f}")

    print(f"\nSaved: {OUT_CSV}")


if __name__ == "__main__":
    main()
