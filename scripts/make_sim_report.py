"""
make_sim_report.py

Build a markdown report + per-market figures from the simulation artifacts:
- reports/simulation_report.csv
- reports/trace.json

For every market we plot:
- quoted bid/ask around the mid
- inventory against its limit
- realized pnl and drawdown

and write reports/SIM_REPORT.md.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from quotelab.report import SUMMARY_COLUMNS, read_trace_json


REPORTS_DIR = Path("reports")
FIG_DIR = REPORTS_DIR / "figures"
CSV_PATH = REPORTS_DIR / "simulation_report.csv"
TRACE_PATH = REPORTS_DIR / "trace.json"
OUT_MD = REPORTS_DIR / "SIM_REPORT.md"


def _load() -> tuple[pd.DataFrame, pd.DataFrame]:
    for p in (CSV_PATH, TRACE_PATH):
        if not p.exists():
            raise FileNotFoundError(f"Missing {p}. Run scripts/run_sim.py first.")

    summary = pd.read_csv(CSV_PATH)
    missing = [c for c in SUMMARY_COLUMNS if c not in summary.columns]
    if missing:
        raise ValueError(
            "simulation_report.csv is missing expected columns:\n"
            f"- Missing: {missing}\n"
            f"- Available: {list(summary.columns)}\n"
        )

    trace = read_trace_json(TRACE_PATH)
    return summary, trace


def _plot_market(market_id: str, tr: pd.DataFrame, out_path: Path) -> None:
    tr = tr.sort_values("step")
    steps = tr["step"].to_numpy()

    fig, axes = plt.subplots(3, 1, figsize=(10, 9), sharex=True)

    ax = axes[0]
    ax.plot(steps, tr["mid"], label="mid", color="black", linewidth=1.0)
    ax.plot(steps, tr["bid"], label="bid", linewidth=0.8)
    ax.plot(steps, tr["ask"], label="ask", linewidth=0.8)
    fills = tr[tr["filled"]]
    ax.scatter(fills["step"], fills["fill_price"], s=8, color="tab:red", label="fills", zorder=3)
    ax.set_ylabel("price")
    ax.set_title(f"{market_id}: quotes")
    ax.legend(loc="best", fontsize=8)

    ax = axes[1]
    ax.step(steps, tr["inventory"], where="post")
    ax.axhline(0.0, color="grey", linewidth=0.5)
    ax.set_ylabel("inventory")

    ax = axes[2]
    ax.plot(steps, tr["pnl"], label="pnl")
    ax.fill_between(steps, tr["pnl"] - tr["drawdown"], tr["pnl"], alpha=0.3, label="drawdown")
    ax.set_ylabel("pnl")
    ax.set_xlabel("step")
    ax.legend(loc="best", fontsize=8)

    fig.tight_layout()
    fig.savefig(out_path, dpi=180)
    plt.close(fig)


def _write_report(summary: pd.DataFrame, trace: pd.DataFrame, figures: dict[str, str]) -> None:
    lines: list[str] = []
    lines.append("# Simulation Report: Prediction Market Making\n")
    lines.append(f"Artifacts generated from `{CSV_PATH.as_posix()}` and `{TRACE_PATH.as_posix()}`.\n")

    lines.append("## Per-market summary\n")
    lines.append("| market | pnl | fills | max drawdown | final inventory | final mid |")
    lines.append("|---|---:|---:|---:|---:|---:|")
    for _, r in summary.iterrows():
        lines.append(
            f"| {r['market_id']} | {r['total_pnl']:.4f} | {int(r['total_fills'])} | "
            f"{r['max_drawdown']:.4f} | {r['final_inventory']:.2f} | {r['final_mid']:.4f} |"
        )
    lines.append("")

    lines.append("## Quoting behaviour\n")
    for market_id, tr in trace.groupby("market_id", sort=False):
        spread = (tr["ask"] - tr["bid"]).to_numpy(dtype=float)
        one_sided = ((tr["bid_size"] == 0.0) != (tr["ask_size"] == 0.0)).to_numpy()
        lines.append(
            f"- **{market_id}**: fill rate {tr['filled'].mean():.3f}, "
            f"mean spread {np.mean(spread):.4f}, one-sided steps {int(one_sided.sum())}"
        )
    lines.append("")

    lines.append("## Figures\n")
    for market_id, fname in figures.items():
        lines.append(f"- ![{market_id}](figures/{fname})")

    OUT_MD.write_text("\n".join(lines) + "\n", encoding="utf-8")


def main() -> None:
    FIG_DIR.mkdir(parents=True, exist_ok=True)
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)

    summary, trace = _load()

    figures: dict[str, str] = {}
    for market_id, tr in trace.groupby("market_id", sort=False):
        fname = f"{market_id}_quotes.png"
        _plot_market(str(market_id), tr, FIG_DIR / fname)
        figures[str(market_id)] = fname

    _write_report(summary, trace, figures)

    print(f"Saved figures in: {FIG_DIR.as_posix()}")
    print(f"Saved report: {OUT_MD.as_posix()}")


if __name__ == "__main__":
    main()
