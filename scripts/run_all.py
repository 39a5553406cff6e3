"""
run_all.py

One-click pipeline for the project:
Prediction market making simulator

This script:
1. Runs the three-market demo simulation (CSV report + JSON trace)
2. Runs the seed / spread-sensitivity grid
3. Generates the markdown report and figures

Usage:
    python scripts/run_all.py
"""

import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]


def run(cmd: list[str]) -> None:
    print("\n" + "=" * 80)
    print("Running:", " ".join(cmd))
    print("=" * 80 + "\n")

    res = subprocess.run(
        cmd,
        cwd=ROOT,
        stdout=sys.stdout,
        stderr=sys.stderr,
    )

    if res.returncode != 0:
        raise RuntimeError(f"Command failed: {' '.join(cmd)}")


def main() -> None:
    print("\n Starting full pipeline: prediction market making\n")

    steps = [
        # --- Simulation
        [sys.executable, "scripts/run_sim.py"],
        [sys.executable, "scripts/run_seed_grid.py"],

        # --- Reports
        [sys.executable, "scripts/make_sim_report.py"],
    ]

    for cmd in steps:
        run(cmd)

    print("\n Pipeline completed successfully.")
    print("Reports generated in: reports/")
    print("Figures generated in: reports/figures/\n")


if __name__ == "__main__":
    main()
