"""
Serialization of simulation output.

- summary records -> flat CSV (one row per market)
- trace records   -> JSON list (one object per step)

No computation happens here beyond turning records into rows.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Iterable, Mapping, Union

import pandas as pd

from quotelab.types import MarketSummary, TraceRecord

PathLike = Union[str, Path]

SUMMARY_COLUMNS = [f.name for f in fields(MarketSummary)]
TRACE_COLUMNS = [f.name for f in fields(TraceRecord)]


def summaries_frame(summaries: Union[Mapping[str, MarketSummary], Iterable[MarketSummary]]) -> pd.DataFrame:
    rows = summaries.values() if isinstance(summaries, Mapping) else summaries
    return pd.DataFrame([asdict(s) for s in rows], columns=SUMMARY_COLUMNS)


def trace_frame(trace: Iterable[TraceRecord]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in trace], columns=TRACE_COLUMNS)


def write_summary_csv(summaries: Union[Mapping[str, MarketSummary], Iterable[MarketSummary]], path: PathLike) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    summaries_frame(summaries).to_csv(out, index=False)
    return out


def write_trace_json(trace: Iterable[TraceRecord], path: PathLike) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    records = [asdict(r) for r in trace]
    out.write_text(json.dumps(records, indent=2) + "\n", encoding="utf-8")
    return out


def read_trace_json(path: PathLike) -> pd.DataFrame:
    records = json.loads(Path(path).read_text(encoding="utf-8"))
    return pd.DataFrame(records, columns=TRACE_COLUMNS)
