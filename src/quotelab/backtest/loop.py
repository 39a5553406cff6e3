from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

import numpy as np

from quotelab.errors import ConfigError, InvariantViolation
from quotelab.sim.flow import FlowParams, OrderFlow, derive_seed
from quotelab.sim.market import LIMIT_TOL, MarketConfig, MarketState
from quotelab.strategy.quoting import QuotingEngine, QuotingParams
from quotelab.types import MarketSummary, Quote, TraceRecord, Trade

logger = logging.getLogger(__name__)

DRAWDOWN_TOL = 1e-12


@dataclass
class MarketRun:
    summary: MarketSummary
    trace: list[TraceRecord]
    seed: int
    trades: tuple[Trade, ...] = ()


@dataclass
class SimulationResult:
    """
    Everything the reporter gets.

    - summaries: market_id -> summary, in configuration order
    - trace: per-step records, market by market, step by step
    - rejected: market_id -> config error message (never started)
    - failed: market_id -> invariant diagnostic (aborted mid-run)
    - trades: market_id -> booked fills, for fill-level stats
    """
    summaries: dict[str, MarketSummary] = field(default_factory=dict)
    trace: list[TraceRecord] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    seeds: dict[str, int] = field(default_factory=dict)
    trades: dict[str, tuple[Trade, ...]] = field(default_factory=dict)


def _check_invariants(state: MarketState, quote: Quote, qp: QuotingParams, step: int) -> None:
    def fail(msg: str) -> None:
        raise InvariantViolation(state.market_id, step, msg)

    if not np.isfinite(state.mid) or not 0.0 < state.mid < 1.0:
        fail(f"mid escaped (0, 1): {state.mid}")
    if not 0.0 < quote.bid < quote.mid < quote.ask < 1.0:
        fail(f"quote out of order: bid={quote.bid} mid={quote.mid} ask={quote.ask}")
    if quote.ask - quote.bid < qp.min_spread - LIMIT_TOL:
        fail(f"quoted width {quote.ask - quote.bid} below min_spread {qp.min_spread}")
    if not qp.min_spread <= state.spread <= qp.max_spread:
        fail(f"spread {state.spread} outside [{qp.min_spread}, {qp.max_spread}]")
    if abs(state.inventory) > state.inventory_limit + LIMIT_TOL:
        fail(f"|inventory| {abs(state.inventory)} above limit {state.inventory_limit}")
    if state.exposure > state.exposure_limit + LIMIT_TOL:
        fail(f"exposure {state.exposure} above limit {state.exposure_limit}")
    if not np.isfinite(state.pnl) or not np.isfinite(state.cash):
        fail(f"non-finite pnl/cash: pnl={state.pnl} cash={state.cash}")
    if state.drawdown < 0.0 or abs(state.drawdown - (state.peak_pnl - state.pnl)) > DRAWDOWN_TOL:
        fail(f"drawdown {state.drawdown} != peak {state.peak_pnl} - pnl {state.pnl}")


def run_step(state: MarketState, engine: QuotingEngine, flow: OrderFlow, step: int) -> TraceRecord:
    """
    One step: quote, draw an arrival, maybe fill, advance the mid, snapshot.

    The quote is built from state as of the end of the previous step.
    """
    quote = engine.quote(state)
    order = flow.next_order(quote)

    trade = None
    if order.crossed and order.fill_size > 0.0:
        trade = state.apply_fill(order.maker_side, order.price, order.fill_size, step)

    state.advance(engine.next_mid(state.mid, flow.noise()), step, spread=quote.spread)
    _check_invariants(state, quote, engine.p, step)

    return TraceRecord(
        step=step,
        market_id=state.market_id,
        mid=quote.mid,
        bid=quote.bid,
        ask=quote.ask,
        bid_size=quote.bid_size,
        ask_size=quote.ask_size,
        inventory=state.inventory,
        pnl=state.pnl,
        drawdown=state.drawdown,
        filled=trade is not None,
        fill_side=trade.side if trade is not None else None,
        fill_price=trade.price if trade is not None else None,
        fill_size=trade.size if trade is not None else None,
    )


def run_market(
    config: MarketConfig,
    quoting: Optional[QuotingParams] = None,
    flow: Optional[FlowParams] = None,
    base_seed: int = 0,
) -> MarketRun:
    """
    Simulate one market for config.step_count steps.

    Raises ConfigError before any step on bad input and InvariantViolation
    if a numeric invariant breaks mid-run.
    """
    config.validate()
    qp = quoting or QuotingParams()
    fp = flow or FlowParams()

    seed = int(config.seed) if config.seed is not None else derive_seed(base_seed, config.market_id)
    state = MarketState(config)
    engine = QuotingEngine(qp)
    stream = OrderFlow(fp, seed=seed)

    logger.info(
        "market %s: %d steps from mid=%.4f (seed=%d)",
        config.market_id, config.step_count, config.initial_mid, seed,
    )

    trace: list[TraceRecord] = []
    for step in range(int(config.step_count)):
        trace.append(run_step(state, engine, stream, step))

    summary = state.summary()
    logger.info(
        "market %s done: pnl=%.4f fills=%d max_dd=%.4f inventory=%.2f mid=%.4f",
        summary.market_id, summary.total_pnl, summary.total_fills,
        summary.max_drawdown, summary.final_inventory, summary.final_mid,
    )
    return MarketRun(summary=summary, trace=trace, seed=seed, trades=state.trades)


def run_markets(
    configs: Mapping[str, MarketConfig],
    quoting: Optional[QuotingParams] = None,
    flow: Optional[FlowParams] = None,
    base_seed: int = 0,
    max_workers: int = 1,
) -> SimulationResult:
    """
    Run every configured market independently.

    Bad market configs are rejected up front and skipped; a market that hits
    an invariant violation is dropped without affecting the others. Strategy
    params are shared by all markets, so invalid ones raise ConfigError.
    """
    qp = quoting or QuotingParams()
    fp = flow or FlowParams()
    qp.validate()
    fp.validate()

    result = SimulationResult()
    runnable: list[MarketConfig] = []
    for key, cfg in configs.items():
        problems = cfg.problems()
        if key != cfg.market_id:
            problems.append(f"registry key {key!r} does not match market_id {cfg.market_id!r}")
        if problems:
            msg = str(ConfigError(f"market {key!r}", problems))
            logger.warning("rejected %s", msg)
            result.rejected[key] = msg
            continue
        runnable.append(cfg)

    if max_workers > 1 and len(runnable) > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(run_market, cfg, qp, fp, base_seed) for cfg in runnable]
            outcomes = [_collect(cfg, fut.result) for cfg, fut in zip(runnable, futures)]
    else:
        outcomes = [_collect(cfg, lambda cfg=cfg: run_market(cfg, qp, fp, base_seed)) for cfg in runnable]

    for cfg, run, err in outcomes:
        if err is not None:
            result.failed[cfg.market_id] = str(err)
            continue
        result.summaries[cfg.market_id] = run.summary
        result.trace.extend(run.trace)
        result.seeds[cfg.market_id] = run.seed
        result.trades[cfg.market_id] = run.trades

    return result


def _collect(cfg: MarketConfig, fn) -> tuple[MarketConfig, Optional[MarketRun], Optional[InvariantViolation]]:
    try:
        return cfg, fn(), None
    except InvariantViolation as exc:
        logger.error("aborted %s", exc)
        return cfg, None, exc
