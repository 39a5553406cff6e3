import pytest

from quotelab.errors import ConfigError
from quotelab.sim.market import MarketConfig, MarketState
from quotelab.strategy.quoting import QuotingEngine, QuotingParams, order_flow_imbalance
from quotelab.types import RiskState, Trade


def _state(mid: float = 0.5, **kw) -> MarketState:
    base = dict(initial_spread=0.05, inventory_limit=200.0, exposure_limit=10000.0)
    base.update(kw)
    return MarketState(MarketConfig("q", initial_mid=mid, **base))


def _trade(side: str) -> Trade:
    return Trade(step=0, side=side, price=0.5, size=1.0, inventory=0.0, pnl=0.0)


def test_mean_reversion_without_noise_climbs_to_half_without_overshoot() -> None:
    engine = QuotingEngine(QuotingParams(noise_sigma=0.0))
    mids = [0.30]
    for _ in range(500):
        mids.append(engine.next_mid(mids[-1], z=3.0))

    assert all(b > a for a, b in zip(mids, mids[1:]))
    assert all(m < 0.5 for m in mids)


def test_mean_reversion_from_above_decreases() -> None:
    engine = QuotingEngine(QuotingParams(noise_sigma=0.0, reversion_rate=0.1))
    mids = [0.80]
    for _ in range(50):
        mids.append(engine.next_mid(mids[-1], z=0.0))
    assert all(b < a for a, b in zip(mids, mids[1:]))
    assert mids[-1] > 0.5


def test_next_mid_single_step_and_clamp() -> None:
    engine = QuotingEngine(QuotingParams(reversion_rate=0.005, noise_sigma=0.005))
    assert engine.next_mid(0.30, z=0.0) == pytest.approx(0.301)
    assert engine.next_mid(0.30, z=2.0) == pytest.approx(0.311)
    assert engine.next_mid(0.5, z=1000.0) == 0.99
    assert engine.next_mid(0.5, z=-1000.0) == 0.01


def test_order_flow_imbalance() -> None:
    assert order_flow_imbalance([]) == 0.0
    assert order_flow_imbalance([_trade("buy")] * 3 + [_trade("sell")]) == pytest.approx(0.5)
    assert order_flow_imbalance([_trade("sell")] * 4) == pytest.approx(-1.0)


def test_spread_widens_with_imbalance_and_is_clamped() -> None:
    engine = QuotingEngine(QuotingParams(imbalance_sensitivity=1.0, min_spread=0.01, max_spread=0.5))
    assert engine.spread_for(0.0, 0.05) == pytest.approx(0.05)
    assert engine.spread_for(-0.5, 0.05) == pytest.approx(0.075)
    assert engine.spread_for(1.0, 0.05) == pytest.approx(0.10)
    assert engine.spread_for(1.0, 0.40) == pytest.approx(0.5)
    assert engine.spread_for(0.0, 0.001) == pytest.approx(0.01)


def test_quote_uses_trailing_window_only() -> None:
    engine = QuotingEngine(QuotingParams(window_size=4))
    st = _state()
    for i in range(4):
        st.apply_fill("buy", 0.45, 1.0, step=i)
    one_sided = engine.quote(st)
    assert one_sided.imbalance == pytest.approx(1.0)

    for i in range(2):
        st.apply_fill("sell", 0.55, 1.0, step=4 + i)
    mixed = engine.quote(st)
    assert mixed.imbalance == pytest.approx(0.0)
    assert mixed.spread < one_sided.spread


def test_flat_quote_is_symmetric_around_mid() -> None:
    q = QuotingEngine().quote(_state(0.5))
    assert q.bid == pytest.approx(0.475)
    assert q.ask == pytest.approx(0.525)
    assert q.bid_size == 10.0
    assert q.ask_size == 10.0


def test_long_inventory_lowers_center_short_raises_it() -> None:
    engine = QuotingEngine(QuotingParams(skew_coefficient=0.02))

    long_state = _state(0.5)
    long_state.apply_fill("buy", 0.5, 100.0, step=0)
    q = engine.quote(long_state)
    assert (q.bid + q.ask) / 2 == pytest.approx(0.49)
    assert q.bid < q.mid < q.ask

    short_state = _state(0.5)
    short_state.apply_fill("sell", 0.5, 100.0, step=0)
    q = engine.quote(short_state)
    assert (q.bid + q.ask) / 2 == pytest.approx(0.51)


def test_extreme_skew_keeps_mid_inside_quote() -> None:
    engine = QuotingEngine(QuotingParams(skew_coefficient=1.0))
    st = _state(0.5, inventory_limit=10.0)
    st.apply_fill("buy", 0.5, 10.0, step=0)
    q = engine.quote(st)
    assert q.bid < q.mid < q.ask


@pytest.mark.parametrize("mid, side", [(0.01, "buy"), (0.99, "sell")])
def test_bound_clamp_keeps_quoted_width(mid: float, side: str) -> None:
    engine = QuotingEngine(QuotingParams(skew_coefficient=1.0))
    st = _state(mid, inventory_limit=10.0)
    st.apply_fill(side, mid, 10.0, step=0)
    q = engine.quote(st)

    assert q.spread == pytest.approx(0.10)
    assert q.ask - q.bid == pytest.approx(q.spread)
    assert q.ask - q.bid >= engine.p.min_spread
    assert 0.0 < q.bid < q.mid < q.ask < 1.0
    if side == "buy":
        assert q.bid == pytest.approx(0.5 * mid)
    else:
        assert q.ask == pytest.approx(0.5 * (1.0 + mid))


@pytest.mark.parametrize("mid", [0.001, 0.02, 0.5, 0.98, 0.999])
def test_quote_stays_inside_unit_interval(mid: float) -> None:
    engine = QuotingEngine(QuotingParams(max_spread=0.5, base_spread=0.5))
    q = engine.quote(_state(mid))
    assert 0.0 < q.bid < q.mid < q.ask < 1.0


def test_halted_long_quotes_only_the_selling_side() -> None:
    engine = QuotingEngine(QuotingParams(quote_size=10.0))
    st = _state(0.5, inventory_limit=20.0)
    st.apply_fill("buy", 0.5, 20.0, step=0)
    assert st.risk_state is RiskState.HALTED

    q = engine.quote(st)
    assert q.bid_size == 0.0
    assert q.ask_size == 10.0

    st.apply_fill("sell", 0.55, 5.0, step=1)
    assert st.risk_state is RiskState.ACTIVE
    q = engine.quote(st)
    assert q.bid_size == pytest.approx(5.0)
    assert q.ask_size == 10.0


def test_halted_short_quotes_only_the_buying_side() -> None:
    engine = QuotingEngine()
    st = _state(0.5, inventory_limit=20.0)
    st.apply_fill("sell", 0.5, 20.0, step=0)
    q = engine.quote(st)
    assert q.ask_size == 0.0
    assert q.bid_size == 10.0


def test_size_reduced_by_headroom() -> None:
    engine = QuotingEngine(QuotingParams(quote_size=10.0))
    st = _state(0.5, inventory_limit=20.0)
    st.apply_fill("buy", 0.5, 16.0, step=0)
    q = engine.quote(st)
    assert q.bid_size == pytest.approx(4.0)
    assert q.ask_size == 10.0


def test_invalid_params_rejected() -> None:
    with pytest.raises(ConfigError) as exc:
        QuotingEngine(QuotingParams(min_spread=0.2, max_spread=0.1, reversion_rate=0.0))
    assert len(exc.value.problems) == 2


def test_max_spread_wider_than_quote_band_rejected() -> None:
    with pytest.raises(ConfigError) as exc:
        QuotingParams(max_spread=0.6).validate()
    assert "max_spread" in str(exc.value)
