from concurrent.futures import ThreadPoolExecutor
import math

import pandas as pd
import pytest

from backtest.simulator import BacktestConfig, BacktestSimulator, BacktestState, run_backtest
from core.errors import ConfigurationError, SimulationFailure
from core.events import EventBus
from core.settings import BacktestSettings
from data.history import InMemoryPriceHistory
from rules.templates import rsi_strategy, sma_crossover

CAPITAL = 100_000_000.0
COMMISSION = 0.0015


def _run(provider, date_range, **kw):
    return run_backtest(sma_crossover(5, 20), ["TEST"], date_range, CAPITAL, provider=provider, **kw)


def test_crossover_scenario_trades_and_metrics(crossover_provider, crossover_range, crossover_prices):
    report = _run(crossover_provider, crossover_range)

    assert report.status == "COMPLETED"
    assert report.strategy == "sma_crossover_5_20"
    assert [s.classification for s in report.signals] == ["STRONG_BUY", "STRONG_SELL"]
    assert report.total_trades == 2

    buy, sell = report.trades
    assert buy.side == "BUY" and sell.side == "SELL"
    assert buy.date == crossover_prices.index[30].date()
    assert buy.price == pytest.approx(108.0)
    # riesgo 2% de 1e8 sobre una distancia al stop de 108 * 5%
    assert buy.quantity == math.floor(CAPITAL * 0.02 / (108.0 * 0.05))
    assert sell.date == crossover_prices.index[52].date()
    assert sell.price == pytest.approx(120.0)
    assert sell.exit_reason == "signal"

    expected_pnl = buy.quantity * 120.0 * (1 - COMMISSION) - buy.quantity * 108.0 * (1 + COMMISSION)
    assert sell.realized_pnl == pytest.approx(expected_pnl)
    assert report.win_rate == pytest.approx(100.0)
    assert report.winning_trades == 1 and report.losing_trades == 0
    assert math.isinf(report.profit_factor)
    assert report.summary()["profit_factor"] == "inf"
    assert report.total_return_pct > 0


def test_ledger_is_consistent_with_final_capital(crossover_provider, crossover_range):
    report = _run(crossover_provider, crossover_range)

    realized = sum(t.realized_pnl for t in report.trades)
    assert report.final_capital == pytest.approx(CAPITAL + realized)
    assert report.equity_curve[-1][1] == pytest.approx(report.final_capital)
    assert len(report.equity_curve) == 60
    assert report.total_return_pct == pytest.approx(realized / CAPITAL * 100.0)


def test_warmup_bars_are_recorded_as_data_gaps(crossover_provider, crossover_range):
    report = _run(crossover_provider, crossover_range)

    gaps = [e for e in report.skipped if e.kind == "data_gap"]
    assert len(gaps) == 19
    assert report.summary()["skipped"] == 19


def test_open_position_is_closed_at_end_of_run(crossover_provider, crossover_prices):
    end = crossover_prices.index[45].date()
    report = _run(crossover_provider, (crossover_prices.index[0].date(), end))

    assert report.total_trades == 2
    last = report.trades[-1]
    assert last.exit_reason == "end_of_run"
    assert last.date == end
    assert last.price == pytest.approx(134.0)
    assert report.equity_curve[-1][1] == pytest.approx(report.final_capital)


def test_exit_levels_close_at_target(crossover_provider, crossover_range, crossover_prices):
    report = _run(crossover_provider, crossover_range, use_exit_levels=True)

    buy, exit_ = report.trades
    assert exit_.exit_reason == "target_hit"
    # target 108 * 1.10 = 118.8: primer cierre por encima es 120 (barra 36)
    assert exit_.date == crossover_prices.index[36].date()
    assert exit_.price == pytest.approx(120.0)
    # la venta posterior por cruce no encuentra posición
    assert report.total_trades == 2
    assert report.signals[-1].classification == "STRONG_SELL"


def test_exit_levels_close_at_stop(make_df):
    closes = [120.0 - i for i in range(25)] + [96.0 + 2 * (i - 24) for i in range(25, 31)] + [100.0] * 5
    prices = make_df(closes)
    provider = InMemoryPriceHistory({"TEST": prices})
    report = _run(provider, (prices.index[0].date(), prices.index[-1].date()), use_exit_levels=True)

    assert [t.exit_reason for t in report.trades] == [None, "stop_loss"]
    assert report.trades[-1].date == prices.index[31].date()
    assert report.losing_trades == 1
    assert report.profit_factor == 0.0


def test_sizing_rejections_are_skipped_not_fatal(crossover_provider, crossover_range):
    report = _run(crossover_provider, crossover_range, risk_per_trade=1.0)

    assert report.total_trades == 0
    rejected = [e for e in report.skipped if e.kind == "sizing_rejected"]
    assert [e.reason for e in rejected] == ["cash_insuficiente"]
    assert report.final_capital == pytest.approx(CAPITAL)
    assert report.win_rate == 0.0
    assert report.profit_factor == 0.0


def test_tiny_capital_rejects_with_zero_quantity(crossover_provider, crossover_range):
    report = run_backtest(sma_crossover(5, 20), ["TEST"], crossover_range, 100.0, provider=crossover_provider)

    assert [e.reason for e in report.skipped if e.kind == "sizing_rejected"] == ["cantidad_cero"]


def test_corrupt_history_fails_the_run(crossover_prices, crossover_range):
    bad = crossover_prices.copy()
    bad.iloc[10, bad.columns.get_loc("close")] = -1.0
    config = BacktestConfig(sma_crossover(5, 20), ("TEST",), *crossover_range)
    sim = BacktestSimulator(config, InMemoryPriceHistory({"TEST": bad}))

    with pytest.raises(SimulationFailure):
        sim.run()
    assert sim.state is BacktestState.FAILED


def test_unordered_dates_fail_the_run(crossover_prices, crossover_range):
    shuffled = crossover_prices.iloc[::-1]
    config = BacktestConfig(sma_crossover(5, 20), ("TEST",), *crossover_range)

    with pytest.raises(SimulationFailure):
        BacktestSimulator(config, InMemoryPriceHistory({"TEST": shuffled})).run()


def test_invalid_config_is_rejected_before_running(crossover_provider, crossover_range):
    start, end = crossover_range
    sim = BacktestSimulator(BacktestConfig(sma_crossover(5, 20), ("TEST",), end, start), crossover_provider)

    with pytest.raises(ConfigurationError) as exc:
        sim.run()
    assert sim.state is BacktestState.FAILED
    assert exc.value.problems

    problems = BacktestConfig("x", (), start, end, initial_capital=0, risk_per_trade=2.0).problems()
    assert len(problems) == 3
    with pytest.raises(ConfigurationError):
        _run(crossover_provider, crossover_range, commission_rate=1.5)


def test_unknown_target_name_is_configuration_error(crossover_provider, crossover_range):
    with pytest.raises(ConfigurationError):
        run_backtest("no_such_rule", ["TEST"], crossover_range, provider=crossover_provider)


def test_config_from_settings_ignores_none_overrides(crossover_range):
    settings = BacktestSettings(initial_capital=5e7, commission_rate=0.001)
    cfg = BacktestConfig.from_settings(
        "sma_crossover", ["TEST"], *crossover_range, settings, initial_capital=None, risk_per_trade=0.05
    )

    assert cfg.initial_capital == 5e7
    assert cfg.commission_rate == 0.001
    assert cfg.risk_per_trade == 0.05


def test_history_before_start_warms_up_without_trading(crossover_provider, crossover_prices):
    # los indicadores se calculan desde la primera barra del proveedor, aunque
    # el run empiece más tarde
    start = crossover_prices.index[25].date()
    end = crossover_prices.index[-1].date()
    report = _run(crossover_provider, (start, end))

    assert not [e for e in report.skipped if e.kind == "data_gap"]
    assert report.trades[0].date == crossover_prices.index[30].date()
    assert report.equity_curve[0][0] == start


def test_unexpected_error_marks_the_run_failed(crossover_prices, crossover_range):
    class BrokenProvider(InMemoryPriceHistory):
        def get_history(self, symbol, start, end):
            raise RuntimeError("disco caído")

    config = BacktestConfig(sma_crossover(5, 20), ("TEST",), *crossover_range)
    sim = BacktestSimulator(config, BrokenProvider({"TEST": crossover_prices}))

    with pytest.raises(RuntimeError, match="disco caído"):
        sim.run()
    assert sim.state is BacktestState.FAILED


def test_concurrent_runs_are_independent(crossover_prices, crossover_range, make_df):
    # dos universos disjuntos con historias distintas sobre el mismo proveedor
    mirrored = make_df([240.0 - c for c in crossover_prices["close"]])
    provider = InMemoryPriceHistory({"TEST": crossover_prices, "MIRROR": mirrored})
    universes = [("TEST",), ("MIRROR",)] * 4

    def _one(universe):
        return run_backtest(sma_crossover(5, 20), list(universe), crossover_range, CAPITAL, provider=provider)

    with ThreadPoolExecutor(max_workers=4) as pool:
        reports = list(pool.map(_one, universes))

    for universe, report in zip(universes, reports):
        assert report.universe == universe
        assert report.trades
        assert {t.symbol for t in report.trades} <= set(universe)

    test_runs = [r for r in reports if r.universe == ("TEST",)]
    mirror_runs = [r for r in reports if r.universe == ("MIRROR",)]
    for group in (test_runs, mirror_runs):
        first = group[0]
        for r in group[1:]:
            assert r.final_capital == first.final_capital
            assert [t.as_dict() for t in r.trades] == [t.as_dict() for t in first.trades]
    assert test_runs[0].final_capital != mirror_runs[0].final_capital


def test_events_are_emitted(crossover_provider, crossover_range):
    bus = EventBus()
    seen: dict[str, int] = {}

    def counter(name):
        def _count(payload):
            seen[name] = seen.get(name, 0) + 1

        return _count

    def broken(payload):
        raise RuntimeError("callback roto")

    for name in ("trade", "skipped", "equity"):
        bus.on(name, counter(name))
    # un callback que falla no corta el backtest
    bus.on("trade", broken)

    report = _run(crossover_provider, crossover_range, events=bus)

    assert seen == {"trade": 2, "skipped": 19, "equity": 60}
    assert report.total_trades == 2


def test_multi_symbol_universe_uses_union_of_dates(crossover_prices, make_df):
    other = make_df([50.0] * 40, start="2024-01-15")
    provider = InMemoryPriceHistory({"TEST": crossover_prices, "FLAT": other})
    start, end = crossover_prices.index[0].date(), crossover_prices.index[-1].date()
    report = run_backtest(sma_crossover(5, 20), ["TEST", "FLAT"], (start, end), CAPITAL, provider=provider)

    assert report.universe == ("TEST", "FLAT")
    assert {t.symbol for t in report.trades} == {"TEST"}
    assert len(report.equity_curve) == len(pd.Index(crossover_prices.index).union(other.index))


def test_breakout_strategy_enters_above_channel_and_exits_below(make_df):
    prices = make_df([100.0] * 25 + [105.0] * 5 + [90.0] * 5)
    provider = InMemoryPriceHistory({"TEST": prices})
    date_range = (prices.index[0].date(), prices.index[-1].date())
    report = run_backtest("breakout_strategy_20", ["TEST"], date_range, CAPITAL, provider=provider)

    assert report.strategy == "breakout_strategy_20"
    assert [(t.side, t.date, t.price) for t in report.trades] == [
        ("BUY", prices.index[25].date(), 105.0),
        ("SELL", prices.index[30].date(), 90.0),
    ]
    assert report.trades[-1].exit_reason == "signal"
    # HIGH20 necesita 20 barras previas
    assert len([e for e in report.skipped if e.kind == "data_gap"]) == 20


def test_rsi_strategy_buys_oversold_and_sells_overbought(crossover_provider, crossover_range, crossover_prices):
    report = run_backtest(rsi_strategy(), ["TEST"], crossover_range, CAPITAL, provider=crossover_provider)

    buy, sell = report.trades[:2]
    # 14 caídas seguidas: RSI 0 en cuanto hay valor
    assert (buy.side, buy.date) == ("BUY", crossover_prices.index[14].date())
    # tras 11 subidas de 2 el RSI de Wilder supera 70
    assert (sell.side, sell.date, sell.exit_reason) == ("SELL", crossover_prices.index[35].date(), "signal")
