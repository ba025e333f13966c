import math
from datetime import date

import pandas as pd
import pytest

from core.errors import ConfigurationError
from core.types import PriceBar
from features.technical_indicators import (
    IndicatorEngine,
    bars_to_frame,
    compute_relative_strength,
    lookback_for,
    normalize_indicator,
    snapshot_at,
    warmup_bars,
)


def test_sma_uses_exact_window_and_none_before_lookback(make_df):
    frame = IndicatorEngine(ma_windows=(10,)).compute(make_df([float(i) for i in range(1, 31)]))

    assert frame["MA10"].iat[-1] == pytest.approx(25.5)  # media de 21..30
    assert math.isnan(frame["MA10"].iat[8])
    assert snapshot_at(frame, 8, "TEST").get("MA10") is None
    assert snapshot_at(frame, 9, "TEST").get("MA10") == pytest.approx(5.5)


def test_ema_is_seeded_with_sma_and_flat_on_constant_series(make_df):
    frame = IndicatorEngine(ma_windows=(), ema_windows=(5,)).compute(make_df([10.0] * 12))

    assert math.isnan(frame["EMA5"].iat[3])
    assert frame["EMA5"].iat[4] == pytest.approx(10.0)
    assert frame["EMA5"].iat[-1] == pytest.approx(10.0)


def test_rsi_extremes(make_df):
    up = IndicatorEngine().compute(make_df([100.0 + i for i in range(30)]))
    down = IndicatorEngine().compute(make_df([100.0 - i for i in range(30)]))
    flat = IndicatorEngine().compute(make_df([100.0] * 30))

    assert math.isnan(up["RSI"].iat[13])  # necesita 15 barras con periodo 14
    assert up["RSI"].iat[14] == pytest.approx(100.0)
    assert down["RSI"].iat[-1] == pytest.approx(0.0)
    assert flat["RSI"].iat[-1] == pytest.approx(50.0)


def test_macd_is_zero_on_constant_series(make_df):
    frame = IndicatorEngine().compute(make_df([50.0] * 40))

    assert math.isnan(frame["MACD_HISTOGRAM"].iat[32])
    assert frame["MACD"].iat[-1] == pytest.approx(0.0)
    assert frame["MACD_HISTOGRAM"].iat[-1] == pytest.approx(0.0)


def test_volume_ratio_trading_value_and_price_change(make_df):
    df = make_df([10.0, 10.0, 10.0, 10.0, 10.5])
    df["volume"] = [100.0, 100.0, 100.0, 100.0, 600.0]
    frame = IndicatorEngine().compute(df)
    snap = snapshot_at(frame, -1, "TEST")

    assert snap.get("VOL_RATIO") == pytest.approx(600.0 / 200.0)
    assert snap.get("TRADING_VALUE") == pytest.approx((4 * 1000.0 + 6300.0) / 5)
    assert snap.get("PRICE_CHANGE") == pytest.approx(5.0)
    assert snap.price == pytest.approx(10.5)
    assert snapshot_at(frame, 0, "TEST").get("PRICE_CHANGE") is None


def test_relative_strength_ranks_across_universe(make_df):
    frames = {
        sym: IndicatorEngine().compute(make_df([100.0 * (1 + g) ** i for i in range(260)]))
        for sym, g in (("SLOW", 0.001), ("MID", 0.002), ("FAST", 0.003))
    }
    ranked = compute_relative_strength(frames)

    fast = snapshot_at(ranked["FAST"], -1, "FAST")
    slow = snapshot_at(ranked["SLOW"], -1, "SLOW")
    mid = snapshot_at(ranked["MID"], -1, "MID")
    assert fast.get("RS_1Y") == pytest.approx(100.0)
    assert mid.get("RS_3D") == pytest.approx(200.0 / 3)
    assert slow.get("RS_AVG") == pytest.approx(100.0 / 3)
    # antes de tener un año de historia RS_AVG no existe
    assert snapshot_at(ranked["FAST"], 100, "FAST").get("RS_AVG") is None
    # los frames de entrada no se mutan
    assert frames["FAST"]["RS_1Y"].isna().all()


def test_compute_is_deterministic(crossover_prices):
    engine = IndicatorEngine.for_indicators({"MA5", "MA20", "EMA9"})
    first = engine.compute(crossover_prices)
    second = engine.compute(crossover_prices)

    assert {"MA5", "MA20", "EMA9", "MA200"} <= set(first.columns)
    pd.testing.assert_frame_equal(first, second)


def test_indicator_names_and_lookbacks():
    assert normalize_indicator("ma20") == "MA20"
    assert normalize_indicator(" rsi ") == "RSI"
    with pytest.raises(ConfigurationError):
        normalize_indicator("FOO")
    with pytest.raises(ConfigurationError):
        normalize_indicator("MA0")

    assert lookback_for("MACD_HISTOGRAM") == 34
    assert lookback_for("RSI") == 15
    assert warmup_bars({"MA200", "RS_AVG", "PRICE"}) == 200
    assert warmup_bars({"RS_3D"}) == 1


def test_bars_to_frame_builds_date_index():
    bars = [
        PriceBar("VNM", date(2024, 1, 2), 10, 11, 9, 10.5, 1000),
        PriceBar("VNM", date(2024, 1, 3), 10.5, 12, 10, 11.5, 2000),
    ]
    df = bars_to_frame(bars)

    assert list(df.columns) == ["open", "high", "low", "close", "volume"]
    assert df.index[0] == pd.Timestamp("2024-01-02")
    assert df["close"].iat[-1] == pytest.approx(11.5)
    assert bars_to_frame([]).empty


def test_invalid_windows_rejected():
    with pytest.raises(ConfigurationError):
        IndicatorEngine(ma_windows=(0,))


def test_channel_high_low_use_prior_bars_only(make_df):
    df = make_df([10.0, 12.0, 11.0, 15.0, 9.0, 13.0])
    df["high"] = df["close"] + 1.0
    df["low"] = df["close"] - 1.0
    frame = IndicatorEngine(channel_windows=(3,)).compute(df)

    assert frame["HIGH3"].iloc[:3].isna().all()
    assert list(frame["HIGH3"].iloc[3:]) == [13.0, 16.0, 16.0]
    assert list(frame["LOW3"].iloc[3:]) == [9.0, 10.0, 8.0]
    # el máximo de la barra actual no cuenta: una ruptura puede superar su canal
    assert frame["PRICE"].iat[3] > frame["HIGH3"].iat[3]
    assert snapshot_at(frame, 2, "X").get("HIGH3") is None

    assert normalize_indicator("high20") == "HIGH20"
    assert lookback_for("HIGH20") == 21
    assert lookback_for("LOW5") == 6
    assert IndicatorEngine.for_indicators({"HIGH20", "LOW5", "EMA9"}).channel_windows == (5, 20)
    with pytest.raises(ConfigurationError):
        IndicatorEngine(channel_windows=(0,))
