from datetime import date

import numpy as np
import pandas as pd
import pytest

from core.errors import SimulationFailure
from core.types import PriceBar
from data.history import CsvPriceHistory, InMemoryPriceHistory, history_problems, validate_history


def test_in_memory_slice_is_inclusive(crossover_prices):
    provider = InMemoryPriceHistory({"TEST": crossover_prices})
    first, last = crossover_prices.index[5].date(), crossover_prices.index[9].date()

    df = provider.get_history("TEST", first, last)
    assert len(df) == 5
    assert df.index[0].date() == first and df.index[-1].date() == last
    assert provider.get_history("OTHER", first, last).empty
    assert provider.symbols() == ["TEST"]


def test_in_memory_accepts_price_bars():
    bars = [PriceBar("VNM", date(2024, 1, d), 10, 10, 10, 10 + d, 100) for d in (2, 3, 4)]
    provider = InMemoryPriceHistory({"VNM": bars})

    df = provider.get_history("VNM", date(2024, 1, 3), date(2024, 1, 31))
    assert list(df["close"]) == [13.0, 14.0]


def test_history_problems_detects_every_issue(make_df):
    df = make_df([10.0, 11.0, 12.0, 13.0])
    df.iloc[1, df.columns.get_loc("close")] = np.nan
    df.iloc[2, df.columns.get_loc("low")] = 0.0
    df.iloc[3, df.columns.get_loc("volume")] = -5.0
    df = df.iloc[[0, 2, 1, 3]]

    codes = {i.code for i in history_problems(df)}
    assert codes == {"TIME_ORDER", "PRICE_NOT_FINITE", "PRICE_NONPOSITIVE", "VOLUME_INVALID"}
    with pytest.raises(SimulationFailure):
        validate_history("TEST", df)


def test_missing_columns_and_duplicate_dates(make_df):
    assert history_problems(pd.DataFrame({"close": [1.0]}))[0].code == "MISSING_COLUMNS"

    df = make_df([10.0, 11.0])
    dup = pd.concat([df, df.iloc[[-1]]])
    assert [i.code for i in history_problems(dup)] == ["TIME_ORDER"]
    assert validate_history("TEST", df) is df


def test_csv_provider(tmp_path, crossover_prices):
    crossover_prices.reset_index().to_csv(tmp_path / "TEST.csv", index=False)
    (tmp_path / "BAD.csv").write_text("day,close\n2024-01-01,1\n", encoding="utf-8")
    provider = CsvPriceHistory(tmp_path)

    assert provider.symbols() == ["BAD", "TEST"]
    df = provider.get_history("TEST", crossover_prices.index[0].date(), crossover_prices.index[-1].date())
    assert list(df["close"]) == list(crossover_prices["close"])
    assert [ts.date() for ts in df.index] == [ts.date() for ts in crossover_prices.index]
    assert provider.get_history("NONE", date(2024, 1, 1), date(2024, 2, 1)).empty
    with pytest.raises(SimulationFailure):
        provider.load("BAD")
    assert CsvPriceHistory(tmp_path / "missing").symbols() == []
