import sys
from datetime import date
from pathlib import Path

import pandas as pd
import pytest

# Ensure the `src` folder is on sys.path when running pytest so imports like
# `from rules import ...` or `from core import ...` work without needing to
# install the package. This keeps tests consistent with running tools using
# PYTHONPATH=$(pwd)/src.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from data.history import InMemoryPriceHistory  # noqa: E402
from features.technical_indicators import IndicatorSnapshot  # noqa: E402


def _make_df(close_prices: list[float], volume: float = 1_000_000.0, start: str = "2024-01-01") -> pd.DataFrame:
    idx = pd.bdate_range(start, periods=len(close_prices), name="date")
    return pd.DataFrame(
        {
            "open": close_prices,
            "high": close_prices,
            "low": close_prices,
            "close": close_prices,
            "volume": [volume] * len(close_prices),
        },
        index=idx,
    )


def _crossover_closes() -> list[float]:
    # baja 25 barras, sube 20, vuelve a bajar 15: MA5 cruza MA20 al alza en
    # la barra 30 (cierre 108) y a la baja en la barra 52 (cierre 120)
    closes = [120.0 - i for i in range(25)]
    closes += [96.0 + 2 * (i - 24) for i in range(25, 45)]
    closes += [136.0 - 2 * (i - 44) for i in range(45, 60)]
    return closes


@pytest.fixture
def make_df():
    return _make_df


@pytest.fixture
def crossover_prices() -> pd.DataFrame:
    return _make_df(_crossover_closes())


@pytest.fixture
def crossover_provider(crossover_prices) -> InMemoryPriceHistory:
    return InMemoryPriceHistory({"TEST": crossover_prices})


@pytest.fixture
def crossover_range(crossover_prices) -> tuple[date, date]:
    return crossover_prices.index[0].date(), crossover_prices.index[-1].date()


@pytest.fixture
def snap():
    def _snap(symbol: str = "TEST", on: date = date(2024, 6, 3), **values) -> IndicatorSnapshot:
        return IndicatorSnapshot(symbol=symbol, date=on, values=values)

    return _snap
