# ============================================================
# check_system.py — Autodiagnóstico del motor de señales
# ------------------------------------------------------------
# Ejecuta tres checks:
#   1) Carga y validación de configuración (YAML + .env overrides)
#   2) Logger central (consola y archivo con rotación)
#   3) Backtest sintético (cruce MA5/MA20 sobre 60 barras en memoria)
#
# Úsalo desde la raíz del proyecto:
#   python check_system.py
# ============================================================

from pathlib import Path
import sys
import time

# Asegurar que ./src está en sys.path antes de importar core.*
PROJECT_ROOT = Path(__file__).parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from loguru import logger  # noqa: E402
import pandas as pd  # noqa: E402

from backtest.simulator import run_backtest  # noqa: E402
from core.logger_config import init_logger  # noqa: E402
from core.settings import load_settings  # noqa: E402
from data.history import InMemoryPriceHistory  # noqa: E402
from rules.templates import sma_crossover  # noqa: E402


def ok(msg: str) -> None:
    print(f"✅ {msg}")


def fail(msg: str, e: Exception) -> None:
    print(f"❌ {msg}\n   → {type(e).__name__}: {e}")


def check_config() -> bool:
    try:
        s = load_settings()
        ok(
            f"Config cargada — capital={s.backtest.initial_capital:,.0f}, "
            f"comisión={s.backtest.commission_rate}, "
            f"scanner cada {s.scanner.interval_secs:.0f}s ({s.scanner.timezone}), "
            f"pesos={dict(s.composite.weights)}"
        )
        return True
    except Exception as e:
        fail("Fallo cargando configuración", e)
        return False


def check_logger() -> bool:
    try:
        init_logger()
        logger.info("Logger OK (info)")
        logger.debug("Logger OK (debug)")
        log_file = Path("data/logs/signals.log")
        # Dar un respiro para que el handler (enqueue) escriba a disco
        time.sleep(0.2)
        if log_file.exists() and log_file.stat().st_size > 0:
            ok(f"Logger escribe en archivo: {log_file}")
            return True
        raise FileNotFoundError("No se encontró data/logs/signals.log o está vacío")
    except Exception as e:
        fail("Fallo en logger", e)
        return False


def _synthetic_prices() -> pd.DataFrame:
    closes = [120.0 - i for i in range(25)]
    closes += [96.0 + 2 * (i - 24) for i in range(25, 45)]
    closes += [136.0 - 2 * (i - 44) for i in range(45, 60)]
    idx = pd.bdate_range("2024-01-01", periods=len(closes), name="date")
    return pd.DataFrame(
        {"open": closes, "high": closes, "low": closes, "close": closes, "volume": 1_000_000.0},
        index=idx,
    )


def check_backtest() -> bool:
    try:
        prices = _synthetic_prices()
        report = run_backtest(
            sma_crossover(5, 20),
            ["TEST"],
            (prices.index[0].date(), prices.index[-1].date()),
            100_000_000.0,
            provider=InMemoryPriceHistory({"TEST": prices}),
        )
        if report.total_trades != 2:
            raise AssertionError(f"se esperaban 2 trades, hay {report.total_trades}")
        ok(f"Backtest sintético OK — retorno {report.total_return_pct:.2f}%, win_rate {report.win_rate:.0f}%")
        return True
    except Exception as e:
        fail("Fallo ejecutando el backtest sintético", e)
        return False


if __name__ == "__main__":
    print("=== Autodiagnóstico del motor de señales ===")
    all_ok = True
    all_ok &= check_config()
    all_ok &= check_logger()
    all_ok &= check_backtest()
    print("============================================")
    print("✅ TODO OK" if all_ok else "❌ Hay fallos arriba; revisa mensajes.")
