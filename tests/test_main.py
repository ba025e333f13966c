import importlib
import json
from pathlib import Path

import pytest

from core import config_loader

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def cli(tmp_path, monkeypatch, crossover_prices):
    prices = tmp_path / "prices"
    prices.mkdir()
    crossover_prices.reset_index().to_csv(prices / "TEST.csv", index=False)

    monkeypatch.chdir(ROOT)
    monkeypatch.setenv("DATA_DIR", str(prices))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(config_loader, "_CONFIG_CACHE", None)
    monkeypatch.syspath_prepend(str(ROOT))
    return importlib.import_module("main")


def test_backtest_command_writes_run(cli, tmp_path, capsys, crossover_prices):
    out = tmp_path / "run"
    code = cli.main(
        [
            "backtest",
            "--universe", "TEST",
            "--start", crossover_prices.index[0].date().isoformat(),
            "--end", crossover_prices.index[-1].date().isoformat(),
            "--rule", "sma_crossover_5_20",
            "--out", str(out),
        ]
    )

    assert code == 0
    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["total_trades"] == 2
    assert '"strategy": "sma_crossover_5_20"' in capsys.readouterr().out


def test_evaluate_command(cli, capsys, crossover_prices):
    code = cli.main(["evaluate", "TEST", "--as-of", crossover_prices.index[30].date().isoformat(),
                     "--rule", "sma_crossover_5_20"])

    assert code == 0
    assert '"classification": "STRONG_BUY"' in capsys.readouterr().out


def test_engine_errors_exit_with_code_1(cli, crossover_prices):
    assert cli.main(["evaluate", "TEST", "--as-of", "2024-02-12", "--rule", "no_such_rule"]) == 1


def test_bad_date_is_rejected_by_argparse(cli):
    with pytest.raises(SystemExit):
        cli.main(["evaluate", "TEST", "--as-of", "12/02/2024"])
