from datetime import time

import pytest

from core import config_loader
from core.config_loader import DEFAULT_CONFIG_PATH, ENV_TO_CFG, get_config, get_nested
from core.errors import ConfigurationError
from core.settings import DEFAULT_COMPOSITE_WEIGHTS, load_settings, validate_weights

MINIMAL_YAML = """
backtest:
  commission_rate: 0.0015
  risk_per_trade: 0.02
composite:
  weights: {momentum: 0.30, trend_following: 0.35, mean_reversion: 0.15, breakout: 0.20}
scanner:
  interval_secs: 30
  market_open: "09:15"
  market_close: "14:45"
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for env_var in ENV_TO_CFG:
        monkeypatch.delenv(env_var, raising=False)
    # sin .env del desarrollador en medio
    monkeypatch.setattr(config_loader, "load_dotenv", lambda **kw: False)


def test_defaults_from_empty_config():
    s = load_settings({})

    assert s.backtest.initial_capital == 100_000_000.0
    assert s.backtest.commission_rate == 0.0015
    assert s.backtest.use_exit_levels is False
    assert dict(s.composite.weights) == DEFAULT_COMPOSITE_WEIGHTS
    assert s.scanner.market_open == time(9, 0)
    assert s.scanner.market_close == time(15, 0)
    assert s.scanner.confidence_threshold == 0.70
    assert s.scoring.max_reasons == 5
    assert s.rules_file is None


def test_bundled_config_is_valid():
    s = load_settings(get_config(DEFAULT_CONFIG_PATH))

    assert sum(s.composite.weights.values()) == pytest.approx(1.0)
    assert s.rules_file == "src/config/rules.yaml"
    assert s.scanner.timezone == "Asia/Ho_Chi_Minh"


def test_yaml_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL_YAML, encoding="utf-8")
    monkeypatch.setenv("COMMISSION_RATE", "0.002")
    monkeypatch.setenv("SCANNER_EXECUTE_TRADES", "false")

    cfg = get_config(path)
    s = load_settings(cfg)

    assert cfg["backtest"]["commission_rate"] == 0.002
    assert s.backtest.commission_rate == 0.002
    assert s.scanner.execute_trades is False
    assert s.scanner.interval_secs == 30.0
    assert s.scanner.market_open == time(9, 15)


def test_bad_env_number_is_configuration_error(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL_YAML, encoding="utf-8")
    monkeypatch.setenv("RISK_PER_TRADE", "mucho")

    with pytest.raises(ConfigurationError):
        get_config(path)


def test_missing_required_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("backtest:\n  commission_rate: 0.001\n", encoding="utf-8")

    with pytest.raises(ConfigurationError) as exc:
        get_config(path)
    assert "composite.weights" in exc.value.problems


def test_all_problems_are_reported_together():
    cfg = {
        "composite": {"weights": {"momentum": 0.5, "trend_following": 0.4}},
        "backtest": {"risk_per_trade": 0.0, "initial_capital": -1},
        "scanner": {"timezone": "Mars/Olympus", "market_open": "16:00", "market_close": "15:00"},
    }

    with pytest.raises(ConfigurationError) as exc:
        load_settings(cfg)
    problems = " | ".join(exc.value.problems)
    assert "sumar 1.0" in problems
    assert "risk_per_trade" in problems
    assert "initial_capital" in problems
    assert "timezone" in problems
    assert "market_open" in problems


def test_bad_time_format():
    with pytest.raises(ConfigurationError):
        load_settings({"scanner": {"market_open": "nueve"}})


def test_validate_weights():
    assert validate_weights({"a": 0.25, "b": 0.75}) == {"a": 0.25, "b": 0.75}
    with pytest.raises(ConfigurationError):
        validate_weights({})
    with pytest.raises(ConfigurationError):
        validate_weights({"a": "0.5", "b": 0.5})
    with pytest.raises(ConfigurationError):
        validate_weights({"a": 1.0 + 1e-6})


def test_get_nested():
    cfg = {"a": {"b": {"c": 1}}}

    assert get_nested(cfg, "a", "b", "c") == 1
    assert get_nested(cfg, "a", "x", default="d") == "d"
    assert get_nested(cfg, "a", "b", "c", "d") is None
