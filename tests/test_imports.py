"""
Test that normalized imports (without 'src.' prefix) work correctly.

These tests validate that modules can be imported using the top-level
namespace when PYTHONPATH includes the src/ directory.
"""

from __future__ import annotations


def test_import_core_modules():
    """Test that core submodules can be imported."""
    from core import BacktestReport, ConfigurationError, Signal, SkippedEvent
    from core.engine import SignalEngine, evaluate, run_backtest, start_scanner
    from core.metrics import summarize_performance

    assert BacktestReport is not None
    assert ConfigurationError is not None
    assert Signal is not None
    assert SkippedEvent is not None
    assert SignalEngine is not None
    assert evaluate is not None
    assert run_backtest is not None
    assert start_scanner is not None
    assert summarize_performance is not None


def test_import_rules_modules():
    """Test that the rule engine can be imported."""
    from rules import Condition, RuleSet, YamlRuleStore, evaluate_rule, sma_crossover

    assert Condition is not None
    assert RuleSet is not None
    assert YamlRuleStore is not None
    assert evaluate_rule is not None
    assert sma_crossover is not None


def test_import_strategies_modules():
    """Test that strategies can be imported and register their families."""
    from strategies import CompositeStrategy, list_strategies, register_strategy

    assert CompositeStrategy is not None
    assert register_strategy is not None
    assert len(list_strategies()) >= 4


def test_import_backtest_live_and_data_modules():
    """Test that backtest, live and data modules can be imported."""
    from backtest import BacktestSimulator, run_backtest
    from data import CsvPriceHistory, InMemoryPriceHistory
    from features.technical_indicators import IndicatorEngine
    from live import LiveExecutor, LiveScanner

    assert BacktestSimulator is not None
    assert run_backtest is not None
    assert CsvPriceHistory is not None
    assert InMemoryPriceHistory is not None
    assert IndicatorEngine is not None
    assert LiveExecutor is not None
    assert LiveScanner is not None
