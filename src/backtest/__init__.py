from .simulator import BacktestConfig, BacktestSimulator, BacktestState, run_backtest

__all__ = ["BacktestConfig", "BacktestSimulator", "BacktestState", "run_backtest"]
