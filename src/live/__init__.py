from .executor import InMemoryTradeSink, LiveExecConfig, LiveExecResult, LiveExecutor, LiveTrade, TradeSink
from .scanner import LiveScanner, ScannerStatus

__all__ = [
    "InMemoryTradeSink",
    "LiveExecConfig",
    "LiveExecResult",
    "LiveExecutor",
    "LiveScanner",
    "LiveTrade",
    "ScannerStatus",
    "TradeSink",
]
