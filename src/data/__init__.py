"""Proveedores de histórico de precios."""

from .history import CsvPriceHistory, InMemoryPriceHistory, PriceHistoryProvider, validate_history

__all__ = ["CsvPriceHistory", "InMemoryPriceHistory", "PriceHistoryProvider", "validate_history"]
