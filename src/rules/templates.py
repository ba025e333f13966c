# src/rules/templates.py
"""
Plantillas de reglas incluidas de serie.

- 8 plantillas clásicas (reversal / trend / momentum / breakout / custom)
- Estrategias de backtest (RuleSet entrada BUY / salida SELL):
    sma_crossover(short, long)      cruce de medias
    rsi_strategy(oversold, overbought)  RSI bajo el umbral -> BUY, sobre -> SELL
    macd_strategy(confirm_line)     signo del histograma MACD
    breakout_strategy(period)       cierre sobre el máximo / bajo el mínimo de N barras

TRADING_VALUE está en unidades de moneda (close * volumen medio de 5 barras).
"""

from __future__ import annotations

from typing import Any

from core.errors import ConfigurationError
from rules.conditions import Condition, Operator, format_number
from rules.models import Rule, RuleSet, single_group_rule


def _c(indicator: str, operator: str, value: float | None = None, weight: int = 1, **kw: Any) -> Condition:
    return Condition(indicator=indicator, operator=Operator(operator), value=value, weight=weight, **kw)


def _build_templates() -> dict[str, Rule]:
    templates = [
        single_group_rule(
            "RSI Oversold Bounce",
            [
                _c("RSI", "lt", 30, 30, is_required=True, order_index=0),
                _c("MA50", "gt", compare_indicator="MA200", weight=20, order_index=1),
                _c("VOL_RATIO", "gte", 1.2, 15, order_index=2),
            ],
            strategy_type="reversal",
            description="Compra con RSI < 30 y tendencia de fondo sana",
        ),
        single_group_rule(
            "Golden Cross",
            [
                _c("MA50", "cross_above", compare_indicator="MA200", weight=40, is_required=True),
                _c("MACD_HISTOGRAM", "gt", 0, 20, order_index=1),
                _c("VOL_RATIO", "gte", 1.5, 20, order_index=2),
            ],
            strategy_type="trend",
            description="MA50 cruza al alza la MA200 con volumen",
        ),
        single_group_rule(
            "Momentum Leader",
            [
                _c("RS_AVG", "gte", 80, 30, is_required=True),
                _c("RS_3D", "gte", 70, 20, order_index=1),
                _c("TRADING_VALUE", "gte", 1e9, 10, order_index=2),
            ],
            strategy_type="momentum",
            description="Fuerza relativa alta en todos los horizontes",
        ),
        single_group_rule(
            "Volume Breakout",
            [
                _c("VOL_RATIO", "gte", 2, 35, is_required=True),
                _c("RS_3D", "gte", 85, 25, order_index=1),
                _c("PRICE", "gt", compare_indicator="MA10", weight=15, order_index=2),
                _c("MACD_HISTOGRAM", "gt", 0, 15, order_index=3),
            ],
            strategy_type="breakout",
            description="Ruptura con pico de volumen",
        ),
        single_group_rule(
            "Death Cross Warning",
            [
                _c("MA50", "cross_below", compare_indicator="MA200", weight=40, is_required=True),
                _c("MACD_HISTOGRAM", "lt", 0, 20, order_index=1),
                _c("RSI", "lt", 50, 15, order_index=2),
            ],
            signal_type="SELL",
            strategy_type="trend",
            description="MA50 cruza a la baja la MA200",
        ),
        single_group_rule(
            "Overbought Reversal",
            [
                _c("RSI", "gt", 70, 30, is_required=True),
                _c("PRICE_CHANGE", "gt", 5, 20, order_index=1),
                _c("RS_3D", "gte", 90, 15, order_index=2),
            ],
            signal_type="SELL",
            strategy_type="reversal",
            description="RSI sobrecomprado, posible retroceso",
        ),
        single_group_rule(
            "Trend Continuation",
            [
                _c("MA50", "gt", compare_indicator="MA200", weight=20, is_required=True),
                _c("PRICE", "between", 0.95, 25, value2=1.05, compare_indicator="MA50", order_index=1),
                _c("RSI", "between", 40, 20, value2=60, order_index=2),
                _c("MACD_HISTOGRAM", "gt", 0, 15, order_index=3),
            ],
            strategy_type="trend",
            description="Tendencia fuerte con retroceso sano a la MA50",
        ),
        single_group_rule(
            "Value + Momentum",
            [
                _c("RS_1Y", "lt", 50, 20),
                _c("RS_1M", "gte", 60, 25, order_index=1),
                _c("RS_3D", "gte", 70, 25, order_index=2),
                _c("VOL_RATIO", "gte", 1.3, 15, order_index=3),
            ],
            strategy_type="custom",
            description="Rezagado a un año con momentum reciente",
        ),
    ]
    return {t.name: t for t in templates}


TEMPLATES: dict[str, Rule] = _build_templates()


def list_templates() -> list[str]:
    return sorted(TEMPLATES)


def get_template(name: str) -> Rule:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise ConfigurationError(
            f"Plantilla '{name}' no encontrada. Disponibles: {list_templates()}"
        ) from None


def sma_crossover(
    short: int = 20,
    long: int = 50,
    *,
    target_percent: float = 10.0,
    stop_loss_percent: float = 5.0,
) -> RuleSet:
    """
    Cruce de medias simples: BUY cuando MA<short> cruza al alza MA<long>,
    SELL cuando cruza a la baja. Cada regla tiene una única condición requerida,
    así que dispara con score 100 exactamente en la barra del cruce.
    """
    if short <= 0 or long <= 0 or short >= long:
        raise ConfigurationError(f"sma_crossover requiere 0 < short < long ({short}, {long})")
    fast, slow = f"MA{short}", f"MA{long}"
    entry = single_group_rule(
        f"{fast} cross above {slow}",
        [_c(fast, "cross_above", compare_indicator=slow, is_required=True)],
        signal_type="BUY",
        strategy_type="trend",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    exit_ = single_group_rule(
        f"{fast} cross below {slow}",
        [_c(fast, "cross_below", compare_indicator=slow, is_required=True)],
        signal_type="SELL",
        strategy_type="trend",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    return RuleSet(name=f"sma_crossover_{short}_{long}", rules=(entry, exit_))


def rsi_strategy(
    oversold: float = 30,
    overbought: float = 70,
    *,
    target_percent: float = 10.0,
    stop_loss_percent: float = 5.0,
) -> RuleSet:
    """BUY mientras RSI < oversold, SELL mientras RSI > overbought."""
    if not 0 < oversold < overbought < 100:
        raise ConfigurationError(
            f"rsi_strategy requiere 0 < oversold < overbought < 100 ({oversold}, {overbought})"
        )
    entry = single_group_rule(
        f"RSI below {format_number(oversold)}",
        [_c("RSI", "lt", oversold, is_required=True)],
        signal_type="BUY",
        strategy_type="reversal",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    exit_ = single_group_rule(
        f"RSI above {format_number(overbought)}",
        [_c("RSI", "gt", overbought, is_required=True)],
        signal_type="SELL",
        strategy_type="reversal",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    name = f"rsi_strategy_{format_number(oversold)}_{format_number(overbought)}"
    return RuleSet(name=name, rules=(entry, exit_))


def macd_strategy(
    confirm_line: bool = False,
    *,
    target_percent: float = 10.0,
    stop_loss_percent: float = 5.0,
) -> RuleSet:
    """
    BUY con histograma MACD > 0, SELL con histograma < 0. Con `confirm_line`
    la línea MACD también debe estar del mismo lado del cero.
    """
    buy = [_c("MACD_HISTOGRAM", "gt", 0, is_required=True)]
    sell = [_c("MACD_HISTOGRAM", "lt", 0, is_required=True)]
    if confirm_line:
        buy.append(_c("MACD", "gt", 0, is_required=True, order_index=1))
        sell.append(_c("MACD", "lt", 0, is_required=True, order_index=1))
    entry = single_group_rule(
        "MACD histogram positive",
        buy,
        signal_type="BUY",
        strategy_type="momentum",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    exit_ = single_group_rule(
        "MACD histogram negative",
        sell,
        signal_type="SELL",
        strategy_type="momentum",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    name = "macd_strategy_confirmed" if confirm_line else "macd_strategy"
    return RuleSet(name=name, rules=(entry, exit_))


def breakout_strategy(
    period: int = 20,
    *,
    target_percent: float = 10.0,
    stop_loss_percent: float = 5.0,
) -> RuleSet:
    """
    Ruptura de canal: BUY cuando el cierre supera el máximo de las `period`
    barras anteriores, SELL cuando cae bajo su mínimo.
    """
    if period <= 0:
        raise ConfigurationError(f"breakout_strategy requiere period > 0 ({period})")
    high, low = f"HIGH{period}", f"LOW{period}"
    entry = single_group_rule(
        f"PRICE above {high}",
        [_c("PRICE", "gt", compare_indicator=high, is_required=True)],
        signal_type="BUY",
        strategy_type="breakout",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    exit_ = single_group_rule(
        f"PRICE below {low}",
        [_c("PRICE", "lt", compare_indicator=low, is_required=True)],
        signal_type="SELL",
        strategy_type="breakout",
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
    )
    return RuleSet(name=f"breakout_strategy_{period}", rules=(entry, exit_))
