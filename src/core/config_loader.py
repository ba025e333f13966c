# ============================================================
# src/core/config_loader.py — Cargador central de configuración
# ------------------------------------------------------------
# OBJETIVO:
#   Leer la configuración del motor desde un YAML
#   (src/config/config.yaml) y aplicar "overrides" desde variables
#   de entorno (.env).
#
# CARACTERÍSTICAS:
#   - Cache interna (evita relecturas del archivo en cada import).
#   - Overrides vía .env (p.ej., LOG_LEVEL, COMMISSION_RATE).
#   - Validación mínima del esquema (claves imprescindibles).
#   - La validación de valores (rangos, pesos que suman 1.0...) vive en
#     core/settings.py y lanza ConfigurationError.
#
# USO BÁSICO:
#   from core.config_loader import get_config, reload_config
#   cfg = get_config()
#   rate = cfg["backtest"]["commission_rate"]
#
# NOTA:
#   Este módulo NO configura logs (evita dependencia circular).
# ============================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, MutableMapping, Optional

from dotenv import load_dotenv
import yaml

from core.errors import ConfigurationError

# ------------------------------------------------------------
# Constantes y cache interna
# ------------------------------------------------------------
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "config.yaml"

# Se invalida llamando a reload_config().
_CONFIG_CACHE: Optional[Dict[str, Any]] = None

# Mapeo: ENV_VAR -> (ruta en config.yaml, tipo)
ENV_TO_CFG: Dict[str, tuple[tuple[str, ...], type]] = {
    "LOG_LEVEL": (("environment", "log_level"), str),
    "DATA_DIR": (("data", "dir"), str),
    "RULES_FILE": (("data", "rules_file"), str),
    "INITIAL_CAPITAL": (("backtest", "initial_capital"), float),
    "COMMISSION_RATE": (("backtest", "commission_rate"), float),
    "RISK_PER_TRADE": (("backtest", "risk_per_trade"), float),
    "SCANNER_INTERVAL_SECS": (("scanner", "interval_secs"), float),
    "SCANNER_CONFIDENCE": (("scanner", "confidence_threshold"), float),
    "SCANNER_EXECUTE_TRADES": (("scanner", "execute_trades"), bool),
    "MARKET_TIMEZONE": (("scanner", "timezone"), str),
}


# ------------------------------------------------------------
# Utilidades internas de tipos / paths
# ------------------------------------------------------------
def _to_bool(value: Any, default: bool = False) -> bool:
    """
    Convierte una cadena/valor a booleano de forma robusta.
    Acepta: "true"/"false", "1"/"0", True/False, etc.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    return s in {"1", "true", "t", "yes", "y", "on"}


def _to_float(env_var: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{env_var} debe ser numérico (recibido: {value!r})") from exc


def _deep_set(d: MutableMapping[str, Any], keys: Iterable[str], value: Any) -> None:
    """
    Asigna value en un diccionario anidado siguiendo la lista de 'keys'.
    Crea los nodos intermedios si no existen.
    """
    keys = list(keys)
    current = d
    for k in keys[:-1]:
        if k not in current or not isinstance(current[k], dict):
            current[k] = {}
        current = current[k]
    current[keys[-1]] = value


# ------------------------------------------------------------
# Carga YAML + overrides desde .env
# ------------------------------------------------------------
def _load_yaml_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"No se encontró el archivo de configuración: {path.resolve()}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"El YAML debe mapear a dict en la raíz. Archivo: {path}")
    return data


def _apply_env_overrides(cfg: Dict[str, Any]) -> None:
    """Aplica overrides de variables de entorno (.env) sobre el dict `cfg`."""
    load_dotenv(override=False)

    for env_var, (path_keys, kind) in ENV_TO_CFG.items():
        if env_var not in os.environ:
            continue
        raw = os.getenv(env_var)

        value: Any
        if kind is bool:
            value = _to_bool(raw)
        elif kind is float:
            value = _to_float(env_var, raw)
        else:
            value = raw

        _deep_set(cfg, path_keys, value)


# ------------------------------------------------------------
# Validación mínima del esquema (imprescindibles)
# ------------------------------------------------------------
def _validate_schema(cfg: Dict[str, Any]) -> None:
    """Valida que existan las secciones y claves mínimas."""
    required_paths = [
        ("backtest", "commission_rate"),
        ("backtest", "risk_per_trade"),
        ("composite", "weights"),
        ("scanner", "interval_secs"),
        ("scanner", "market_open"),
        ("scanner", "market_close"),
    ]

    missing: List[str] = []
    for path_keys in required_paths:
        if get_nested(cfg, *path_keys) is None:
            missing.append(".".join(path_keys))

    if missing:
        raise ConfigurationError("Faltan claves imprescindibles en config.yaml", missing)


# ------------------------------------------------------------
# API pública
# ------------------------------------------------------------
def get_config(path: Optional[Path | str] = None, use_cache: bool = True) -> Dict[str, Any]:
    """
    Devuelve la configuración como diccionario.
    - path: ruta alternativa al YAML (opcional).
    - use_cache: si True, reutiliza la última carga.
    """
    global _CONFIG_CACHE
    if use_cache and path is None and _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    cfg = _load_yaml_config(cfg_path)
    _apply_env_overrides(cfg)
    _validate_schema(cfg)

    if path is None:
        _CONFIG_CACHE = cfg
    return cfg


def reload_config(path: Optional[Path | str] = None) -> Dict[str, Any]:
    """Fuerza la recarga del YAML y re-aplica overrides del .env."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = None
    return get_config(path=path, use_cache=False)


def get_nested(cfg: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """
    Acceso seguro a valores anidados: get_nested(cfg, "scanner", "timezone")
    Devuelve `default` si no existe la ruta.
    """
    node: Any = cfg
    for k in keys:
        if not isinstance(node, dict) or k not in node:
            return default
        node = node[k]
    return node
