# ============================================================
# src/core/logger_config.py — Configuración central del logger
# ------------------------------------------------------------
# init_logger() configura el logger global de Loguru según el
# entorno (.env). Los módulos del motor NUNCA configuran logs:
# solo hacen `from loguru import logger` y emiten.
#
# El logger escribe en:
#   - Consola (colorizada, nivel configurable con LOG_LEVEL)
#   - Archivo de logs (rotación diaria en LOG_DIR, por defecto data/logs/)
#
# enqueue=True es obligatorio: el scanner en vivo emite desde
# varios hilos (scheduler + worker del tick).
# ============================================================

import os
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger


# ============================================================
# Función: init_logger
# ============================================================
def init_logger(level: str | None = None, log_dir: str | Path | None = None) -> None:
    """
    Inicializa la configuración global del logger según el entorno.
    Llama a esta función una sola vez al inicio del programa (main.py).
    Llamadas posteriores reconfiguran los sinks (idempotente).
    """
    # --- Cargar variables del .env ---
    load_dotenv()
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    # --- Crear carpeta para logs (si no existe) ---
    log_path = Path(log_dir or os.getenv("LOG_DIR", "data/logs"))
    log_path.mkdir(parents=True, exist_ok=True)
    log_file_path = log_path / "signals.log"

    # --- Eliminar configuración previa ---
    logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{thread.name}</cyan> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    # --- Consola (colorizada) ---
    logger.add(
        sink=lambda msg: print(msg, end=""),
        level=log_level,
        colorize=True,
        format=log_format,
    )

    # --- Archivo (rotación diaria) ---
    logger.add(
        sink=log_file_path,
        level=log_level,
        rotation="1 day",
        retention="7 days",
        enqueue=True,
        backtrace=True,
        diagnose=False,  # sin valores de variables en las trazas
        format=log_format,
    )

    logger.info(f"Logger inicializado (nivel {log_level})")
    logger.debug(f"Logs guardados en: {log_file_path}")
