# ============================================================
# main.py — Punto de entrada del motor de señales
# ------------------------------------------------------------
# Añade /src al sys.path ANTES de importar módulos del paquete
# "core.*" y ofrece tres subcomandos:
#
#   python main.py evaluate VNM --as-of 2024-06-28 [--rule composite]
#   python main.py backtest --universe VNM,FPT --start 2023-01-01 --end 2023-12-31
#   python main.py scan            (bot en primer plano hasta Ctrl+C)
# ============================================================

import argparse
from datetime import date
import json
from pathlib import Path
import sys
import time

# --- 1) AÑADIR ./src AL sys.path ANTES DE NADA ----------------
PROJECT_ROOT = Path(__file__).parent
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# --- 2) CARGAR .env -------------------------------------------
from dotenv import load_dotenv  # noqa: E402 (import tardío por orden lógico)

load_dotenv()

# --- 3) IMPORTS DEL MOTOR -------------------------------------
from loguru import logger  # noqa: E402

from core.engine import SignalEngine  # noqa: E402
from core.errors import SignalEngineError  # noqa: E402
from core.ledger import write_run  # noqa: E402
from core.logger_config import init_logger  # noqa: E402


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"fecha inválida (YYYY-MM-DD): {raw}") from exc


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Motor de señales: evaluación, backtest y scanner")
    p.add_argument("--log-level", default=None, help="Nivel de log (por defecto LOG_LEVEL o INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    ev = sub.add_parser("evaluate", help="Evalúa una regla/estrategia para un símbolo")
    ev.add_argument("symbol")
    ev.add_argument("--as-of", type=_parse_date, default=date.today())
    ev.add_argument("--rule", default="composite", help="Regla, plantilla, familia o 'composite'")

    bt = sub.add_parser("backtest", help="Backtest de una regla sobre un universo")
    bt.add_argument("--universe", required=True, help="Símbolos separados por comas")
    bt.add_argument("--start", type=_parse_date, required=True)
    bt.add_argument("--end", type=_parse_date, required=True)
    bt.add_argument("--rule", default="sma_crossover")
    bt.add_argument("--capital", type=float, default=None)
    bt.add_argument("--commission", type=float, default=None)
    bt.add_argument("--risk", type=float, default=None)
    bt.add_argument("--out", default=None, help="Directorio donde volcar trades/equity/summary")

    sub.add_parser("scan", help="Arranca el scanner en primer plano (Ctrl+C para parar)")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    init_logger(level=args.log_level)

    try:
        engine = SignalEngine()
        if args.command == "evaluate":
            signal = engine.evaluate(args.symbol, args.as_of, args.rule)
            print(json.dumps(signal.as_dict(), indent=2, ensure_ascii=False, default=str))

        elif args.command == "backtest":
            universe = [s.strip() for s in args.universe.split(",") if s.strip()]
            report = engine.run_backtest(
                args.rule,
                universe,
                (args.start, args.end),
                args.capital,
                args.commission,
                args.risk,
            )
            print(json.dumps(report.summary(), indent=2, ensure_ascii=False))
            if args.out:
                logger.info(f"Resultados volcados en {write_run(args.out, report)}")

        elif args.command == "scan":
            engine.start_scanner()
            try:
                while engine.is_scanner_running():
                    time.sleep(1.0)
            except KeyboardInterrupt:
                logger.info("Ctrl+C recibido, parando el scanner...")
            finally:
                engine.stop_scanner()

    except SignalEngineError as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
