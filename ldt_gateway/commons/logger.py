import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def _daily_logfile(root: str) -> Path:
    logdir = Path(root) / datetime.now().strftime("%Y/%m/%d")
    logdir.mkdir(parents=True, exist_ok=True)
    return logdir / "app.log"


def setup_logging(root: str, level: str = "INFO", console: bool = True):
    """Fichero diario rotado a medianoche (14 dias) y, opcionalmente, consola.

    diagnose=False en todos los sinks: las trazas no vuelcan variables locales,
    que pueden contener payloads con datos de pacientes.
    """
    level = (level or "INFO").upper()
    logger.remove()
    logger.add(
        str(_daily_logfile(root)),
        format=LOG_FORMAT,
        rotation="00:00",
        retention="14 days",
        level=level,
        encoding="utf-8",
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    if console:
        logger.add(sys.stderr, format=LOG_FORMAT, level=level, diagnose=False)
    return logger
