import logging
import os
from pathlib import Path

__all__ = ["logger"]

LOG_DIR = Path(os.getenv("TABPULSE_LOG_DIR", "./log"))

logger = logging.getLogger("tabpulse")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    _fh = logging.FileHandler(LOG_DIR / "tabpulse.log", encoding="utf-8")
    _fh.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_fh)
