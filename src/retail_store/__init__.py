"""Retail store core: inventory, cash desks, sales, pricing and receipts.

Importing the package sets up the ``retail_store`` logger. Everything is
written to a rotating file under ``.logs``; the console only shows warnings
and errors so CLI output stays readable. ``RETAIL_STORE_LOG_DIR`` moves the
log folder elsewhere.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("RETAIL_STORE_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    log_dir: Optional[Path] = None,
    *,
    console_level: int = logging.WARNING,
) -> logging.Logger:
    """Attach the file and console handlers to the package logger once.

    A log directory that cannot be created only costs the file handler; the
    console handler is always installed.
    """

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    target_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    log_file = target_dir / f"{__name__}.log"
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(log_file, maxBytes=512_000, backupCount=3, encoding="utf-8")
    except OSError as exc:
        print(f"Warning: file logging disabled, cannot open '{log_file}': {exc}", file=sys.stderr)
    else:
        rotating.setLevel(logging.INFO)
        rotating.setFormatter(formatter)
        logger.addHandler(rotating)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    logger.addHandler(console)
    return logger


log = configure_logging()
log.debug("Package logger ready")

__all__ = ["configure_logging", "log", "__version__"]
