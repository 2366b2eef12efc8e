"""Shop Ledger: bookkeeping for a small shop.

Importing the package configures the ``shop_ledger`` logger that every module
writes to through :data:`log`. Records go to a rotating file and, from
WARNING upwards, to stderr. ``SHOP_LEDGER_LOG_DIR`` moves the log directory
and ``SHOP_LEDGER_CONSOLE_LEVEL`` changes what reaches the terminal.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("SHOP_LEDGER_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE_NAME = "shop_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _console_level() -> int:
    name = os.environ.get("SHOP_LEDGER_CONSOLE_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(log_dir: Optional[Path] = None) -> logging.Logger:
    """Attach the file and console handlers to the package logger once.

    A log directory that cannot be created only costs the file handler; the
    console handler is always installed.
    """

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    target_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    log_file = target_dir / LOG_FILE_NAME
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(f"Warning: unable to initialize log file at '{log_file}': {exc}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_console_level())
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = configure_logging()
log.debug("Logger initialized for the 'shop_ledger' package.")
