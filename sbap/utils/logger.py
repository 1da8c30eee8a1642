"""
Logging for SBAP.

Every module logs through a child of the "sbap" logger:

    logger = get_logger("auction")      # -> "sbap.auction"

Console output is colored with colorlog. The CLI additionally writes a
rotating log file under the data directory. Library code never configures
logging itself beyond the lazy console default.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

import colorlog

ROOT = "sbap"
LOG_FILE = "sbap.log"

LINE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
        datefmt=DATE_FORMAT,
        log_colors=LEVEL_COLORS,
    ))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class SBAPLogger:
    """Process-wide logging state"""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = True,
        levels: Optional[Dict[str, int]] = None,
    ):
        """
        Configure the "sbap" logger tree.

        Args:
            level: Level of the root "sbap" logger and its handlers
            log_dir: Directory of the log file; ./logs when None
            log_to_file: Also write to a rotating file
            levels: Per-subsystem overrides, e.g. {"host": logging.WARNING}
        """
        if cls._initialized:
            return

        root = logging.getLogger(ROOT)
        root.setLevel(level)
        root.handlers.clear()
        root.propagate = False
        root.addHandler(_console_handler(level))

        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            cls._log_file = directory / LOG_FILE
            root.addHandler(_file_handler(cls._log_file, level))

        for name, sub_level in (levels or {}).items():
            logging.getLogger(f"{ROOT}.{name}").setLevel(sub_level)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        # Modules fetch loggers at import time; stay console-only until the CLI says otherwise
        if not cls._initialized:
            cls.setup(log_to_file=False)
        return logging.getLogger(f"{ROOT}.{name}")

    @classmethod
    def log_file(cls) -> Optional[Path]:
        return cls._log_file

    @classmethod
    def reset(cls) -> None:
        """Drop handlers so the next setup() starts fresh."""
        root = logging.getLogger(ROOT)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        cls._initialized = False
        cls._log_file = None


def get_logger(name: str) -> logging.Logger:
    """Logger for one subsystem ('host', 'token', 'auction', 'factory', ...)"""
    return SBAPLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = True,
    levels: Optional[Dict[str, int]] = None,
):
    """Replace the current logging setup"""
    SBAPLogger.reset()
    SBAPLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, levels=levels)
