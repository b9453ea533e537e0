"""
Logging for CFA.

Every subsystem logs under the "cfa" namespace (cfa.auction, cfa.gateway,
cfa.storage, ...). Console output is colored; a plain-text file under the
configured log directory can be added with setup_logging(log_to_file=True).
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "cfa"
LOG_FILE_NAME = "cfa.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

_configured = False


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
        datefmt=DATE_FORMAT,
        log_colors=LOG_COLORS,
    ))
    return handler


def _file_handler(log_dir: Path, level: int) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
        datefmt=DATE_FORMAT,
    ))
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_to_file: bool = False,
) -> logging.Logger:
    """
    (Re)configure the cfa logger tree.

    Safe to call more than once: the CLI configures a console first and
    reconfigures once the settings (log dir, file logging) are known.

    Args:
        level: Logging level for every handler
        log_dir: Directory for cfa.log; ./logs when omitted
        log_to_file: Also write to a log file

    Returns:
        The root "cfa" logger
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)
    root.addHandler(_console_handler(level))
    if log_to_file:
        root.addHandler(_file_handler(Path(log_dir) if log_dir else Path("logs"), level))

    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Subsystem logger, e.g. get_logger("auction") -> cfa.auction"""
    if not _configured:
        setup_logging()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
