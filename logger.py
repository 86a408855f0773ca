"""
logger.py
=========
Unified logging for the file-share server.
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

ROOT_LOGGER = "fileshare"


def setup_logging(log_dir: Path = None, console_level=logging.INFO, file_level=logging.DEBUG):
    """
    Initialise the project logger.

    Args:
        log_dir: folder for ``fileshare.log``; no file handler when None
        console_level: console level, INFO by default
        file_level: file level, DEBUG by default

    Returns:
        the root project logger
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)

    # avoid stacking handlers on repeated setup
    if root.handlers:
        return root

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        # 5MB rolling, 3 backups
        file_handler = RotatingFileHandler(
            log_dir / "fileshare.log", maxBytes=5*1024*1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    return root


def get_logger(name: str):
    """
    Child logger, e.g. ``get_logger("watcher")`` -> ``fileshare.watcher``.
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
