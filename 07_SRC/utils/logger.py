# ==================================================
# ================ Logger Utilities ================
# ==================================================
from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# Public API
__all__ = ["DEFAULT_LOG_DIR", "LOG_FORMAT", "make_file_handler", "get_logger", "get_error_logger", "get_debug_logger"]

# ====[ Global logging configuration ]====
DEFAULT_LOG_DIR: Path = Path(os.environ.get("NDITER_LOG_DIR", Path.cwd() / "logs")).resolve()

# Worker pieces run on joblib threads; the thread name tells them apart.
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s"


def _sync_handler_levels(logger: logging.Logger, level: int) -> None:
    """Align the level of every handler already attached to `logger`."""
    for h in logger.handlers:
        h.setLevel(level)


# ====[ Shared rotating file handler generator ]====
def make_file_handler(
    log_path: Union[str, Path],
    level: int,
    when: str = "midnight",
    backupCount: int = 7,
    encoding: str = "utf-8",
) -> TimedRotatingFileHandler:
    """
    Create a TimedRotatingFileHandler with the project formatter.

    Parameters
    ----------
    log_path : str | Path
        Output log file path (parent directories are created).
    level : int
        Logging level (e.g., logging.INFO).
    when : str, default 'midnight'
        Rotation interval basis per logging.handlers.TimedRotatingFileHandler.
    backupCount : int, default 7
        Number of backup files to keep.
    encoding : str, default 'utf-8'
        File encoding.

    Returns
    -------
    TimedRotatingFileHandler
    """
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(path),
        when=when,
        backupCount=backupCount,
        encoding=encoding,
        delay=True,  # open file on first emit
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _configure(
    name: str,
    file_stem: str,
    log_dir: Optional[Union[str, Path]],
    level: int,
    backupCount: int,
    console: bool,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        _sync_handler_levels(logger, level)
        return logger

    base_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
    today = datetime.now().strftime("%Y-%m-%d")
    logger.addHandler(make_file_handler(base_dir / f"{file_stem}_{today}.log", level, backupCount=backupCount))

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)
    return logger


# ==================================================
# ================ Logger Factory ==================
# ==================================================

# ====[ Main logger: console + file ]====
def get_logger(
    name: str = "nditer",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    backupCount: int = 7,
) -> logging.Logger:
    """
    Logger writing to the console and to a daily rotating file.

    Idempotent: repeated calls with the same `name` reuse the handlers of the
    first call and only resynchronize their level. Propagation is disabled
    to avoid duplicate messages from the root logger.

    Parameters
    ----------
    name : str, default "nditer"
        Logger name, also the log file stem.
    log_dir : str or Path, optional
        Directory of the log files. None uses DEFAULT_LOG_DIR.
    level : int, default logging.INFO
        Logging level.
    backupCount : int, default 7
        Number of rotated files to keep.
    """
    return _configure(name, name, log_dir, level, backupCount, console=True)


# ====[ Error logger: file only ]====
def get_error_logger(
    name: str = "nditer.errors",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.ERROR,
    backupCount: int = 30,
) -> logging.Logger:
    """Dedicated file-only logger for errors (kept 30 days by default)."""
    return _configure(name, "errors", log_dir, level, backupCount, console=False)


# ====[ Debug logger: file only ]====
def get_debug_logger(
    name: str = "nditer.debug",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.DEBUG,
    backupCount: int = 7,
) -> logging.Logger:
    """File-only logger for per-face / per-piece traces when `GlobalConfig.verbose` is on."""
    return _configure(name, "debug", log_dir, level, backupCount, console=False)
