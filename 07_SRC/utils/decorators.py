# ==================================================
# ========  MODULE: decorators & timing utils  =====
# ==================================================
from __future__ import annotations

import logging
import threading
import time
from functools import wraps
from typing import Any, Callable, Dict, Literal, Optional, TypeVar

from utils.logger import get_logger, get_error_logger

# Public API
__all__ = [
    "TimerManager",
    "log_exceptions",
    "safe_timer",
]

F = TypeVar("F", bound=Callable[..., Any])


# ====[ Timing manager for cumulative profiling ]====
class TimerManager:
    """
    Cumulative timing statistics per named task.

    Filters record one entry per processed face ("interior", "boundary"),
    possibly from several worker threads, so `add` is lock-protected.
    """

    def __init__(self) -> None:
        self.stats: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def add(self, name: str, elapsed: float) -> None:
        """Add an elapsed time (seconds) under `name`."""
        with self._lock:
            info = self.stats.setdefault(name, {"total": 0.0, "count": 0})
            info["total"] = float(info["total"]) + float(elapsed)
            info["count"] = int(info["count"]) + 1

    def reset(self) -> None:
        with self._lock:
            self.stats.clear()

    def to_dict(self, digits: int = 3) -> Dict[str, Dict[str, float]]:
        """
        Timing statistics as a dictionary.

        Returns
        -------
        Dict[str, Dict[str, float]]
            {"task": {"total": float, "count": int, "avg": float}, ...}
        """
        out: Dict[str, Dict[str, float]] = {}
        with self._lock:
            for name, info in self.stats.items():
                total = float(info["total"])
                count = int(info["count"])
                avg = total / count if count > 0 else 0.0
                out[name] = {"total": round(total, digits), "count": count, "avg": round(avg, digits)}
        return out

    def to_list(
        self,
        sort_by: Literal["total", "avg"] = "total",
        descending: bool = True,
        digits: int = 3,
    ) -> list[tuple[str, int, float, float]]:
        """Rows of (name, count, total, avg) sorted by `sort_by`."""
        rows = [(name, int(v["count"]), v["total"], v["avg"]) for name, v in self.to_dict(digits).items()]
        key_idx = 2 if sort_by == "total" else 3
        rows.sort(key=lambda x: x[key_idx], reverse=descending)
        return rows

    def to_log(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        """Log the statistics table."""
        logger = logger or get_logger()
        logger.log(level, "Execution Time Summary:")
        for name, count, total, avg in self.to_list():
            logger.log(level, f" | {name:<20} | {count:>3} calls | {total:>8.3f}s total | {avg:>8.3f}s avg")

    def decorator(self, name: Optional[str] = None) -> Callable[[F], F]:
        """Decorator that accumulates elapsed times under `name` (or function name)."""
        def wrapper_decorator(func: F) -> F:
            label = name or func.__name__

            @wraps(func)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.add(label, time.perf_counter() - start)

            return wrapper  # type: ignore[return-value]
        return wrapper_decorator


# ====[ Exception logger decorator ]====
def log_exceptions(
    logger: Optional[logging.Logger] = None,
    raise_exception: bool = True,
) -> Callable[[F], F]:
    """
    Log exceptions raised by the wrapped function to the error logger.

    Parameters
    ----------
    logger : logging.Logger, optional
        Destination logger. None uses `get_error_logger()` at call time.
    raise_exception : bool, default True
        Re-raise after logging. With False the wrapper returns None.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                (logger or get_error_logger()).error(f"Exception in '{func.__qualname__}': {e}", exc_info=True)
                if raise_exception:
                    raise
                return None
        return wrapper  # type: ignore[return-value]
    return decorator


# ====[ Combined safe timer ]====
def safe_timer(
    log: bool = True,
    log_errors: bool = True,
    raise_exception: bool = True,
    name: Optional[str] = None,
    info_logger: Optional[logging.Logger] = None,
    error_logger: Optional[logging.Logger] = None,
) -> Callable[[F], F]:
    """
    Time a function and log its duration, logging failures on the error logger.

    Parameters
    ----------
    log : bool, default True
        Log execution time at INFO level.
    log_errors : bool, default True
        Log exceptions with traceback.
    raise_exception : bool, default True
        Re-raise exceptions after logging.
    name : str, optional
        Label used in log messages (defaults to the qualified function name).
    info_logger, error_logger : logging.Logger, optional
        Destination loggers, resolved at call time when None.
    """
    def decorator(func: F) -> F:
        label = name or func.__qualname__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if log_errors:
                    (error_logger or get_error_logger()).error(f"Exception in '{label}': {e}", exc_info=True)
                if raise_exception:
                    raise
                return None
            if log:
                elapsed = time.perf_counter() - start
                (info_logger or get_logger()).info(f"Execution time for '{label}': {elapsed:.3f} seconds")
            return result
        return wrapper  # type: ignore[return-value]
    return decorator
