# ==================================================
# ===============  MODULE: progress  ===============
# ==================================================
from __future__ import annotations

import threading
from typing import Callable, Dict, Optional

from tqdm import tqdm

from core.config import ProgressConfig
from core.exceptions import InvalidArgumentError, ProcessAborted

# Public API
__all__ = ["ProgressReporter", "ProgressAccumulator"]


# ==================================================
# ============  CLASS: ProgressReporter  ===========
# ==================================================
class ProgressReporter:
    """
    Pixel-count progress shared by every worker of one filter run.

    Workers never touch the shared counter per pixel: each one owns a
    `ProgressReporter.Chunk` that buffers `update_every` pixels before
    flushing under the lock. The flushed total is exact; between flushes
    the reported fraction lags by at most one chunk per worker.

    Parameters
    ----------
    total_pixels : int
        Number of pixels the run will visit.
    progress_cfg : ProgressConfig
        Granularity and tqdm switch.
    abort_event : threading.Event, optional
        Checked at every flush; a set event raises `ProcessAborted`.
    callback : Callable[[float], None], optional
        Called with the new fraction after every flush.
    desc : str, optional
        Bar label used when `progress_cfg.desc` is unset (filters pass their
        class name).
    """

    def __init__(
        self,
        total_pixels: int,
        progress_cfg: ProgressConfig = ProgressConfig(),
        abort_event: Optional[threading.Event] = None,
        callback: Optional[Callable[[float], None]] = None,
        desc: Optional[str] = None,
    ) -> None:
        self.total_pixels: int = max(0, int(total_pixels))
        self.cfg: ProgressConfig = progress_cfg
        self.abort_event = abort_event
        self.callback = callback
        self._completed: int = 0
        self._lock = threading.Lock()
        self._bar: Optional[tqdm] = None
        if self.cfg.enabled and self.cfg.use_tqdm:
            self._bar = tqdm(total=self.total_pixels, desc=self.cfg.desc or desc or "pixels", leave=False)

    # ====[ Per-worker chunk ]====
    class Chunk:
        """Local pixel counter owned by one worker."""

        def __init__(self, reporter: "ProgressReporter") -> None:
            self.reporter = reporter
            self.pending: int = 0
            self.every: int = int(reporter.cfg.update_every)

        def completed_pixel(self, count: int = 1) -> None:
            self.pending += count
            if self.pending >= self.every:
                self.flush()

        def flush(self) -> None:
            if self.pending:
                self.reporter.completed_pixels(self.pending)
                self.pending = 0

    def chunk(self) -> "ProgressReporter.Chunk":
        return ProgressReporter.Chunk(self)

    # ====[ Shared counter ]====
    def completed_pixels(self, count: int) -> None:
        """Add `count` visited pixels, update the bar, fire the callback and check abort."""
        if self.cfg.enabled:
            with self._lock:
                self._completed = min(self.total_pixels, self._completed + int(count))
                fraction = self.progress
                if self._bar is not None:
                    self._bar.update(int(count))
            if self.callback is not None:
                self.callback(fraction)
        self.check_abort()

    def check_abort(self) -> None:
        if self.abort_event is not None and self.abort_event.is_set():
            raise ProcessAborted(location="ProgressReporter")

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def progress(self) -> float:
        if self.total_pixels == 0:
            return 1.0
        return self._completed / self.total_pixels

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


# ==================================================
# ==========  CLASS: ProgressAccumulator  ==========
# ==================================================
class ProgressAccumulator:
    """
    Weighted progress of a filter built from several stages.

    Each stage registers with a weight; the accumulated progress is the
    weighted sum of the stage fractions. Restarting a stage keeps what it
    already contributed, mirroring a mini-pipeline run several times.

    Examples
    --------
    >>> acc = ProgressAccumulator()
    >>> acc.register("dilate", 0.5); acc.register("erode", 0.5)
    >>> acc.update("dilate", 1.0); acc.progress
    0.5
    """

    def __init__(self, callback: Optional[Callable[[float], None]] = None) -> None:
        self.callback = callback
        self._weights: Dict[str, float] = {}
        self._fractions: Dict[str, float] = {}
        self._base: float = 0.0
        self._lock = threading.Lock()

    def register(self, name: str, weight: float) -> None:
        if weight < 0:
            raise InvalidArgumentError(f"Stage weight must be non-negative, got {weight}.", "ProgressAccumulator")
        with self._lock:
            self._weights[name] = float(weight)
            self._fractions[name] = 0.0

    def stage_callback(self, name: str) -> Callable[[float], None]:
        """Callback suitable for `ProgressReporter(callback=...)` feeding stage `name`."""
        return lambda fraction: self.update(name, fraction)

    def start(self, name: str) -> None:
        """Stage restarted: bank its current contribution and reset its fraction."""
        with self._lock:
            self._check(name)
            self._base += self._fractions[name] * self._weights[name]
            self._fractions[name] = 0.0

    def update(self, name: str, fraction: float) -> None:
        with self._lock:
            self._check(name)
            self._fractions[name] = min(1.0, max(0.0, float(fraction)))
            value = self._value()
        if self.callback is not None:
            self.callback(value)

    def _check(self, name: str) -> None:
        if name not in self._weights:
            raise InvalidArgumentError(f"Unknown stage '{name}'.", "ProgressAccumulator")

    def _value(self) -> float:
        return self._base + sum(self._fractions[n] * w for n, w in self._weights.items())

    @property
    def progress(self) -> float:
        with self._lock:
            return self._value()

    def reset(self) -> None:
        with self._lock:
            self._base = 0.0
            for name in self._fractions:
                self._fractions[name] = 0.0
