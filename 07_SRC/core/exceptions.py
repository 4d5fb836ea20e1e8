# ==================================================
# =============  MODULE: exceptions  ===============
# ==================================================
from __future__ import annotations

from typing import Any, Optional

# Public API
__all__ = [
    "NDIterError",
    "RangeError",
    "InvalidArgumentError",
    "InvalidRequestedRegionError",
    "ProcessAborted",
]


# ====[ Base error – description + location ]====
class NDIterError(Exception):
    """
    Base class for every error raised by the iteration core.

    Parameters
    ----------
    description : str
        Human readable description of the failure.
    location : str, optional
        Where the failure was detected (e.g. "NeighborhoodIterator.set_pixel").
    """

    def __init__(self, description: str = "", location: Optional[str] = None) -> None:
        self.description: str = description
        self.location: Optional[str] = location
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.location:
            return f"[{self.location}] {self.description}"
        return self.description


class RangeError(NDIterError, IndexError):
    """Access outside a valid range: past-the-end iteration, writes outside the buffer."""


class InvalidArgumentError(NDIterError, ValueError):
    """Invalid argument: dimension mismatch, negative size, bad configuration value."""


class InvalidRequestedRegionError(NDIterError):
    """
    Requested region falls outside the largest possible region of an image.

    Attributes
    ----------
    region : ImageRegion or None
        The region that was attempted (before cropping).
    data_object : Any
        The image whose largest possible region was exceeded.
    """

    def __init__(
        self,
        description: str = "Requested region is outside largest possible region.",
        location: Optional[str] = None,
        region: Any = None,
        data_object: Any = None,
    ) -> None:
        self.region = region
        self.data_object = data_object
        super().__init__(description, location)

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (requested: {self.region!r})" if self.region is not None else base


class ProcessAborted(NDIterError):
    """Filter execution was aborted by an external request."""

    def __init__(self, description: str = "", location: Optional[str] = None) -> None:
        super().__init__(description or "Filter execution was aborted by an external request", location)
