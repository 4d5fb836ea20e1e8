# ==================================================
# =============  MODULE: neighborhood  =============
# ==================================================
from __future__ import annotations

from functools import lru_cache
from typing import Any, Sequence, Tuple
import math

import numpy as np

from core.exceptions import InvalidArgumentError
from core.region import Coordinate, CoordinateLike, as_coordinate

# Public API
__all__ = [
    "neighborhood_offsets",
    "compute_offset_table",
    "Neighborhood",
]


# ====[ Shared, read-only tables ]====
@lru_cache(maxsize=128)
def neighborhood_offsets(radius: Coordinate) -> np.ndarray:
    """
    Relative coordinates of every neighbor for a radius, shape `(N, D)`.

    Neighbors are numbered row-major with axis 0 fastest, so neighbor 0 is
    `-radius` and neighbor `N // 2` is the center. The array is memoised and
    read-only; all iterators with the same radius share it.
    """
    extents = [2 * r + 1 for r in radius]
    n = math.prod(extents)
    table = np.empty((n, len(radius)), dtype=np.int64)
    for pos in range(n):
        rem = pos
        for axis, (r, e) in enumerate(zip(radius, extents)):
            rem, q = divmod(rem, e)
            table[pos, axis] = q - r
    table.flags.writeable = False
    return table


@lru_cache(maxsize=256)
def compute_offset_table(strides: Coordinate, radius: Coordinate) -> np.ndarray:
    """
    Linear buffer deltas of every neighbor, shape `(N,)`.

    Entry `k` equals the buffer offset of `neighborhood_offsets(radius)[k]`
    for a buffer with the given `strides`. Memoised per `(strides, radius)`:
    the table is built once, marked read-only, then shared by every
    iterator (and thread) walking a buffer of the same geometry.
    """
    if len(strides) < len(radius):
        raise InvalidArgumentError(f"Strides {strides} do not cover radius {radius}.", "compute_offset_table")
    rel = neighborhood_offsets(radius)
    table = rel @ np.asarray(strides[: len(radius)], dtype=np.int64)
    table.flags.writeable = False
    return table


# ==================================================
# =============  CLASS: Neighborhood  ==============
# ==================================================
class Neighborhood:
    """
    Fixed-radius window of values (coefficients), laid out like the iterator.

    Parameters
    ----------
    radius : int or Sequence[int]
        Half-width per axis.
    dimension : int, optional
        Required when `radius` is a scalar.
    dtype : dtype-like, default np.float64
        Type of the stored values.
    """

    def __init__(self, radius: CoordinateLike = 1, dimension: int | None = None, dtype: Any = np.float64) -> None:
        self.dtype = np.dtype(dtype)
        self.set_radius(radius, dimension)

    def set_radius(self, radius: CoordinateLike, dimension: int | None = None) -> None:
        dim = dimension if dimension is not None else getattr(self, "dimension", None)
        self.radius: Coordinate = as_coordinate(radius, dim, non_negative=True, name="radius")
        self.dimension: int = len(self.radius)
        self.data: np.ndarray = np.zeros(self.size, dtype=self.dtype)

    # ====[ Geometry ]====
    @property
    def size(self) -> int:
        return math.prod(2 * r + 1 for r in self.radius)

    def get_size(self) -> Coordinate:
        """Extent of the window per axis (`2 * radius + 1`)."""
        return tuple(2 * r + 1 for r in self.radius)

    def get_stride(self, axis: int) -> int:
        """Index distance between neighbors one step apart along `axis`."""
        return math.prod(2 * r + 1 for r in self.radius[:axis])

    def get_center_neighborhood_index(self) -> int:
        return self.size // 2

    def get_offset(self, i: int) -> Coordinate:
        """Relative coordinate of neighbor `i`."""
        return tuple(int(v) for v in neighborhood_offsets(self.radius)[i])

    def get_neighborhood_index(self, offset: Sequence[int]) -> int:
        """Neighbor number of a relative coordinate."""
        if len(offset) != self.dimension:
            raise InvalidArgumentError(f"Offset {tuple(offset)} has wrong dimension.", type(self).__name__)
        n = 0
        for axis, (o, r) in enumerate(zip(offset, self.radius)):
            if abs(int(o)) > r:
                raise InvalidArgumentError(f"Offset {tuple(offset)} exceeds radius {self.radius}.", type(self).__name__)
            n += (int(o) + r) * self.get_stride(axis)
        return n

    def get_slice(self, axis: int) -> Tuple[int, int, int]:
        """
        (start, length, step) of the line through the center along `axis`.

        Indexing `data[start : start + length * step : step]` yields it.
        """
        if not 0 <= axis < self.dimension:
            raise InvalidArgumentError(f"Axis {axis} out of range.", type(self).__name__)
        stride = self.get_stride(axis)
        length = 2 * self.radius[axis] + 1
        start = self.get_center_neighborhood_index() - self.radius[axis] * stride
        return start, length, stride

    # ====[ Values ]====
    def __getitem__(self, i: int) -> Any:
        return self.data[i]

    def __setitem__(self, i: int, value: Any) -> None:
        self.data[i] = value

    def __len__(self) -> int:
        return self.size

    def as_array(self) -> np.ndarray:
        """Values reshaped in array order `(..., axis1, axis0)`."""
        return self.data.reshape(tuple(reversed(self.get_size())))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(radius={self.radius})"
