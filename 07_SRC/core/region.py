# ==================================================
# ===============  MODULE: region  =================
# ==================================================
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union
import math

import numpy as np

from core.exceptions import InvalidArgumentError

# Public API
__all__ = [
    "Coordinate",
    "CoordinateLike",
    "as_coordinate",
    "ImageRegion",
    "make_region",
]

Coordinate = Tuple[int, ...]
CoordinateLike = Union[int, Sequence[int]]


# ====[ Coordinate helpers ]====
def as_coordinate(
    value: CoordinateLike,
    dimension: Optional[int] = None,
    non_negative: bool = False,
    name: str = "coordinate",
) -> Coordinate:
    """
    Normalize a scalar or sequence into an integer tuple of a given length.

    Parameters
    ----------
    value : int or Sequence[int]
        A scalar is broadcast to every axis (requires `dimension`).
    dimension : int, optional
        Expected length. If None, the length of `value` is used.
    non_negative : bool, default False
        If True, every component must be >= 0 (sizes, radii).
    name : str, default "coordinate"
        Label used in error messages.

    Returns
    -------
    Coordinate
        Tuple of Python ints.

    Raises
    ------
    InvalidArgumentError
        On length mismatch, zero dimension, or negative components when
        `non_negative` is requested.
    """
    if isinstance(value, (int, np.integer)):
        if dimension is None:
            raise InvalidArgumentError(f"Cannot broadcast scalar {name} without a dimension.", "as_coordinate")
        coord = (int(value),) * dimension
    else:
        coord = tuple(int(v) for v in value)
        if dimension is not None and len(coord) != dimension:
            raise InvalidArgumentError(
                f"{name} {coord} has dimension {len(coord)}, expected {dimension}.", "as_coordinate"
            )
    if len(coord) == 0:
        raise InvalidArgumentError(f"Zero-dimensional {name} is not supported.", "as_coordinate")
    if non_negative and any(c < 0 for c in coord):
        raise InvalidArgumentError(f"{name} {coord} must be non-negative on every axis.", "as_coordinate")
    return coord


# ==================================================
# ================  CLASS: ImageRegion  ============
# ==================================================
@dataclass(frozen=True)
class ImageRegion:
    """
    Axis-aligned rectangular index range: an origin `index` and an extent `size`.

    Regions are immutable; every geometric operation returns a new region.
    Axis 0 is the fastest varying axis (row-major with axis 0 first), which
    matches the flat buffer layout used by `core.image.Image`.

    Attributes
    ----------
    index : Coordinate
        First index of the region (inclusive).
    size : Coordinate
        Number of pixels along each axis (non-negative).
    """
    index: Coordinate
    size: Coordinate

    def __post_init__(self) -> None:
        index = as_coordinate(self.index, name="region index")
        size = as_coordinate(self.size, dimension=len(index), non_negative=True, name="region size")
        object.__setattr__(self, "index", index)
        object.__setattr__(self, "size", size)

    # ====[ Basic geometry ]====
    @property
    def dimension(self) -> int:
        return len(self.index)

    @property
    def end_index(self) -> Coordinate:
        """One past the last index on every axis (exclusive bound)."""
        return tuple(i + s for i, s in zip(self.index, self.size))

    @property
    def upper_index(self) -> Coordinate:
        """Last index on every axis (inclusive bound)."""
        return tuple(i + s - 1 for i, s in zip(self.index, self.size))

    @property
    def is_empty(self) -> bool:
        return any(s == 0 for s in self.size)

    def get_number_of_pixels(self) -> int:
        """Product of the size components."""
        return math.prod(self.size)

    # ====[ Containment ]====
    def is_inside(self, other: Union["ImageRegion", Sequence[int]]) -> bool:
        """
        Test whether an index or a whole region lies inside this region.

        An empty region is inside any region of the same dimension.
        """
        if isinstance(other, ImageRegion):
            self._check_dimension(other)
            if other.is_empty:
                return True
            return all(
                si <= oi and oi + os <= si + ss
                for si, ss, oi, os in zip(self.index, self.size, other.index, other.size)
            )
        if len(other) != self.dimension:
            raise InvalidArgumentError(
                f"Index {tuple(other)} does not match region dimension {self.dimension}.", "ImageRegion.is_inside"
            )
        return all(s <= int(i) < s + n for s, n, i in zip(self.index, self.size, other))

    # ====[ Pure geometric operations ]====
    def crop(self, other: "ImageRegion") -> Optional["ImageRegion"]:
        """
        Intersect this region with `other`.

        Returns
        -------
        ImageRegion or None
            The intersection, or None when the regions do not overlap at all.
        """
        self._check_dimension(other)
        start, size = [], []
        for si, ss, oi, os in zip(self.index, self.size, other.index, other.size):
            lo = max(si, oi)
            hi = min(si + ss, oi + os)
            if hi <= lo:
                return None
            start.append(lo)
            size.append(hi - lo)
        return ImageRegion(tuple(start), tuple(size))

    def pad_by_radius(self, radius: CoordinateLike) -> "ImageRegion":
        """
        Grow the region symmetrically by `radius` on every axis (no clamping).

        Callers crop the result against the largest possible region and treat
        a failed crop as a requested region falling outside the image.
        """
        r = as_coordinate(radius, self.dimension, non_negative=True, name="radius")
        return ImageRegion(
            tuple(i - ri for i, ri in zip(self.index, r)),
            tuple(s + 2 * ri for s, ri in zip(self.size, r)),
        )

    def shrink_by_radius(self, radius: CoordinateLike) -> "ImageRegion":
        """Shrink symmetrically by `radius`; axes that would go negative collapse to size 0."""
        r = as_coordinate(radius, self.dimension, non_negative=True, name="radius")
        return ImageRegion(
            tuple(i + ri for i, ri in zip(self.index, r)),
            tuple(max(0, s - 2 * ri) for s, ri in zip(self.size, r)),
        )

    def slice_region(self, axis: int, start: int, length: int) -> "ImageRegion":
        """Copy of the region restricted to `[start, start + length)` on `axis`."""
        if not 0 <= axis < self.dimension:
            raise InvalidArgumentError(f"Axis {axis} out of range for dimension {self.dimension}.", "ImageRegion.slice_region")
        index = list(self.index)
        size = list(self.size)
        index[axis] = int(start)
        size[axis] = max(0, int(length))
        return ImageRegion(tuple(index), tuple(size))

    # ====[ Linear position <-> index (region relative) ]====
    def compute_offset(self, index: Sequence[int]) -> int:
        """Linear position of `index` inside the region, axis 0 fastest."""
        offset, stride = 0, 1
        for i, s, n in zip(index, self.index, self.size):
            offset += (int(i) - s) * stride
            stride *= n
        return offset

    def compute_index(self, offset: int) -> Coordinate:
        """Inverse of `compute_offset`, by successive division axis 0 first."""
        out = []
        remaining = int(offset)
        for s, n in zip(self.index, self.size):
            remaining, residual = divmod(remaining, n) if n else (remaining, 0)
            out.append(s + residual)
        return tuple(out)

    # ====[ NumPy interop ]====
    def to_slices(self, origin: Optional[Sequence[int]] = None) -> Tuple[slice, ...]:
        """
        Slices selecting this region from an array laid out as `(..., axis1, axis0)`.

        Parameters
        ----------
        origin : Sequence[int], optional
            Index of the array's first element (e.g. a buffered region index).
        """
        origin = origin if origin is not None else (0,) * self.dimension
        sl = [slice(i - o, i - o + s) for i, s, o in zip(self.index, self.size, origin)]
        return tuple(reversed(sl))

    def iter_indices(self) -> Iterable[Coordinate]:
        """Yield every index of the region in row-major order (axis 0 fastest)."""
        for pos in range(self.get_number_of_pixels()):
            yield self.compute_index(pos)

    def _check_dimension(self, other: "ImageRegion") -> None:
        if other.dimension != self.dimension:
            raise InvalidArgumentError(
                f"Region dimension mismatch: {self.dimension} vs {other.dimension}.", "ImageRegion"
            )

    def __repr__(self) -> str:
        return f"ImageRegion(index={self.index}, size={self.size})"


def make_region(index: CoordinateLike, size: CoordinateLike) -> ImageRegion:
    """
    Build a region from an origin and a size.

    A scalar `index` is broadcast to the dimension of `size` (and vice versa).
    Negative sizes raise `InvalidArgumentError`.
    """
    if isinstance(index, int) and isinstance(size, int):
        raise InvalidArgumentError("At least one of index/size must be a sequence.", "make_region")
    if isinstance(index, int):
        size_t = as_coordinate(size, non_negative=True, name="region size")
        return ImageRegion(as_coordinate(index, len(size_t)), size_t)
    index_t = as_coordinate(index, name="region index")
    return ImageRegion(index_t, as_coordinate(size, len(index_t), non_negative=True, name="region size"))
