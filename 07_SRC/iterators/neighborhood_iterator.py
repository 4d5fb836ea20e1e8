# ==================================================
# ========  MODULE: neighborhood_iterator  =========
# ==================================================
from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

import numpy as np

from core.boundary_conditions import BoundaryCondition, ConstantBoundaryCondition
from core.config import IteratorConfig
from core.exceptions import InvalidArgumentError, RangeError
from core.image import Image
from core.neighborhood import compute_offset_table, neighborhood_offsets
from core.region import Coordinate, CoordinateLike, ImageRegion, as_coordinate
from iterators.region_iterator import ImageRegionIterator, IteratorState

# Public API
__all__ = ["NeighborhoodIterator"]


# ==================================================
# ==========  CLASS: NeighborhoodIterator  =========
# ==================================================
class NeighborhoodIterator(ImageRegionIterator):
    """
    Region iterator exposing a fixed-radius window around the current index.

    Neighbor `k` is addressed by its position in the window, numbered
    row-major with axis 0 fastest; the center is `size // 2`. Reads and
    writes go through a shared offset table (`center_offset + table[k]`).

    Boundary handling is decided at two levels:

    - per region: if the region padded by the radius lies inside the
      buffered region (e.g. the interior face of a decomposition), no
      neighbor can leave the buffer and every access is unchecked;
    - per position: otherwise the iterator tests (once per position) whether
      the whole window is inside; only windows that cross the buffer edge
      resolve individual neighbors and call the boundary condition for those
      outside.

    Parameters
    ----------
    radius : int or Sequence[int]
        Half-width per axis. A zero radius degenerates to the center pixel.
    image : Image
        Allocated image.
    region : ImageRegion, optional
        Region walked by the center (defaults to the buffered region).
    boundary_condition : BoundaryCondition, optional
        Policy for out-of-buffer neighbors. Defaults to a constant zero of
        the pixel type.
    iterator_cfg : IteratorConfig
        Validation switches.
    """

    def __init__(
        self,
        radius: CoordinateLike,
        image: Image,
        region: Optional[ImageRegion] = None,
        boundary_condition: Optional[BoundaryCondition] = None,
        iterator_cfg: IteratorConfig = IteratorConfig(),
    ) -> None:
        self._radius: Coordinate = as_coordinate(radius, image.dimension, non_negative=True, name="radius")
        self._default_boundary_condition: BoundaryCondition = ConstantBoundaryCondition(image.dtype.type(0))
        self._boundary_condition: BoundaryCondition = boundary_condition or self._default_boundary_condition
        self._moved: bool = False
        super().__init__(image, region, iterator_cfg)

    # ====[ Binding ]====
    def _bind(self, image: Image, region: Optional[ImageRegion]) -> None:
        super()._bind(image, region)
        buffered = image.get_buffered_region()
        self._offset_table: np.ndarray = compute_offset_table(tuple(self._strides[: self._dimension]), self._radius)
        self._relative: np.ndarray = neighborhood_offsets(self._radius)
        self._size: int = int(self._offset_table.shape[0])
        self._buffered_begin: Coordinate = buffered.index
        self._buffered_end: Coordinate = buffered.end_index
        self._inner_low: Coordinate = tuple(b + r for b, r in zip(buffered.index, self._radius))
        self._inner_high: Coordinate = tuple(e - r for e, r in zip(buffered.end_index, self._radius))
        self._needs_boundary_condition: bool = not buffered.is_inside(self._region.pad_by_radius(self._radius))
        self._in_bounds_cache: Optional[bool] = None
        self._moved = False

    # ====[ Positioning ]====
    def go_to_begin(self) -> None:
        super().go_to_begin()
        self._in_bounds_cache = None
        self._moved = False

    def set_index(self, index: Sequence[int]) -> None:
        super().set_index(index)
        self._in_bounds_cache = None

    set_location = set_index

    def advance(self) -> None:
        super().advance()
        self._in_bounds_cache = None
        self._moved = True

    # ====[ Boundary condition ]====
    def override_boundary_condition(self, boundary_condition: BoundaryCondition) -> None:
        """
        Replace the boundary condition for the rest of the iteration.

        Must happen before the iterator advances; `go_to_begin` re-opens the window.
        """
        if not isinstance(boundary_condition, BoundaryCondition):
            raise InvalidArgumentError(
                f"Expected a BoundaryCondition, got {type(boundary_condition)}.", "NeighborhoodIterator"
            )
        if self._state is IteratorState.POSITIONED and self._moved:
            raise InvalidArgumentError(
                "Boundary condition must be overridden before the iterator advances.",
                "NeighborhoodIterator.override_boundary_condition",
            )
        self._boundary_condition = boundary_condition

    def reset_boundary_condition(self) -> None:
        self._boundary_condition = self._default_boundary_condition

    def get_boundary_condition(self) -> BoundaryCondition:
        return self._boundary_condition

    def needs_to_use_boundary_condition(self) -> bool:
        """False when no window of the region can leave the buffer."""
        return self._needs_boundary_condition

    # ====[ Geometry ]====
    @property
    def size(self) -> int:
        """Number of neighbors (`prod(2 * radius + 1)`)."""
        return self._size

    def get_radius(self) -> Coordinate:
        return self._radius

    def get_center_neighborhood_index(self) -> int:
        return self._size // 2

    def get_offset(self, i: Optional[int] = None) -> Any:
        """
        Coordinate of neighbor `i` relative to the center.

        Without `i`, the linear buffer offset of the center (as for a region
        iterator).
        """
        if i is None:
            return super().get_offset()
        return tuple(int(v) for v in self._relative[i])

    def get_neighborhood_index(self, offset: Sequence[int]) -> int:
        """Neighbor number of a relative coordinate."""
        n, stride = 0, 1
        for o, r in zip(offset, self._radius):
            if abs(int(o)) > r:
                raise InvalidArgumentError(f"Offset {tuple(offset)} exceeds radius {self._radius}.", "NeighborhoodIterator")
            n += (int(o) + r) * stride
            stride *= 2 * r + 1
        return n

    def get_index(self, i: Optional[int] = None) -> Coordinate:
        """Index of the center, or the absolute image index of neighbor `i`."""
        center = super().get_index()
        if i is None:
            return center
        return tuple(c + int(o) for c, o in zip(center, self._relative[i]))

    def get_offset_table(self) -> np.ndarray:
        """Shared read-only table of linear neighbor deltas."""
        return self._offset_table

    def in_bounds(self) -> bool:
        """Whether the whole window at the current position lies in the buffer."""
        if not self._needs_boundary_condition:
            return True
        if self._in_bounds_cache is None:
            idx = self.get_index()
            self._in_bounds_cache = all(
                lo <= i < hi for lo, i, hi in zip(self._inner_low, idx, self._inner_high)
            )
        return self._in_bounds_cache

    def _neighbor_inside(self, center: Coordinate, i: int) -> bool:
        rel = self._relative[i]
        for axis in range(self._dimension):
            v = center[axis] + rel[axis]
            if v < self._buffered_begin[axis] or v >= self._buffered_end[axis]:
                return False
        return True

    # ====[ Pixel access ]====
    def get_pixel(self, i: int) -> Any:
        """Value of neighbor `i`, synthesized by the boundary condition outside the buffer."""
        self._require_positioned()
        if not self._needs_boundary_condition or self.in_bounds():
            return self._buffer[self._offset + self._offset_table[i]]
        return self._resolve(i)[0]

    def get_pixel_with_status(self, i: int) -> Tuple[Any, bool]:
        """
        Value of neighbor `i` and whether it was read from the buffer.

        The flag is False when the value was synthesized, letting callers
        skip (rather than substitute) out-of-buffer neighbors.
        """
        self._require_positioned()
        if not self._needs_boundary_condition or self.in_bounds():
            return self._buffer[self._offset + self._offset_table[i]], True
        return self._resolve(i)

    def _resolve(self, i: int) -> Tuple[Any, bool]:
        center = self.get_index()
        if self._neighbor_inside(center, i):
            return self._buffer[self._offset + self._offset_table[i]], True
        return self._boundary_condition.evaluate(center, self._relative[i], self._image), False

    def set_pixel(self, i: int, value: Any) -> None:
        """Write neighbor `i`; neighbors outside the buffer raise `RangeError`."""
        self._require_positioned()
        if self._needs_boundary_condition and not self.in_bounds():
            if not self._neighbor_inside(self.get_index(), i):
                raise RangeError(
                    f"Neighbor {self.get_index(i)} is outside the buffered region; there is no pixel to write.",
                    "NeighborhoodIterator.set_pixel",
                )
        self._buffer[self._offset + self._offset_table[i]] = value

    def set_pixel_with_status(self, i: int, value: Any) -> bool:
        """Write neighbor `i` if it lies in the buffer; returns whether it was written."""
        self._require_positioned()
        if self._needs_boundary_condition and not self.in_bounds():
            if not self._neighbor_inside(self.get_index(), i):
                return False
        self._buffer[self._offset + self._offset_table[i]] = value
        return True

    def get_center_pixel(self) -> Any:
        self._require_positioned()
        return self._buffer[self._offset]

    def set_center_pixel(self, value: Any) -> None:
        self._require_positioned()
        self._buffer[self._offset] = value

    def get_neighborhood(self) -> np.ndarray:
        """All neighbor values as a vector of length `size` (a copy)."""
        self._require_positioned()
        if not self._needs_boundary_condition or self.in_bounds():
            return self._buffer[self._offset + self._offset_table]

        center = np.asarray(self.get_index(), dtype=np.int64)
        absolute = center + self._relative
        inside = np.all(
            (absolute >= np.asarray(self._buffered_begin)) & (absolute < np.asarray(self._buffered_end)), axis=1
        )
        values = np.empty(self._size, dtype=self._buffer.dtype)
        values[inside] = self._buffer[self._offset + self._offset_table[inside]]
        bc = self._boundary_condition
        for k in np.flatnonzero(~inside):
            values[k] = bc.evaluate_at_index(tuple(int(v) for v in absolute[k]), self._image)
        return values

    def __repr__(self) -> str:
        return (
            f"NeighborhoodIterator(radius={self._radius}, region={self._region}, "
            f"boundary_condition={self._boundary_condition!r}, state={self._state.value})"
        )
