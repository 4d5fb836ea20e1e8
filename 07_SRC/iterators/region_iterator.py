# ==================================================
# ===========  MODULE: region_iterator  ============
# ==================================================
from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, List, Optional, Sequence

import numpy as np

from core.config import IteratorConfig
from core.exceptions import InvalidArgumentError, RangeError
from core.image import Image
from core.region import Coordinate, ImageRegion

# Public API
__all__ = ["IteratorState", "ImageRegionIterator"]


class IteratorState(Enum):
    UNINITIALIZED = "uninitialized"
    POSITIONED = "positioned"
    AT_END = "at_end"


# ==================================================
# ==========  CLASS: ImageRegionIterator  ==========
# ==================================================
class ImageRegionIterator:
    """
    Walk every index of a region in row-major order (axis 0 fastest).

    The iterator holds an integer offset into a buffer it does not own. A
    run along axis 0 ("span") is walked by incrementing the offset only;
    the index of the higher axes is updated when the span ends, which is the
    only place where carries, end detection and buffer-generation checks
    happen.

    Parameters
    ----------
    image : Image
        Allocated image providing the buffer.
    region : ImageRegion, optional
        Region to walk (defaults to the buffered region). Must lie inside the
        buffered region.
    iterator_cfg : IteratorConfig
        Validation switches.

    Notes
    -----
    - States: UNINITIALIZED -> (go_to_begin) -> POSITIONED -> (advance) ->
      POSITIONED ... -> AT_END. `go_to_begin` restarts from any state.
    - Advancing in AT_END (or before `go_to_begin`) raises `RangeError`.
    """

    def __init__(
        self,
        image: Image,
        region: Optional[ImageRegion] = None,
        iterator_cfg: IteratorConfig = IteratorConfig(),
    ) -> None:
        self.iterator_cfg: IteratorConfig = iterator_cfg
        self._state: IteratorState = IteratorState.UNINITIALIZED
        self._bind(image, region)

    # ====[ Binding ]====
    def _bind(self, image: Image, region: Optional[ImageRegion]) -> None:
        if not image.is_allocated:
            raise RangeError("Cannot iterate over an image without a buffer.", type(self).__name__)
        region = region if region is not None else image.get_buffered_region()

        if self.iterator_cfg.validate_regions:
            if region.dimension != image.dimension:
                raise InvalidArgumentError(
                    f"Region dimension {region.dimension} != image dimension {image.dimension}.",
                    type(self).__name__,
                )
            if not image.get_buffered_region().is_inside(region):
                raise RangeError(
                    f"Region {region} is outside of buffered region {image.get_buffered_region()}.",
                    type(self).__name__,
                )

        self._image: Image = image
        self._region: ImageRegion = region
        self._buffer: np.ndarray = image.get_buffer_pointer()
        self._strides: Coordinate = image.get_offset_table()
        self._generation: int = image.generation
        self._begin: Coordinate = region.index
        self._end: Coordinate = region.end_index
        self._dimension: int = region.dimension
        self._index: List[int] = list(region.index)
        self._offset: int = 0
        self._span_start: int = 0
        self._span_end: int = 0
        self._state = IteratorState.UNINITIALIZED

    def rebind(self, image: Image, region: Optional[ImageRegion] = None) -> None:
        """Attach the iterator to another image/region; iteration must restart."""
        self._bind(image, region)

    def _check_generation(self) -> None:
        if self.iterator_cfg.check_generation and self._image.generation != self._generation:
            raise RangeError(
                "Image buffer was reallocated after the iterator was bound; rebind the iterator.",
                type(self).__name__,
            )

    # ====[ Positioning ]====
    def go_to_begin(self) -> None:
        """Position at the first index of the region (or AT_END for an empty region)."""
        self._check_generation()
        if self._region.is_empty:
            self._state = IteratorState.AT_END
            return
        self._index = list(self._begin)
        self._start_span()
        self._state = IteratorState.POSITIONED

    def go_to_end(self) -> None:
        self._state = IteratorState.AT_END

    def set_index(self, index: Sequence[int]) -> None:
        """Place the iterator on an arbitrary `index` of the region."""
        self._check_generation()
        if not self._region.is_inside(index):
            raise RangeError(f"Index {tuple(index)} outside iteration region {self._region}.", type(self).__name__)
        self._index = [int(i) for i in index]
        self._start_span()
        self._state = IteratorState.POSITIONED

    def _start_span(self) -> None:
        # Offset of the current index; the span covers the rest of the axis-0 run.
        self._offset = self._image.compute_offset(self._index)
        self._span_start = self._offset - (self._index[0] - self._begin[0])
        self._span_end = self._span_start + self._end[0] - self._begin[0]

    def advance(self) -> None:
        """Move to the next index in row-major order (`operator++`)."""
        if self._state is not IteratorState.POSITIONED:
            raise RangeError(f"Cannot advance an iterator in state {self._state.value}.", type(self).__name__)
        self._offset += 1
        if self._offset < self._span_end:
            return
        self._next_span()

    def _next_span(self) -> None:
        idx = self._index
        for axis in range(1, self._dimension):
            idx[axis] += 1
            if idx[axis] < self._end[axis]:
                idx[0] = self._begin[0]
                self._check_generation()
                self._start_span()
                return
            idx[axis] = self._begin[axis]
        idx[0] = self._end[0]
        self._state = IteratorState.AT_END

    def __iadd__(self, steps: int) -> "ImageRegionIterator":
        for _ in range(int(steps)):
            self.advance()
        return self

    # ====[ State queries ]====
    def is_at_end(self) -> bool:
        return self._state is IteratorState.AT_END

    def is_at_begin(self) -> bool:
        return self._state is IteratorState.POSITIONED and self._offset == self._image.compute_offset(self._begin)

    @property
    def state(self) -> IteratorState:
        return self._state

    def get_region(self) -> ImageRegion:
        return self._region

    def get_image(self) -> Image:
        return self._image

    def get_index(self) -> Coordinate:
        """Current index (axis 0 is derived from the offset within the span)."""
        idx = list(self._index)
        idx[0] = self._begin[0] + (self._offset - self._span_start)
        return tuple(idx)

    def get_offset(self) -> int:
        """Current linear offset in the buffer."""
        return self._offset

    # ====[ Pixel access ]====
    def get(self) -> Any:
        self._require_positioned()
        return self._buffer[self._offset]

    def set(self, value: Any) -> None:
        self._require_positioned()
        self._buffer[self._offset] = value

    def _require_positioned(self) -> None:
        if self._state is not IteratorState.POSITIONED:
            raise RangeError(f"No pixel under an iterator in state {self._state.value}.", type(self).__name__)

    # ====[ Python iteration ]====
    def __iter__(self) -> Iterator[Coordinate]:
        """Restart and yield every index; the iterator stays on that index during the loop body."""
        self.go_to_begin()
        while not self.is_at_end():
            yield self.get_index()
            self.advance()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(region={self._region}, state={self._state.value})"
