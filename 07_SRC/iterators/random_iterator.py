# ==================================================
# ===========  MODULE: random_iterator  ============
# ==================================================
from __future__ import annotations

from typing import Optional

import numpy as np

from core.config import IteratorConfig
from core.exceptions import InvalidArgumentError, RangeError
from core.image import Image
from core.region import ImageRegion
from iterators.region_iterator import ImageRegionIterator, IteratorState

# Public API
__all__ = ["ImageRandomNonRepeatingIterator"]


class ImageRandomNonRepeatingIterator(ImageRegionIterator):
    """
    Visit a random subset of a region, each pixel at most once.

    The visiting order is a permutation of the region's linear positions
    (axis 0 fastest). An optional priority image orders the visit by
    ascending priority, ties broken randomly.

    Parameters
    ----------
    image : Image
        Image to sample.
    region : ImageRegion, optional
        Region to sample (defaults to the buffered region).
    number_of_samples : int, optional
        Number of positions to visit, clamped to the region size. Defaults
        to every pixel.
    seed : int, optional
        Seed of the NumPy generator.
    """

    def __init__(
        self,
        image: Image,
        region: Optional[ImageRegion] = None,
        number_of_samples: Optional[int] = None,
        seed: Optional[int] = None,
        iterator_cfg: IteratorConfig = IteratorConfig(),
    ) -> None:
        super().__init__(image, region, iterator_cfg)
        self._number_of_pixels: int = self._region.get_number_of_pixels()
        self._samples_done: int = 0
        self._rng = np.random.default_rng(seed)
        self._priorities: Optional[np.ndarray] = None
        self._permutation: np.ndarray = self._shuffle()
        self.set_number_of_samples(number_of_samples if number_of_samples is not None else self._number_of_pixels)

    # ====[ Configuration ]====
    def set_number_of_samples(self, number: int) -> None:
        if number < 0:
            raise InvalidArgumentError(f"Number of samples must be non-negative, got {number}.", type(self).__name__)
        self._samples_requested = min(int(number), self._number_of_pixels)

    def get_number_of_samples(self) -> int:
        return self._samples_requested

    def reinitialize_seed(self, seed: Optional[int] = None) -> None:
        """New generator and a fresh permutation; iteration must restart."""
        self._rng = np.random.default_rng(seed)
        self._permutation = self._shuffle()
        self._state = IteratorState.UNINITIALIZED

    def set_priority_image(self, priority_image: Image) -> None:
        """
        Order the visit by the values of `priority_image` over the same region.

        Lower priority values are visited first.
        """
        if not priority_image.get_buffered_region().is_inside(self._region):
            raise RangeError(
                f"Priority image does not cover iteration region {self._region}.", type(self).__name__
            )
        values = priority_image.to_array()[self._region.to_slices(origin=priority_image.get_buffered_region().index)]
        self._priorities = np.asarray(values).reshape(-1)
        self._permutation = self._shuffle()
        self._state = IteratorState.UNINITIALIZED

    def _shuffle(self) -> np.ndarray:
        random_keys = self._rng.random(self._number_of_pixels)
        if self._priorities is None:
            return np.argsort(random_keys, kind="stable")
        # lexsort: last key is primary
        return np.lexsort((random_keys, self._priorities))

    # ====[ Positioning ]====
    def go_to_begin(self) -> None:
        self._check_generation()
        self._samples_done = 0
        if self._samples_requested == 0:
            self._state = IteratorState.AT_END
            return
        self._update_position()
        self._state = IteratorState.POSITIONED

    def advance(self) -> None:
        if self._state is not IteratorState.POSITIONED:
            raise RangeError(f"Cannot advance an iterator in state {self._state.value}.", type(self).__name__)
        self._samples_done += 1
        if self._samples_done >= self._samples_requested:
            self._state = IteratorState.AT_END
            return
        self._update_position()

    def _update_position(self) -> None:
        position = int(self._permutation[self._samples_done % self._samples_requested])
        index = self._region.compute_index(position)
        self._index = list(index)
        self._start_span()

    def is_at_begin(self) -> bool:
        return self._state is IteratorState.POSITIONED and self._samples_done == 0

    @property
    def samples_done(self) -> int:
        return self._samples_done
