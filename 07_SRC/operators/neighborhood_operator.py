# ==================================================
# ==========  MODULE: neighborhood_operator  =======
# ==================================================
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

import numpy as np

from core.exceptions import InvalidArgumentError
from core.neighborhood import Neighborhood
from core.region import CoordinateLike

# Public API
__all__ = ["NeighborhoodOperator"]


# ==================================================
# =========  CLASS: NeighborhoodOperator  ==========
# ==================================================
class NeighborhoodOperator(Neighborhood, ABC):
    """
    Neighborhood of coefficients applied by inner product with an iterator.

    Subclasses provide the coefficients (`generate_coefficients`) and the way
    they are laid out in the window (`fill`). The operator is built either
    along one axis (`create_directional`) or to a fixed radius
    (`create_to_radius`).

    Parameters
    ----------
    dimension : int
        Number of image axes.
    direction : int, default 0
        Axis used by directional operators.
    dtype : dtype-like, default np.float64
        Type of the coefficients.

    Notes
    -----
    Coefficients follow correlation semantics: the result at a pixel is
    `sum_k coeff[k] * pixel[k]`, neighbor `k` numbered like the iterator.
    """

    def __init__(self, dimension: int, direction: int = 0, dtype: Any = np.float64) -> None:
        if dimension < 1:
            raise InvalidArgumentError(f"Operator dimension must be >= 1, got {dimension}.", type(self).__name__)
        super().__init__(radius=0, dimension=dimension, dtype=dtype)
        self.set_direction(direction)

    # ====[ Direction ]====
    @property
    def direction(self) -> int:
        return self._direction

    @direction.setter
    def direction(self, axis: int) -> None:
        self.set_direction(axis)

    def set_direction(self, axis: int) -> None:
        if not 0 <= int(axis) < self.dimension:
            raise InvalidArgumentError(f"Direction {axis} out of range for dimension {self.dimension}.", type(self).__name__)
        self._direction = int(axis)

    def get_direction(self) -> int:
        return self._direction

    # ====[ Construction ]====
    @abstractmethod
    def generate_coefficients(self) -> np.ndarray:
        """Coefficient vector of the operator."""

    @abstractmethod
    def fill(self, coefficients: Sequence[float]) -> None:
        """Lay `coefficients` out in the window."""

    def create_directional(self) -> "NeighborhoodOperator":
        """Size the window to the coefficients along `direction` (radius 0 elsewhere) and fill it."""
        coefficients = np.asarray(self.generate_coefficients(), dtype=self.dtype)
        radius = [0] * self.dimension
        radius[self._direction] = len(coefficients) // 2
        self.set_radius(radius)
        self.fill(coefficients)
        return self

    def create_to_radius(self, radius: CoordinateLike) -> "NeighborhoodOperator":
        """Size the window to `radius` and fill it with the generated coefficients."""
        coefficients = np.asarray(self.generate_coefficients(), dtype=self.dtype)
        self.set_radius(radius)
        self.fill(coefficients)
        return self

    # ====[ Coefficient manipulation ]====
    def flip_axes(self) -> None:
        """Reverse the coefficients on every axis (point reflection through the center)."""
        self.data = self.data[::-1].copy()

    def scale_coefficients(self, factor: float) -> None:
        self.data = self.data * self.dtype.type(factor)

    def fill_centered_directional(self, coefficients: Sequence[float]) -> None:
        """
        Place `coefficients` on the line through the center along `direction`.

        Everything else is zeroed. Coefficients longer than the window are
        truncated symmetrically, shorter ones are centered.
        """
        coefficients = np.asarray(coefficients, dtype=self.dtype)
        self.data = np.zeros(self.size, dtype=self.dtype)
        start, length, step = self.get_slice(self._direction)

        n = len(coefficients)
        if n > length:
            cut = (n - length) // 2
            coefficients = coefficients[cut : cut + length]
            n = length
        first = start + ((length - n) // 2) * step
        self.data[first : first + n * step : step] = coefficients

    def __repr__(self) -> str:
        return f"{type(self).__name__}(radius={self.radius}, direction={self._direction})"
