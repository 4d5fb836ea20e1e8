# ==================================================
# ==========  MODULE: laplacian_operator  ==========
# ==================================================
from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from core.exceptions import InvalidArgumentError
from core.neighborhood import neighborhood_offsets
from operators.neighborhood_operator import NeighborhoodOperator

# Public API
__all__ = ["LaplacianOperator"]


class LaplacianOperator(NeighborhoodOperator):
    """
    Discrete Laplacian on a radius-1 window (3x3 in 2D, 3x3x3 in 3D).

    Each axis `i` contributes `s_i**2` at `center ± stride_i`, where `s_i` is
    its derivative scaling; the center holds minus the sum of the others.
    With unit scalings this is the usual `[1, -2, 1]` stencil summed over
    axes.

    Parameters
    ----------
    dimension : int
        Number of image axes.
    derivative_scalings : Sequence[float], optional
        Per-axis scaling (typically `1 / spacing`). Defaults to ones.

    Examples
    --------
    >>> op = LaplacianOperator(2)
    >>> op.create_operator().as_array()
    array([[ 0.,  1.,  0.],
           [ 1., -4.,  1.],
           [ 0.,  1.,  0.]])
    """

    def __init__(
        self,
        dimension: int,
        derivative_scalings: Optional[Sequence[float]] = None,
        dtype: Any = np.float64,
    ) -> None:
        super().__init__(dimension, direction=0, dtype=dtype)
        self.set_derivative_scalings(derivative_scalings if derivative_scalings is not None else [1.0] * dimension)

    def set_derivative_scalings(self, scalings: Sequence[float]) -> None:
        scalings = [float(s) for s in scalings]
        if len(scalings) != self.dimension:
            raise InvalidArgumentError(
                f"Expected {self.dimension} derivative scalings, got {len(scalings)}.", "LaplacianOperator"
            )
        self.derivative_scalings = scalings

    def create_operator(self) -> "LaplacianOperator":
        """Build the radius-1 stencil."""
        self.fill(self.generate_coefficients())
        return self

    def generate_coefficients(self) -> np.ndarray:
        # Stencil is always defined on a radius-1 window.
        self.set_radius(1)
        w = self.size
        coefficients = np.zeros(w, dtype=self.dtype)
        total = 0.0
        for axis, scaling in enumerate(self.derivative_scalings):
            stride = self.get_stride(axis)
            hsq = scaling * scaling
            coefficients[w // 2 - stride] = hsq
            coefficients[w // 2 + stride] = hsq
            total += 2.0 * hsq
        coefficients[w // 2] = -total
        return coefficients

    def fill(self, coefficients: Sequence[float]) -> None:
        coefficients = np.asarray(coefficients, dtype=self.dtype)
        if len(coefficients) == self.size:
            self.data = coefficients.copy()
            return
        # Larger window: embed the radius-1 stencil around the center.
        self.data = np.zeros(self.size, dtype=self.dtype)
        for k, offset in enumerate(neighborhood_offsets((1,) * self.dimension)):
            self.data[self.get_neighborhood_index(offset)] = coefficients[k]
