# ==================================================
# ==========  MODULE: derivative_operator  =========
# ==================================================
from __future__ import annotations

from typing import Any, Sequence

import numpy as np

from core.exceptions import InvalidArgumentError
from operators.neighborhood_operator import NeighborhoodOperator

# Public API
__all__ = ["DerivativeOperator"]

_FIRST = np.array([-0.5, 0.0, 0.5])
_SECOND = np.array([1.0, -2.0, 1.0])


class DerivativeOperator(NeighborhoodOperator):
    """
    Central finite-difference derivative of arbitrary order along one axis.

    Even orders are powers of the `[1, -2, 1]` stencil; an odd order adds one
    `[-0.5, 0, 0.5]` factor. Coefficients use correlation order, so the inner
    product with `[u(x-1), u(x), u(x+1)]` gives `(u(x+1) - u(x-1)) / 2` for
    the first order.

    Parameters
    ----------
    dimension : int
        Number of image axes.
    direction : int, default 0
        Differentiation axis.
    order : int, default 1
        Derivative order (>= 1).
    spacing : float, default 1.0
        Pixel spacing along `direction`; coefficients are divided by
        `spacing ** order`.
    """

    def __init__(
        self,
        dimension: int,
        direction: int = 0,
        order: int = 1,
        spacing: float = 1.0,
        dtype: Any = np.float64,
    ) -> None:
        super().__init__(dimension, direction=direction, dtype=dtype)
        if int(order) < 1:
            raise InvalidArgumentError(f"Derivative order must be >= 1, got {order}.", "DerivativeOperator")
        if spacing <= 0:
            raise InvalidArgumentError(f"Spacing must be positive, got {spacing}.", "DerivativeOperator")
        self.order = int(order)
        self.spacing = float(spacing)

    def generate_coefficients(self) -> np.ndarray:
        coefficients = np.array([1.0])
        for _ in range(self.order // 2):
            coefficients = np.convolve(coefficients, _SECOND)
        if self.order % 2:
            coefficients = np.convolve(coefficients, _FIRST)
        return (coefficients / self.spacing ** self.order).astype(self.dtype)

    def fill(self, coefficients: Sequence[float]) -> None:
        self.fill_centered_directional(coefficients)

    def __repr__(self) -> str:
        return f"DerivativeOperator(order={self.order}, direction={self.direction}, radius={self.radius})"
