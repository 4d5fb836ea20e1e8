# ==================================================
# ========  MODULE: neighborhood_inner_product  ====
# ==================================================
from __future__ import annotations

import numpy as np

from core.exceptions import InvalidArgumentError
from core.neighborhood import Neighborhood
from iterators.neighborhood_iterator import NeighborhoodIterator

# Public API
__all__ = ["inner_product", "slice_inner_product"]


def inner_product(iterator: NeighborhoodIterator, operator: Neighborhood) -> float:
    """
    Sum of `operator[k] * pixel[k]` over the window under `iterator`.

    The operator and the iterator must have the same radius. Out-of-buffer
    neighbors are supplied by the iterator's boundary condition.
    """
    if tuple(operator.radius) != tuple(iterator.get_radius()):
        raise InvalidArgumentError(
            f"Operator radius {operator.radius} != iterator radius {iterator.get_radius()}.", "inner_product"
        )
    values = iterator.get_neighborhood().astype(np.float64, copy=False)
    return float(np.dot(values, operator.data))


def slice_inner_product(iterator: NeighborhoodIterator, operator: Neighborhood, axis: int) -> float:
    """
    Inner product restricted to the line through the center along `axis`.

    `operator` is either a one-dimensional coefficient line of length
    `2 * radius[axis] + 1` (e.g. a directional operator) or a full window of
    the iterator's radius, in which case its own line along `axis` is used.
    """
    radius = iterator.get_radius()
    if not 0 <= axis < len(radius):
        raise InvalidArgumentError(f"Axis {axis} out of range.", "slice_inner_product")
    length = 2 * radius[axis] + 1

    coefficients = np.asarray(operator.data, dtype=np.float64)
    if len(coefficients) != length:
        if tuple(operator.radius) != tuple(radius):
            raise InvalidArgumentError(
                f"Operator of size {len(coefficients)} does not match a line of {length} neighbors.",
                "slice_inner_product",
            )
        start, _, step = operator.get_slice(axis)
        coefficients = coefficients[start : start + length * step : step]

    stride = 1
    for r in radius[:axis]:
        stride *= 2 * r + 1
    first = iterator.get_center_neighborhood_index() - radius[axis] * stride
    return float(sum(c * iterator.get_pixel(first + k * stride) for k, c in enumerate(coefficients)))
