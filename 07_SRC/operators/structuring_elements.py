# ==================================================
# =========  MODULE: structuring_elements  =========
# ==================================================
from __future__ import annotations

from typing import Optional

import numpy as np

from core.config import MorphologyConfig
from core.exceptions import InvalidArgumentError
from core.neighborhood import Neighborhood, neighborhood_offsets
from core.region import CoordinateLike, as_coordinate

# Public API
__all__ = [
    "binary_ball_kernel",
    "binary_box_kernel",
    "binary_cross_kernel",
    "make_kernel",
]


def _kernel(radius: CoordinateLike, dimension: Optional[int]) -> Neighborhood:
    r = as_coordinate(radius, dimension, non_negative=True, name="kernel radius")
    return Neighborhood(r, dtype=bool)


def binary_ball_kernel(radius: CoordinateLike, dimension: Optional[int] = None) -> Neighborhood:
    """
    Ellipsoid structuring element: offsets with `sum((o_i / r_i) ** 2) <= 1`.

    Axes with a zero radius only keep the offset 0.
    """
    kernel = _kernel(radius, dimension)
    offsets = neighborhood_offsets(kernel.radius).astype(np.float64)
    r = np.asarray(kernel.radius, dtype=np.float64)
    flat = r == 0
    scaled = np.divide(offsets, r, out=np.zeros_like(offsets), where=~flat)
    on_flat_axes = np.all(offsets[:, flat] == 0, axis=1) if flat.any() else np.ones(len(offsets), dtype=bool)
    kernel.data = (np.sum(scaled ** 2, axis=1) <= 1.0 + 1e-12) & on_flat_axes
    return kernel


def binary_box_kernel(radius: CoordinateLike, dimension: Optional[int] = None) -> Neighborhood:
    """Every offset of the window."""
    kernel = _kernel(radius, dimension)
    kernel.data[:] = True
    return kernel


def binary_cross_kernel(radius: CoordinateLike, dimension: Optional[int] = None) -> Neighborhood:
    """Offsets on the axis-aligned lines through the center."""
    kernel = _kernel(radius, dimension)
    offsets = neighborhood_offsets(kernel.radius)
    kernel.data = np.count_nonzero(offsets, axis=1) <= 1
    return kernel


_KERNELS = {
    "ball": binary_ball_kernel,
    "box": binary_box_kernel,
    "cross": binary_cross_kernel,
}


def make_kernel(dimension: int, morphology_cfg: MorphologyConfig = MorphologyConfig()) -> Neighborhood:
    """Structuring element described by `kernel_shape` / `kernel_radius`."""
    shape = morphology_cfg.kernel_shape
    if shape not in _KERNELS:
        raise InvalidArgumentError(f"Unsupported kernel shape '{shape}'. Use one of: {list(_KERNELS)}", "make_kernel")
    return _KERNELS[shape](morphology_cfg.kernel_radius, dimension)
