# ==================================================
# ==========  MODULE: boundary_conditions  =========
# ==================================================
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import numpy as np

from core.config import NeighborhoodConfig
from core.exceptions import InvalidArgumentError
from core.region import ImageRegion

# Public API
__all__ = [
    "BoundaryCondition",
    "ConstantBoundaryCondition",
    "ZeroFluxNeumannBoundaryCondition",
    "PeriodicBoundaryCondition",
    "MirrorBoundaryCondition",
    "make_boundary_condition",
]


# ==================================================
# ============  CLASS: BoundaryCondition  ==========
# ==================================================
class BoundaryCondition(ABC):
    """
    Policy synthesizing pixel values for indices outside the buffered region.

    Subclasses map an out-of-bounds position onto the buffer axis by axis
    (`map_position` for scalars, `map_positions` for NumPy arrays). Every
    method is pure: the image buffer is only read.

    Notes
    -----
    - `evaluate_at_index` returns a value for any representable index,
      including indices far away from the buffer.
    - `evaluate_to_fill` produces a whole block of values at once and is the
      vectorized counterpart used to pad or extract regions.
    """

    name: str = "boundary"

    # ====[ Per-axis position mapping ]====
    @abstractmethod
    def map_position(self, position: int, length: int) -> int:
        """Map a buffer-relative position on one axis into `[0, length)`."""

    @abstractmethod
    def map_positions(self, positions: np.ndarray, length: int) -> np.ndarray:
        """Vectorized `map_position`."""

    # ====[ Evaluation ]====
    def evaluate(self, center_index: Sequence[int], neighbor_offset: Sequence[int], image: Any) -> Any:
        """
        Value of the neighbor at `center_index + neighbor_offset`.

        Parameters
        ----------
        center_index : Sequence[int]
            Absolute index of the neighborhood center.
        neighbor_offset : Sequence[int]
            Offset of the neighbor relative to the center.
        image : core.image.Image
            Image providing the buffer and its buffered region.
        """
        return self.evaluate_at_index(tuple(c + o for c, o in zip(center_index, neighbor_offset)), image)

    def evaluate_at_index(self, index: Sequence[int], image: Any) -> Any:
        """Pixel value at an arbitrary absolute `index`."""
        region = image.get_buffered_region()
        mapped = [
            start + self.map_position(int(i) - start, length)
            for i, start, length in zip(index, region.index, region.size)
        ]
        return image.get_buffer_pointer()[image.compute_offset(mapped)]

    def evaluate_to_fill(self, region: ImageRegion, image: Any) -> np.ndarray:
        """
        Values over an arbitrary `region`, in array order `(..., axis1, axis0)`.

        In-bounds indices read the buffer; out-of-bounds ones are synthesized.
        """
        buffered = image.get_buffered_region()
        self._check_geometry(region, buffered)
        positions = [
            self.map_positions(np.arange(i - bi, i - bi + s), bs)
            for i, s, bi, bs in zip(region.index, region.size, buffered.index, buffered.size)
        ]
        return image.to_array()[np.ix_(*reversed(positions))]

    # ====[ Pipeline negotiation ]====
    def requires_complete_neighborhood(self) -> bool:
        """Whether the policy needs real pixels beyond the output region to synthesize values."""
        return True

    def get_input_requested_region(
        self,
        input_largest_possible_region: ImageRegion,
        output_requested_region: ImageRegion,
    ) -> ImageRegion:
        """
        Input region needed to evaluate `output_requested_region` under this policy.

        Axes where the requested region leaves the largest possible region
        get the full extent of the largest region.
        """
        index, size = [], []
        for ri, rs, li, ls in zip(
            output_requested_region.index, output_requested_region.size,
            input_largest_possible_region.index, input_largest_possible_region.size,
        ):
            if li <= ri and ri + rs <= li + ls:
                index.append(ri)
                size.append(rs)
            else:
                index.append(li)
                size.append(ls)
        return ImageRegion(tuple(index), tuple(size))

    @staticmethod
    def _check_geometry(region: ImageRegion, buffered: ImageRegion) -> None:
        if region.dimension != buffered.dimension:
            raise InvalidArgumentError(
                f"Region dimension {region.dimension} != image dimension {buffered.dimension}.",
                "BoundaryCondition",
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# ====[ Constant ]====
class ConstantBoundaryCondition(BoundaryCondition):
    """Every out-of-bounds neighbor takes the same constant value."""

    name = "constant"

    def __init__(self, constant: Any = 0) -> None:
        self.constant = constant

    def set_constant(self, constant: Any) -> None:
        self.constant = constant

    def get_constant(self) -> Any:
        return self.constant

    def map_position(self, position: int, length: int) -> int:
        return position

    def map_positions(self, positions: np.ndarray, length: int) -> np.ndarray:
        return positions

    def evaluate_at_index(self, index: Sequence[int], image: Any) -> Any:
        region = image.get_buffered_region()
        if region.is_inside(index):
            return image.get_buffer_pointer()[image.compute_offset(index)]
        return image.dtype.type(self.constant)

    def evaluate_to_fill(self, region: ImageRegion, image: Any) -> np.ndarray:
        buffered = image.get_buffered_region()
        self._check_geometry(region, buffered)
        shape = tuple(reversed(region.size))
        out = np.full(shape, self.constant, dtype=image.dtype)
        overlap = region.crop(buffered)
        if overlap is not None:
            out[overlap.to_slices(origin=region.index)] = image.to_array()[overlap.to_slices(origin=buffered.index)]
        return out

    def requires_complete_neighborhood(self) -> bool:
        return False

    def get_input_requested_region(
        self,
        input_largest_possible_region: ImageRegion,
        output_requested_region: ImageRegion,
    ) -> ImageRegion:
        cropped = output_requested_region.crop(input_largest_possible_region)
        if cropped is None:
            return ImageRegion(input_largest_possible_region.index, (0,) * input_largest_possible_region.dimension)
        return cropped

    def __repr__(self) -> str:
        return f"ConstantBoundaryCondition(constant={self.constant!r})"


# ====[ Zero-flux Neumann (clamp) ]====
class ZeroFluxNeumannBoundaryCondition(BoundaryCondition):
    """Out-of-bounds neighbors take the value of the nearest in-bounds pixel (clamp per axis)."""

    name = "zero_flux"

    def map_position(self, position: int, length: int) -> int:
        if position < 0:
            return 0
        if position >= length:
            return length - 1
        return position

    def map_positions(self, positions: np.ndarray, length: int) -> np.ndarray:
        return np.clip(positions, 0, length - 1)

    def get_input_requested_region(
        self,
        input_largest_possible_region: ImageRegion,
        output_requested_region: ImageRegion,
    ) -> ImageRegion:
        # Axes without overlap collapse onto the nearest edge pixel.
        index, size = [], []
        for ri, rs, li, ls in zip(
            output_requested_region.index, output_requested_region.size,
            input_largest_possible_region.index, input_largest_possible_region.size,
        ):
            lo = max(ri, li)
            hi = min(ri + rs, li + ls)
            if hi > lo:
                index.append(lo)
                size.append(hi - lo)
            else:
                index.append(li if ri < li else li + ls - 1)
                size.append(1)
        return ImageRegion(tuple(index), tuple(size))


# ====[ Periodic (wrap) ]====
class PeriodicBoundaryCondition(BoundaryCondition):
    """Out-of-bounds indices wrap around modulo the buffer size on each axis."""

    name = "periodic"

    def map_position(self, position: int, length: int) -> int:
        return position % length

    def map_positions(self, positions: np.ndarray, length: int) -> np.ndarray:
        return np.mod(positions, length)


# ====[ Mirror (reflect) ]====
class MirrorBoundaryCondition(BoundaryCondition):
    """
    Out-of-bounds indices reflect at the buffer edge without repeating it.

    Position -1 maps to 1, position `length` maps to `length - 2`; the
    reflection repeats with period `2 * (length - 1)` so arbitrarily distant
    indices stay defined. A single-pixel axis maps everything to 0.
    """

    name = "mirror"

    def map_position(self, position: int, length: int) -> int:
        if length == 1:
            return 0
        period = 2 * (length - 1)
        q = position % period
        return q if q < length else period - q

    def map_positions(self, positions: np.ndarray, length: int) -> np.ndarray:
        if length == 1:
            return np.zeros_like(positions)
        period = 2 * (length - 1)
        q = np.mod(positions, period)
        return np.where(q < length, q, period - q)


# ====[ Factory ]====
_BOUNDARY_CONDITIONS = {
    "constant": ConstantBoundaryCondition,
    "zero_flux": ZeroFluxNeumannBoundaryCondition,
    "periodic": PeriodicBoundaryCondition,
    "mirror": MirrorBoundaryCondition,
}


def make_boundary_condition(
    name: Optional[str] = None,
    constant: Any = None,
    neighborhood_cfg: Optional[NeighborhoodConfig] = None,
) -> BoundaryCondition:
    """
    Build a boundary condition from its name or from a `NeighborhoodConfig`.

    Parameters
    ----------
    name : str, optional
        "constant", "zero_flux", "periodic" or "mirror". Overrides the config.
    constant : Any, optional
        Constant value (constant policy only). Overrides the config.
    neighborhood_cfg : NeighborhoodConfig, optional
        Source of defaults.
    """
    cfg = neighborhood_cfg or NeighborhoodConfig()
    key = (name or cfg.boundary_condition).lower()
    if key not in _BOUNDARY_CONDITIONS:
        raise InvalidArgumentError(
            f"Unsupported boundary condition '{key}'. Use one of: {list(_BOUNDARY_CONDITIONS)}",
            "make_boundary_condition",
        )
    if key == "constant":
        return ConstantBoundaryCondition(cfg.constant_value if constant is None else constant)
    return _BOUNDARY_CONDITIONS[key]()
