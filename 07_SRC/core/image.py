# ==================================================
# ================  MODULE: image  =================
# ==================================================
from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple, Union
import itertools

import numpy as np
import torch

from core.exceptions import InvalidArgumentError, RangeError
from core.region import Coordinate, CoordinateLike, ImageRegion, as_coordinate, make_region

# Public API
__all__ = ["Image", "compute_strides"]

ArrayLike = Union[np.ndarray, torch.Tensor]
DtypeLike = Union[str, type, np.dtype]

# Allocation counter shared by every image; makes generations unique process-wide.
_GENERATIONS = itertools.count(1)


def compute_strides(size: Sequence[int]) -> Coordinate:
    """
    Offset table of a buffer: `stride[0] = 1`, `stride[i] = stride[i-1] * size[i-1]`.

    The returned tuple has `len(size) + 1` entries; the last one is the total
    number of pixels of the buffer.
    """
    strides = [1]
    for s in size:
        strides.append(strides[-1] * int(s))
    return tuple(strides)


# ==================================================
# ==================  CLASS: Image  ================
# ==================================================
class Image:
    """
    N-dimensional image owning a contiguous pixel buffer.

    The buffer is a flat NumPy array addressed with axis 0 fastest. An image
    of size `(nx, ny, nz)` therefore matches a C-ordered NumPy array of shape
    `(nz, ny, nx)`; `from_array` / `to_array` convert between both views.

    Three regions describe the image, as in a streaming pipeline:

    - largest possible region: the full index space of the image;
    - buffered region: the part actually backed by memory;
    - requested region: the part a downstream consumer asked for.

    Strides are derived from the buffered size at allocation and cached.
    Every (re)allocation bumps `generation`, so iterators bound to the old
    buffer can detect that their cached offsets are stale.

    Parameters
    ----------
    region : ImageRegion
        Largest possible region. Buffered and requested regions default to it.
    dtype : dtype-like, default np.float32
        Pixel type.
    spacing : float or Sequence[float], optional
        Physical spacing per axis (defaults to 1.0).
    origin : Sequence[float], optional
        Physical position of the first index (defaults to 0.0).
    """

    def __init__(
        self,
        region: ImageRegion,
        dtype: DtypeLike = np.float32,
        spacing: Optional[Union[float, Sequence[float]]] = None,
        origin: Optional[Sequence[float]] = None,
    ) -> None:
        if not isinstance(region, ImageRegion):
            raise InvalidArgumentError(f"Expected an ImageRegion, got {type(region)}.", "Image")

        self.dimension: int = region.dimension
        self.dtype: np.dtype = np.dtype(dtype)
        self._largest_possible_region: ImageRegion = region
        self._buffered_region: ImageRegion = region
        self._requested_region: ImageRegion = region
        self._buffer: Optional[np.ndarray] = None
        self._strides: Coordinate = compute_strides(region.size)
        self.generation: int = 0

        self.spacing: Tuple[float, ...] = self._normalize_spacing(spacing)
        self.origin: Tuple[float, ...] = (
            tuple(float(o) for o in origin) if origin is not None else (0.0,) * self.dimension
        )
        if len(self.origin) != self.dimension:
            raise InvalidArgumentError(f"Origin length {len(self.origin)} != dimension {self.dimension}.", "Image")

    # ====[ Construction helpers ]====
    @classmethod
    def from_array(
        cls,
        array: ArrayLike,
        index: Optional[CoordinateLike] = None,
        spacing: Optional[Union[float, Sequence[float]]] = None,
        origin: Optional[Sequence[float]] = None,
        copy: bool = True,
    ) -> "Image":
        """
        Build an image from a NumPy array or a Torch tensor.

        Parameters
        ----------
        array : np.ndarray or torch.Tensor
            Pixel data in array order `(..., axis1, axis0)`.
        index : int or Sequence[int], optional
            Start index of the largest possible region (defaults to zeros).
        spacing, origin : optional
            Physical geometry.
        copy : bool, default True
            If False, a C-contiguous NumPy input is wrapped without copying.

        Returns
        -------
        Image
            Allocated image whose buffered region equals its largest region.
        """
        if isinstance(array, torch.Tensor):
            array = array.detach().cpu().numpy()
        arr = np.asarray(array)
        if arr.ndim == 0:
            raise InvalidArgumentError("Zero-dimensional arrays cannot be wrapped as images.", "Image.from_array")

        size = tuple(reversed(arr.shape))
        start = as_coordinate(index if index is not None else 0, len(size), name="image index")
        image = cls(make_region(start, size), dtype=arr.dtype, spacing=spacing, origin=origin)
        flat = np.ascontiguousarray(arr).reshape(-1)
        image._set_buffer(flat.copy() if copy else flat)
        return image

    def _normalize_spacing(self, spacing: Optional[Union[float, Sequence[float]]]) -> Tuple[float, ...]:
        if spacing is None:
            return (1.0,) * self.dimension
        if isinstance(spacing, (int, float)):
            return (float(spacing),) * self.dimension
        sp = tuple(float(s) for s in spacing)
        if len(sp) != self.dimension:
            raise InvalidArgumentError(f"Spacing length {len(sp)} != dimension {self.dimension}.", "Image")
        if any(s <= 0 for s in sp):
            raise InvalidArgumentError(f"Spacing must be positive, got {sp}.", "Image")
        return sp

    # ====[ Regions ]====
    def get_largest_possible_region(self) -> ImageRegion:
        return self._largest_possible_region

    def get_buffered_region(self) -> ImageRegion:
        return self._buffered_region

    def get_requested_region(self) -> ImageRegion:
        return self._requested_region

    def set_buffered_region(self, region: ImageRegion) -> None:
        """Change the buffered region; takes effect at the next `allocate`."""
        self._check_region(region, "Image.set_buffered_region")
        self._buffered_region = region

    def set_requested_region(self, region: ImageRegion) -> None:
        """Record the region a consumer needs. Not validated: filters crop and report failures."""
        if region.dimension != self.dimension:
            raise InvalidArgumentError(
                f"Requested region dimension {region.dimension} != image dimension {self.dimension}.",
                "Image.set_requested_region",
            )
        self._requested_region = region

    def set_requested_region_to_largest_possible_region(self) -> None:
        self._requested_region = self._largest_possible_region

    def get_spacing(self) -> Tuple[float, ...]:
        return self.spacing

    # ====[ Memory ]====
    def allocate(self, initialize: bool = False) -> None:
        """
        Allocate the buffer for the buffered region and recompute strides.

        Parameters
        ----------
        initialize : bool, default False
            If True, fill the new buffer with zeros.
        """
        n = self._buffered_region.get_number_of_pixels()
        buf = np.zeros(n, dtype=self.dtype) if initialize else np.empty(n, dtype=self.dtype)
        self._set_buffer(buf)

    def _set_buffer(self, buffer: np.ndarray) -> None:
        expected = self._buffered_region.get_number_of_pixels()
        if buffer.ndim != 1 or buffer.size != expected:
            raise InvalidArgumentError(
                f"Buffer of {buffer.size} elements does not match buffered region ({expected} pixels).",
                "Image._set_buffer",
            )
        self._buffer = buffer
        self.dtype = buffer.dtype
        self._strides = compute_strides(self._buffered_region.size)
        self.generation = next(_GENERATIONS)

    @property
    def is_allocated(self) -> bool:
        return self._buffer is not None

    def get_buffer_pointer(self) -> np.ndarray:
        """Flat view of the pixel buffer (axis 0 fastest)."""
        if self._buffer is None:
            raise RangeError("Image buffer is not allocated.", "Image.get_buffer_pointer")
        return self._buffer

    def fill_buffer(self, value: Any) -> None:
        self.get_buffer_pointer().fill(value)

    # ====[ Addressing ]====
    def get_offset_table(self) -> Coordinate:
        """Cached strides (`dimension + 1` entries, the last is the pixel count)."""
        return self._strides

    def compute_offset(self, index: Sequence[int]) -> int:
        """
        Linear offset of `index` in the buffer.

        No bounds checking: an index outside the buffered region yields an
        out-of-range offset. Callers validate containment first.
        """
        start = self._buffered_region.index
        strides = self._strides
        offset = 0
        for axis in range(self.dimension):
            offset += (index[axis] - start[axis]) * strides[axis]
        return offset

    def compute_index(self, offset: int) -> Coordinate:
        """Inverse of `compute_offset` via successive division, axis 0 first."""
        start = self._buffered_region.index
        strides = self._strides
        out = [0] * self.dimension
        remaining = int(offset)
        for axis in range(self.dimension - 1, -1, -1):
            q, remaining = divmod(remaining, strides[axis])
            out[axis] = q + start[axis]
        return tuple(out)

    def get_pixel(self, index: Sequence[int]) -> Any:
        """Checked read of a single pixel."""
        if not self._buffered_region.is_inside(index):
            raise RangeError(f"Index {tuple(index)} outside buffered region {self._buffered_region}.", "Image.get_pixel")
        return self.get_buffer_pointer()[self.compute_offset(index)]

    def set_pixel(self, index: Sequence[int], value: Any) -> None:
        """Checked write of a single pixel."""
        if not self._buffered_region.is_inside(index):
            raise RangeError(f"Index {tuple(index)} outside buffered region {self._buffered_region}.", "Image.set_pixel")
        self.get_buffer_pointer()[self.compute_offset(index)] = value

    # ====[ Physical space ]====
    def transform_index_to_physical_point(self, index: Sequence[int]) -> Tuple[float, ...]:
        return tuple(o + s * int(i) for o, s, i in zip(self.origin, self.spacing, index))

    # ====[ Framework conversion ]====
    def to_array(self, framework: str = "numpy", device: str = "cpu") -> ArrayLike:
        """
        Buffered pixels in array order `(..., axis1, axis0)`.

        Parameters
        ----------
        framework : {"numpy", "torch"}, default "numpy"
            NumPy returns a view on the buffer; Torch shares memory on CPU.
        device : str, default "cpu"
            Target Torch device.
        """
        shape = tuple(reversed(self._buffered_region.size))
        arr = self.get_buffer_pointer().reshape(shape)
        fw = framework.lower()
        if fw == "numpy":
            return arr
        if fw == "torch":
            return torch.from_numpy(arr).to(device)
        raise InvalidArgumentError(f"Unsupported framework '{framework}'.", "Image.to_array")

    def copy(self) -> "Image":
        """Deep copy of geometry and buffer (a new generation)."""
        out = Image(self._largest_possible_region, dtype=self.dtype, spacing=self.spacing, origin=self.origin)
        out._buffered_region = self._buffered_region
        out._requested_region = self._requested_region
        if self._buffer is not None:
            out._set_buffer(self._buffer.copy())
        return out

    def new_like(self, dtype: Optional[DtypeLike] = None) -> "Image":
        """Image with the same geometry, allocated for the same buffered region."""
        dtype = dtype if dtype is not None else self.dtype
        out = Image(self._largest_possible_region, dtype=dtype, spacing=self.spacing, origin=self.origin)
        out._buffered_region = self._buffered_region
        out._requested_region = self._requested_region
        out.allocate(initialize=True)
        return out

    # ====[ Internal ]====
    def _check_region(self, region: ImageRegion, where: str) -> None:
        if region.dimension != self.dimension:
            raise InvalidArgumentError(f"Region dimension {region.dimension} != image dimension {self.dimension}.", where)
        if not self._largest_possible_region.is_inside(region):
            raise RangeError(f"Region {region} is outside largest possible region {self._largest_possible_region}.", where)

    def __repr__(self) -> str:
        return (
            f"Image(dimension={self.dimension}, dtype={self.dtype}, "
            f"largest={self._largest_possible_region}, buffered={self._buffered_region})"
        )
