# ==================================================
# ===========  MODULE: object_morphology  ==========
# ==================================================
from __future__ import annotations

from abc import abstractmethod
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np

from core.boundary_conditions import BoundaryCondition, ConstantBoundaryCondition
from core.config import GlobalConfig, IteratorConfig, MorphologyConfig, ProgressConfig
from core.exceptions import InvalidArgumentError
from core.image import Image
from core.neighborhood import Neighborhood
from core.region import Coordinate, ImageRegion
from filters.neighborhood_filter import ArrayLike, NeighborhoodImageFilter
from iterators.neighborhood_iterator import NeighborhoodIterator
from iterators.region_iterator import ImageRegionIterator
from operators.structuring_elements import make_kernel
from utils.decorators import safe_timer
from utils.progress import ProgressAccumulator, ProgressReporter

# Public API
__all__ = [
    "ObjectMorphologyImageFilter",
    "DilateObjectMorphologyImageFilter",
    "ErodeObjectMorphologyImageFilter",
    "object_closing",
]


# ==================================================
# ======  CLASS: ObjectMorphologyImageFilter  ======
# ==================================================
class ObjectMorphologyImageFilter(NeighborhoodImageFilter):
    """
    Morphology that only touches pixels on the border of an object.

    The output starts as a copy of the input. An object pixel (value
    `object_value`) with at least one tested neighbor of another value is on
    the object boundary, and `evaluate` then writes into the output around it.
    The tested footprint is the radius-1 neighborhood unless a subclass
    replaces it through `get_border_footprint`.

    Parameters
    ----------
    kernel : Neighborhood, optional
        Boolean structuring element. Defaults to the one described by
        `morphology_cfg` (built when the image dimension is known).
    morphology_cfg : MorphologyConfig
        Object/background values, kernel description and the
        `use_boundary_condition` switch:

        - False: neighbors outside the input buffer are ignored when testing
          whether a pixel is on the object boundary;
        - True: they are synthesized by `boundary_condition` and compared
          like any other neighbor.
    boundary_condition : BoundaryCondition, optional
        Policy for the boundary test. Defaults to a constant `background_value`.

    Notes
    -----
    Every write lands inside the piece of the worker doing it, so pieces
    never write the same pixel and pixels outside the requested output
    region keep their initial value.
    """

    def __init__(
        self,
        kernel: Optional[Neighborhood] = None,
        morphology_cfg: MorphologyConfig = MorphologyConfig(),
        boundary_condition: Optional[BoundaryCondition] = None,
        global_cfg: GlobalConfig = GlobalConfig(),
        iterator_cfg: IteratorConfig = IteratorConfig(),
        progress_cfg: ProgressConfig = ProgressConfig(),
    ) -> None:
        super().__init__(
            radius=kernel.radius if kernel is not None else morphology_cfg.kernel_radius,
            boundary_condition=boundary_condition or ConstantBoundaryCondition(morphology_cfg.background_value),
            global_cfg=global_cfg,
            iterator_cfg=iterator_cfg,
            progress_cfg=progress_cfg,
        )
        self.morphology_cfg: MorphologyConfig = morphology_cfg
        self.kernel: Optional[Neighborhood] = kernel
        self.object_value = morphology_cfg.object_value
        self.background_value = morphology_cfg.background_value
        self.use_boundary_condition: bool = bool(morphology_cfg.use_boundary_condition)

    # ====[ Kernel ]====
    def _resolve_kernel(self, dimension: int) -> Neighborhood:
        if self.kernel is None:
            self.kernel = make_kernel(dimension, self.morphology_cfg)
        if self.kernel.dimension != dimension:
            raise InvalidArgumentError(
                f"Kernel dimension {self.kernel.dimension} != image dimension {dimension}.", type(self).__name__
            )
        return self.kernel

    def get_radius(self, dimension: int) -> Coordinate:
        # The boundary test reads radius-1 neighbors even for a zero-radius kernel.
        kernel = self._resolve_kernel(dimension)
        return tuple(max(r, 1) for r in kernel.radius)

    # ====[ Pipeline hooks ]====
    def before_generate_data(self, input_image: Image, output_image: Image) -> None:
        """Start from a copy of the input over the output requested region."""
        region = output_image.get_requested_region()
        src = ImageRegionIterator(input_image, region, iterator_cfg=self.iterator_cfg)
        dst = ImageRegionIterator(output_image, region, iterator_cfg=self.iterator_cfg)
        src.go_to_begin()
        dst.go_to_begin()
        while not src.is_at_end():
            dst.set(src.get())
            src.advance()
            dst.advance()

    def get_border_footprint(self, kernel: Neighborhood) -> Tuple[Coordinate, Optional[np.ndarray]]:
        """Radius and neighbor indices read by the boundary test (None: all of them)."""
        return (1,) * kernel.dimension, None

    def is_object_pixel_on_boundary(
        self, iterator: NeighborhoodIterator, indices: Optional[Sequence[int]] = None
    ) -> bool:
        """Whether a tested neighbor of the (object) center pixel differs from `object_value`."""
        if indices is None:
            indices = range(iterator.size)
        if self.use_boundary_condition:
            for i in indices:
                if iterator.get_pixel(int(i)) != self.object_value:
                    return True
            return False
        for i in indices:
            value, is_inside = iterator.get_pixel_with_status(int(i))
            if is_inside and value != self.object_value:
                return True
        return False

    @abstractmethod
    def evaluate(self, iterator: NeighborhoodIterator, kernel: Neighborhood, piece: ImageRegion) -> None:
        """Write into the output around a boundary object pixel, inside `piece` only."""

    def process_face(
        self,
        input_image: Image,
        output_image: Image,
        face: ImageRegion,
        is_interior: bool,
        progress: ProgressReporter.Chunk,
        piece: ImageRegion,
    ) -> None:
        kernel = self._resolve_kernel(input_image.dimension)
        footprint_radius, footprint = self.get_border_footprint(kernel)
        onit = NeighborhoodIterator(kernel.radius, output_image, face, iterator_cfg=self.iterator_cfg)
        init = NeighborhoodIterator(footprint_radius, input_image, face, iterator_cfg=self.iterator_cfg)
        init.override_boundary_condition(self.boundary_condition)
        # Faces of a widened source region also visit pixels owned by other pieces.
        face_in_piece = piece.is_inside(face)

        onit.go_to_begin()
        init.go_to_begin()
        while not init.is_at_end():
            if init.get_center_pixel() == self.object_value and self.is_object_pixel_on_boundary(init, footprint):
                self.evaluate(onit, kernel, piece)
            if face_in_piece or piece.is_inside(init.get_index()):
                progress.completed_pixel()
            init.advance()
            onit.advance()


class DilateObjectMorphologyImageFilter(ObjectMorphologyImageFilter):
    """
    Grow objects: border pixels stamp `object_value` under the kernel.

    Object pixels up to the kernel radius outside a piece can stamp into it,
    so each worker walks its piece padded by that radius and keeps only the
    stamps landing inside the piece. Workers thus write disjoint pixels, and
    nothing outside the requested output region changes.
    """

    def get_radius(self, dimension: int) -> Coordinate:
        # Border test of the pixels visited around the piece: one more pixel.
        kernel = self._resolve_kernel(dimension)
        return tuple(r + 1 for r in kernel.radius)

    def get_piece_source_region(self, input_image: Image, piece: ImageRegion) -> ImageRegion:
        kernel = self._resolve_kernel(input_image.dimension)
        source = piece.pad_by_radius(kernel.radius).crop(input_image.get_buffered_region())
        return source if source is not None else piece

    def evaluate(self, iterator: NeighborhoodIterator, kernel: Neighborhood, piece: ImageRegion) -> None:
        for i in np.flatnonzero(kernel.data):
            if piece.is_inside(iterator.get_index(int(i))):
                iterator.set_pixel(int(i), self.object_value)


class ErodeObjectMorphologyImageFilter(ObjectMorphologyImageFilter):
    """
    Shrink objects: an object pixel with a non-object pixel under the kernel
    becomes `background_value`.

    The border test reads the kernel footprint itself and only the center
    pixel is written. Stamping `background_value` under the whole kernel
    around every border object pixel (the dual of the dilation) would remove
    one layer more than the kernel extent, so that a dilation followed by an
    erosion with the same kernel would shrink objects instead of closing them.
    """

    def get_border_footprint(self, kernel: Neighborhood) -> Tuple[Coordinate, Optional[np.ndarray]]:
        return kernel.radius, np.flatnonzero(kernel.data)

    def evaluate(self, iterator: NeighborhoodIterator, kernel: Neighborhood, piece: ImageRegion) -> None:
        iterator.set_center_pixel(self.background_value)


@safe_timer(name="object_closing")
def object_closing(
    image: Union[Image, ArrayLike],
    kernel: Optional[Neighborhood] = None,
    morphology_cfg: MorphologyConfig = MorphologyConfig(),
    global_cfg: GlobalConfig = GlobalConfig(),
    progress_callback: Optional[Callable[[float], None]] = None,
) -> ArrayLike:
    """
    Morphological closing (dilation followed by erosion) of the objects of `image`.

    Both stages weigh half of the reported progress, accumulated by a
    `ProgressAccumulator`.

    Parameters
    ----------
    image : Image, np.ndarray or torch.Tensor
        Input image.
    kernel : Neighborhood, optional
        Structuring element (defaults to `morphology_cfg`).
    morphology_cfg : MorphologyConfig
        Object values and kernel description.
    global_cfg : GlobalConfig
        Backend, pieces and output format.
    progress_callback : Callable[[float], None], optional
        Receives the combined progress in [0, 1].

    Returns
    -------
    ArrayLike
        Closed image in `global_cfg.output_format`.
    """
    accumulator = ProgressAccumulator(callback=progress_callback)
    accumulator.register("dilate", 0.5)
    accumulator.register("erode", 0.5)

    dilate = DilateObjectMorphologyImageFilter(kernel, morphology_cfg=morphology_cfg, global_cfg=global_cfg)
    erode = ErodeObjectMorphologyImageFilter(kernel, morphology_cfg=morphology_cfg, global_cfg=global_cfg)
    dilate.progress_callback = accumulator.stage_callback("dilate")
    erode.progress_callback = accumulator.stage_callback("erode")

    dilated = dilate.update(image)
    closed = erode.update(dilated)
    return closed.to_array(global_cfg.output_format, global_cfg.device)
