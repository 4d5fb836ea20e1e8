# ==================================================
# ============  MODULE: boundary_faces  ============
# ==================================================
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from core.exceptions import InvalidRequestedRegionError
from core.image import Image
from core.region import Coordinate, CoordinateLike, ImageRegion, as_coordinate

# Public API
__all__ = [
    "FaceCalculatorResult",
    "ImageBoundaryFacesCalculator",
    "compute_faces",
]


@dataclass
class FaceCalculatorResult:
    """
    Decomposition of a region into an interior face and boundary faces.

    Attributes
    ----------
    interior : ImageRegion
        Largest sub-region whose radius-padded neighborhoods stay inside the
        buffered region. May be empty (zero size on some axis).
    boundary_faces : list of ImageRegion
        Disjoint slabs covering the rest of the region.
    radius : Coordinate
        Radius used for the decomposition.
    """
    interior: ImageRegion
    boundary_faces: List[ImageRegion] = field(default_factory=list)
    radius: Coordinate = ()

    @property
    def faces(self) -> List[ImageRegion]:
        """Interior first, then the boundary faces."""
        return [self.interior, *self.boundary_faces]

    def get_number_of_pixels(self) -> int:
        return sum(face.get_number_of_pixels() for face in self.faces)

    def __iter__(self) -> Iterator[ImageRegion]:
        return iter(self.faces)

    def __len__(self) -> int:
        return 1 + len(self.boundary_faces)


# ==================================================
# ======  CLASS: ImageBoundaryFacesCalculator  =====
# ==================================================
class ImageBoundaryFacesCalculator:
    """
    Split a region into faces for radius-`r` neighborhood iteration.

    The interior face is `region ∩ buffered.shrink(r)`: iterating it with a
    neighborhood of radius `r` never leaves the buffer. The remainder is cut
    into slabs axis by axis; the slab of axis `i` spans what is left of the
    region on the other axes once the slabs of the previous axes have been
    removed, so slabs never overlap and, with the interior, tile the region.

    Notes
    -----
    - The interior face is always present (possibly empty) and always first.
    - If the interior is empty on any axis, the whole region is returned as a
      single boundary face.
    - The region is first cropped to the buffered region; no overlap raises
      `InvalidRequestedRegionError`.
    """

    def __call__(self, image: Image, region: Optional[ImageRegion], radius: CoordinateLike) -> FaceCalculatorResult:
        buffered = image.get_buffered_region()
        region = region if region is not None else buffered
        r = as_coordinate(radius, region.dimension, non_negative=True, name="radius")

        if region.is_empty:
            return FaceCalculatorResult(interior=region, boundary_faces=[], radius=r)

        cropped = region.crop(buffered)
        if cropped is None:
            raise InvalidRequestedRegionError(
                f"Region does not overlap the buffered region {buffered}.",
                "ImageBoundaryFacesCalculator",
                region=region,
                data_object=image,
            )

        interior = cropped.crop(buffered.shrink_by_radius(r))
        if interior is None:
            empty = ImageRegion(cropped.index, (0,) * cropped.dimension)
            return FaceCalculatorResult(interior=empty, boundary_faces=[cropped], radius=r)

        faces: List[ImageRegion] = []
        remaining = cropped
        for axis in range(cropped.dimension):
            start, size = remaining.index[axis], remaining.size[axis]
            low = interior.index[axis] - start
            high = start + size - interior.end_index[axis]
            if low > 0:
                faces.append(remaining.slice_region(axis, start, low))
            if high > 0:
                faces.append(remaining.slice_region(axis, interior.end_index[axis], high))
            remaining = remaining.slice_region(axis, interior.index[axis], interior.size[axis])

        return FaceCalculatorResult(interior=interior, boundary_faces=faces, radius=r)


def compute_faces(image: Image, region: Optional[ImageRegion], radius: CoordinateLike) -> List[ImageRegion]:
    """
    Face list of `region` for radius `radius`: interior first, then boundary faces.

    Parameters
    ----------
    image : Image
        Image whose buffered region bounds unchecked access.
    region : ImageRegion or None
        Region to decompose (None uses the buffered region).
    radius : int or Sequence[int]
        Neighborhood radius.

    Returns
    -------
    list of ImageRegion
        Pairwise disjoint faces whose union is `region` cropped to the buffer.

    Examples
    --------
    >>> img = Image.from_array(np.zeros((5, 5)))
    >>> [f.size for f in compute_faces(img, None, 1)]
    [(3, 3), (1, 5), (1, 5), (3, 1), (3, 1)]
    """
    return ImageBoundaryFacesCalculator()(image, region, radius).faces
