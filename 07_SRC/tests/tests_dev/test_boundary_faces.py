# ==================================================
# ======= TESTS: Face decomposition / splitting =====
# ==================================================
from __future__ import annotations

from typing import List

import numpy as np
import pytest

from algorithms.boundary_faces import ImageBoundaryFacesCalculator, compute_faces
from algorithms.region_splitter import get_number_of_splits, split_region
from core.boundary_conditions import ConstantBoundaryCondition
from core.exceptions import InvalidArgumentError, InvalidRequestedRegionError
from core.image import Image
from core.region import ImageRegion, make_region
from iterators.neighborhood_iterator import NeighborhoodIterator


def _pixels(regions: List[ImageRegion]) -> List[tuple]:
    out = []
    for r in regions:
        out.extend(r.iter_indices())
    return out


def _image(size) -> Image:
    return Image.from_array(np.zeros(tuple(reversed(size))))


# ===================
# Invariants
# ===================

@pytest.mark.parametrize(
    "size, region, radius",
    [
        ((5, 5), None, 1),
        ((7, 4), None, (2, 1)),
        ((6, 5, 4), None, 1),
        ((9, 9), make_region((0, 3), (9, 6)), 2),
        ((9, 9), make_region((2, 2), (4, 4)), 1),
        ((3, 8), None, 2),
        ((4, 4), None, 0),
    ],
)
def test_faces_are_disjoint_and_cover_region(size, region, radius):
    img = _image(size)
    faces = compute_faces(img, region, radius)
    target = region if region is not None else img.get_buffered_region()
    pixels = _pixels(faces)
    assert len(pixels) == len(set(pixels))
    assert set(pixels) == set(target.iter_indices())


@pytest.mark.parametrize(
    "size, radius, interior_empty",
    [
        ((5, 5), 1, False),
        ((5, 2), 1, True),
        ((3, 3), 1, False),
        ((4, 4), 2, True),
        ((5, 5, 5), 2, False),
    ],
)
def test_interior_empty_when_some_axis_too_small(size, radius, interior_empty):
    faces = compute_faces(_image(size), None, radius)
    assert faces[0].is_empty is interior_empty
    if interior_empty:
        assert len(faces) == 2
        assert faces[1] == make_region((0,) * len(size), size)


def test_interior_first_and_safe_for_unchecked_access():
    img = _image((8, 6))
    result = ImageBoundaryFacesCalculator()(img, None, (2, 1))
    assert result.faces[0] is result.interior
    assert result.interior == make_region((2, 1), (4, 4))
    assert img.get_buffered_region().is_inside(result.interior.pad_by_radius((2, 1)))
    assert result.get_number_of_pixels() == 48
    assert len(result) == 1 + len(result.boundary_faces)


def test_region_away_from_buffer_edge_is_all_interior():
    img = _image((10, 10))
    faces = compute_faces(img, make_region((3, 3), (4, 4)), 2)
    assert faces == [make_region((3, 3), (4, 4))]


def test_region_outside_buffer_raises():
    img = _image((4, 4))
    with pytest.raises(InvalidRequestedRegionError) as exc:
        compute_faces(img, make_region((10, 10), (2, 2)), 1)
    assert exc.value.region == make_region((10, 10), (2, 2))
    assert exc.value.data_object is img


# ===================
# Concrete 5x5 scenario
# ===================

def test_five_by_five_radius_one():
    img = Image.from_array(np.arange(1, 26, dtype=np.float64).reshape(5, 5))
    faces = compute_faces(img, None, 1)
    assert faces[0] == make_region((1, 1), (3, 3))
    assert sorted(f.size for f in faces[1:]) == [(1, 5), (1, 5), (3, 1), (3, 1)]
    assert sum(f.get_number_of_pixels() for f in faces) == 25

    it = NeighborhoodIterator(1, img, faces[1], boundary_condition=ConstantBoundaryCondition(0.0))
    it.go_to_begin()
    assert it.get_index() == (0, 0)
    assert it.get_pixel(it.get_neighborhood_index((-1, -1))) == 0.0


# ===================
# Region splitting
# ===================

@pytest.mark.parametrize("pieces", [1, 2, 3, 4, 7, 50])
def test_split_region_covers_without_overlap(pieces):
    region = make_region((1, -2, 0), (4, 7, 3))
    parts = split_region(region, pieces)
    assert len(parts) == get_number_of_splits(region, pieces)
    assert len(parts) <= pieces
    pixels = _pixels(parts)
    assert len(pixels) == len(set(pixels)) == region.get_number_of_pixels()


def test_split_uses_slowest_axis_with_extent():
    region = make_region((0, 0, 0), (4, 6, 1))
    parts = split_region(region, 3)
    assert [p.size for p in parts] == [(4, 2, 1)] * 3
    assert [p.index[1] for p in parts] == [0, 2, 4]


def test_split_of_single_pixel_region():
    region = make_region((2, 2), (1, 1))
    assert split_region(region, 4) == [region]


def test_split_rejects_zero_pieces():
    with pytest.raises(InvalidArgumentError):
        split_region(make_region((0, 0), (2, 2)), 0)
