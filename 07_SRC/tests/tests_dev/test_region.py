# ==================================================
# ================ TESTS: ImageRegion ==============
# ==================================================
from __future__ import annotations

import numpy as np
import pytest

from core.exceptions import InvalidArgumentError
from core.region import ImageRegion, as_coordinate, make_region


# ===================
# Construction
# ===================

def test_make_region_broadcasts_scalar_index():
    r = make_region(0, (4, 3))
    assert r.index == (0, 0)
    assert r.size == (4, 3)
    assert r.dimension == 2


@pytest.mark.parametrize("size", [(-1, 2), (3, -4)])
def test_negative_size_is_rejected(size):
    with pytest.raises(InvalidArgumentError):
        make_region((0, 0), size)


def test_zero_dimension_is_rejected():
    with pytest.raises(InvalidArgumentError):
        ImageRegion((), ())


def test_as_coordinate_accepts_numpy_scalars():
    assert as_coordinate(np.int64(2), 3) == (2, 2, 2)
    with pytest.raises(InvalidArgumentError):
        as_coordinate((1, 2), 3)


def test_regions_are_hashable_values():
    assert make_region((1, 2), (3, 4)) == ImageRegion((1, 2), (3, 4))
    assert len({make_region((1, 2), (3, 4)), ImageRegion((1, 2), (3, 4))}) == 1


# ===================
# Geometry
# ===================

def test_end_and_upper_index():
    r = make_region((2, -1), (3, 4))
    assert r.end_index == (5, 3)
    assert r.upper_index == (4, 2)
    assert r.get_number_of_pixels() == 12


def test_empty_region_is_not_falsy_and_reports_empty():
    r = make_region((0, 0), (0, 5))
    assert r.is_empty
    assert r is not None and bool(r)
    assert r.get_number_of_pixels() == 0


def test_is_inside_index_and_region():
    outer = make_region((0, 0), (5, 5))
    assert outer.is_inside((4, 0))
    assert not outer.is_inside((5, 0))
    assert outer.is_inside(make_region((1, 1), (3, 3)))
    assert not outer.is_inside(make_region((3, 3), (3, 1)))
    # Empty regions are inside anything of the same dimension.
    assert outer.is_inside(make_region((100, 100), (0, 0)))


def test_crop_overlap_and_disjoint():
    a = make_region((0, 0), (5, 5))
    b = make_region((3, -2), (4, 4))
    assert a.crop(b) == make_region((3, 0), (2, 2))
    assert a.crop(make_region((5, 0), (2, 2))) is None


def test_crop_dimension_mismatch_raises():
    with pytest.raises(InvalidArgumentError):
        make_region((0, 0), (2, 2)).crop(make_region((0, 0, 0), (2, 2, 2)))


def test_pad_and_shrink_by_radius():
    r = make_region((2, 2), (4, 3))
    assert r.pad_by_radius(1) == make_region((1, 1), (6, 5))
    assert r.pad_by_radius((2, 0)) == make_region((0, 2), (8, 3))
    assert r.shrink_by_radius(1) == make_region((3, 3), (2, 1))
    # Shrinking past zero collapses the axis.
    assert r.shrink_by_radius(2).size == (0, 0)


def test_slice_region():
    r = make_region((0, 0), (5, 5))
    assert r.slice_region(1, 2, 2) == make_region((0, 2), (5, 2))
    with pytest.raises(InvalidArgumentError):
        r.slice_region(2, 0, 1)


# ===================
# Linear positions
# ===================

def test_compute_offset_axis0_fastest():
    r = make_region((1, 1), (3, 2))
    assert r.compute_offset((1, 1)) == 0
    assert r.compute_offset((2, 1)) == 1
    assert r.compute_offset((1, 2)) == 3


def test_compute_index_inverts_compute_offset():
    r = make_region((-2, 3, 1), (3, 4, 2))
    for pos in range(r.get_number_of_pixels()):
        assert r.compute_offset(r.compute_index(pos)) == pos


def test_iter_indices_order():
    r = make_region((0, 0), (2, 2))
    assert list(r.iter_indices()) == [(0, 0), (1, 0), (0, 1), (1, 1)]


def test_to_slices_reverses_axes():
    r = make_region((1, 2), (3, 1))
    arr = np.arange(30).reshape(5, 6)  # size (6, 5)
    block = arr[r.to_slices()]
    assert block.shape == (1, 3)
    assert block.tolist() == [[13, 14, 15]]
