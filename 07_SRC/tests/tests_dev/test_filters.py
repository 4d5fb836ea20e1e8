# ==================================================
# ================ TESTS: Filters ==================
# ==================================================
from __future__ import annotations

import numpy as np
import pytest
import torch
from scipy import ndimage

from core.boundary_conditions import ConstantBoundaryCondition, PeriodicBoundaryCondition, make_boundary_condition
from core.config import GlobalConfig, MorphologyConfig, ProgressConfig
from core.exceptions import InvalidRequestedRegionError, ProcessAborted
from core.image import Image
from core.region import make_region
from filters.neighborhood_operator_filter import NeighborhoodOperatorImageFilter, correlate_image
from filters.object_morphology import (
    DilateObjectMorphologyImageFilter,
    ErodeObjectMorphologyImageFilter,
    object_closing,
)
from operators.derivative_operator import DerivativeOperator
from operators.laplacian_operator import LaplacianOperator
from operators.structuring_elements import binary_box_kernel

# scipy.ndimage mode equivalent to each boundary policy
SCIPY_MODES = {
    "constant": "constant",
    "zero_flux": "nearest",
    "periodic": "wrap",
    "mirror": "mirror",
}


# ===================
# Operator filter
# ===================

@pytest.mark.parametrize("policy", list(SCIPY_MODES))
@pytest.mark.parametrize(
    "shape, operator",
    [
        ((6, 7), LaplacianOperator(2).create_operator()),
        ((6, 7), DerivativeOperator(2, direction=1, order=2).create_to_radius(2)),
        ((4, 5, 6), LaplacianOperator(3).create_operator()),
    ],
)
def test_correlation_matches_scipy(rng, shape, operator, policy):
    arr = rng.random(shape)
    out = correlate_image(arr, operator, boundary_condition=policy, constant=0.5)
    expected = ndimage.correlate(arr, operator.as_array(), mode=SCIPY_MODES[policy], cval=0.5)
    np.testing.assert_allclose(out, expected, atol=1e-12)


def test_threaded_pieces_match_sequential(rng):
    arr = rng.random((9, 11))
    op = LaplacianOperator(2).create_to_radius(2)
    sequential = correlate_image(arr, op, boundary_condition="zero_flux")
    threaded = correlate_image(arr, op, boundary_condition="zero_flux", backend="threading", number_of_pieces=4)
    np.testing.assert_allclose(sequential, threaded, atol=1e-12)


def test_torch_in_and_out(rng):
    arr = rng.random((5, 6))
    op = LaplacianOperator(2).create_operator()
    out = correlate_image(torch.from_numpy(arr), op, boundary_condition="periodic", output_format="torch")
    assert isinstance(out, torch.Tensor)
    np.testing.assert_allclose(out.numpy(), ndimage.correlate(arr, op.as_array(), mode="wrap"), atol=1e-12)


def test_integer_input_gives_real_output():
    arr = np.arange(16, dtype=np.int32).reshape(4, 4)
    op = DerivativeOperator(2, direction=0).create_to_radius(1)
    out = correlate_image(arr, op, boundary_condition="zero_flux")
    assert out.dtype == np.float64
    # Centered difference of a ramp rising by 1 along axis 0.
    np.testing.assert_allclose(out[:, 1:-1], 1.0)
    np.testing.assert_allclose(out[:, 0], 0.5)


def test_output_region_limits_written_pixels(ramp_2d: Image):
    flt = NeighborhoodOperatorImageFilter(LaplacianOperator(2).create_operator())
    region = make_region((1, 1), (2, 3))
    out = flt.update(ramp_2d, output_region=region).to_array()
    assert np.count_nonzero(out) == 0  # the Laplacian of a linear ramp vanishes
    assert ramp_2d.get_requested_region() == make_region((0, 0), (4, 5))


def test_input_requested_region_follows_boundary_policy(ramp_2d: Image):
    region = make_region((0, 1), (2, 2))
    laplacian = LaplacianOperator(2).create_operator()

    NeighborhoodOperatorImageFilter(laplacian).update(ramp_2d, output_region=region)
    assert ramp_2d.get_requested_region() == make_region((0, 0), (3, 4))

    # Wrapping reads the far side of axis 0, so that axis is requested whole.
    flt = NeighborhoodOperatorImageFilter(laplacian, boundary_condition=PeriodicBoundaryCondition())
    flt.update(ramp_2d, output_region=region)
    assert ramp_2d.get_requested_region() == make_region((0, 0), (5, 4))


def test_requested_region_outside_input_raises(ramp_2d: Image):
    flt = NeighborhoodOperatorImageFilter(LaplacianOperator(2).create_operator())
    with pytest.raises(InvalidRequestedRegionError) as exc:
        flt.update(ramp_2d, output_region=make_region((50, 50), (2, 2)))
    assert exc.value.region == make_region((49, 49), (4, 4))
    assert exc.value.data_object is ramp_2d
    assert ramp_2d.get_requested_region() == make_region((49, 49), (4, 4))


def test_abort_from_progress_callback(rng):
    flt = NeighborhoodOperatorImageFilter(
        LaplacianOperator(2).create_operator(),
        progress_cfg=ProgressConfig(update_every=1),
    )
    seen = []

    def on_progress(fraction):
        seen.append(fraction)
        flt.abort()

    flt.progress_callback = on_progress
    with pytest.raises(ProcessAborted):
        flt.update(rng.random((6, 6)))
    assert len(seen) == 1
    assert flt.abort_generate_data

    # A new update clears the request and runs to completion.
    flt.progress_callback = None
    flt.update(rng.random((6, 6)))
    assert flt.progress == 1.0


def test_timings_per_face_kind(rng):
    flt = NeighborhoodOperatorImageFilter(LaplacianOperator(2).create_operator())
    flt.update(rng.random((6, 6)))
    timings = flt.get_timings()
    assert timings["interior"]["count"] == 1
    assert timings["boundary"]["count"] == 4


# ===================
# Object morphology
# ===================

def _dilate(arr, cfg=MorphologyConfig(), **kwargs):
    return DilateObjectMorphologyImageFilter(morphology_cfg=cfg, **kwargs)(arr)


def _erode(arr, cfg=MorphologyConfig(), **kwargs):
    return ErodeObjectMorphologyImageFilter(morphology_cfg=cfg, **kwargs)(arr)


def test_dilate_single_pixel_ball_and_box():
    arr = np.zeros((7, 7), dtype=np.uint8)
    arr[3, 3] = 1
    ball = _dilate(arr)
    assert int(ball.sum()) == 5
    assert ball[2, 3] == ball[4, 3] == ball[3, 2] == ball[3, 4] == 1
    box = _dilate(arr, MorphologyConfig(kernel_shape="box"))
    np.testing.assert_array_equal(box[2:5, 2:5], np.ones((3, 3)))
    assert int(box.sum()) == 9


def test_dilate_at_image_corner_stays_inside():
    arr = np.zeros((5, 5))
    arr[0, 0] = 1
    out = _dilate(arr, MorphologyConfig(kernel_shape="box"))
    np.testing.assert_array_equal(out[:2, :2], np.ones((2, 2)))
    assert out.sum() == 4


def test_dilate_with_explicit_kernel():
    arr = np.zeros((9, 9))
    arr[4, 4] = 1
    out = DilateObjectMorphologyImageFilter(kernel=binary_box_kernel((2, 1), 2))(arr)
    # radius 2 along axis 0 (columns), 1 along axis 1 (rows)
    np.testing.assert_array_equal(out[3:6, 2:7], np.ones((3, 5)))
    assert out.sum() == 15


def test_dilation_writes_only_inside_output_region():
    img = Image.from_array(np.zeros((7, 7)))
    img.set_pixel((3, 3), 1.0)
    flt = DilateObjectMorphologyImageFilter(morphology_cfg=MorphologyConfig(kernel_shape="box"))

    out = flt.update(img, output_region=make_region((3, 3), (1, 1))).to_array()
    assert out[3, 3] == 1
    assert out.sum() == 1

    # An object pixel just outside the region still stamps into it.
    out = flt.update(img, output_region=make_region((4, 4), (2, 2))).to_array()
    assert out[4, 4] == 1
    assert out.sum() == 1
    assert flt.progress == 1.0


def test_dilation_pieces_own_their_pixels():
    img = Image.from_array(np.zeros((6, 8)))
    img.set_pixel((3, 2), 1.0)
    cfg = MorphologyConfig(kernel_shape="box")
    seen = []
    flt = DilateObjectMorphologyImageFilter(
        morphology_cfg=cfg,
        global_cfg=GlobalConfig(number_of_pieces=6),
        progress_cfg=ProgressConfig(update_every=1),
    )
    flt.progress_callback = seen.append
    out = flt.update(img).to_array()
    np.testing.assert_array_equal(out[1:4, 2:5], np.ones((3, 3)))
    assert out.sum() == 9
    # Pixels visited around a piece are not counted twice.
    assert max(seen) == 1.0
    assert len([f for f in seen if f < 1.0]) == 47


def test_erode_square_by_one_pixel():
    arr = np.zeros((9, 9))
    arr[2:7, 2:7] = 1
    out = _erode(arr, MorphologyConfig(kernel_shape="box"))
    expected = np.zeros((9, 9))
    expected[3:6, 3:6] = 1
    np.testing.assert_array_equal(out, expected)


def test_erode_keeps_non_object_values():
    arr = np.full((5, 5), 7.0)
    arr[1:4, 1:4] = 1
    out = _erode(arr, MorphologyConfig(kernel_shape="box"))
    # Only the center of the 3x3 block has no non-object pixel under the kernel.
    assert out[2, 2] == 1
    assert out[0, 0] == 7.0
    assert int((out == 0).sum()) == 8


def test_erode_at_image_edge_depends_on_boundary_switch():
    arr = np.zeros((9, 9))
    arr[:, 0:3] = 1
    ignored = _erode(arr, MorphologyConfig(kernel_shape="box", use_boundary_condition=False))
    assert ignored.sum() == 18
    assert ignored[:, 0:2].all()

    counted = _erode(arr, MorphologyConfig(kernel_shape="box", use_boundary_condition=True))
    assert counted.sum() == 7
    assert counted[1:8, 1].all()


def test_boundary_condition_value_used_when_switch_on():
    arr = np.ones((4, 4))
    cfg = MorphologyConfig(kernel_shape="box", use_boundary_condition=True)
    # Outside neighbors synthesized as object pixels: nothing to erode.
    out = ErodeObjectMorphologyImageFilter(morphology_cfg=cfg, boundary_condition=ConstantBoundaryCondition(1.0))(arr)
    assert out.sum() == 16
    out = ErodeObjectMorphologyImageFilter(morphology_cfg=cfg, boundary_condition=make_boundary_condition("zero_flux"))(arr)
    assert out.sum() == 16


def test_morphology_pieces_match_sequential(rng):
    arr = (rng.random((12, 10)) > 0.8).astype(np.float64)
    cfg = MorphologyConfig(kernel_shape="box", kernel_radius=2)
    sequential = _dilate(arr, cfg)
    threaded = _dilate(arr, cfg, global_cfg=GlobalConfig(backend="threading", n_jobs=2, number_of_pieces=3))
    np.testing.assert_array_equal(sequential, threaded)


# ===================
# Closing
# ===================

def test_closing_bridges_one_pixel_gap():
    arr = np.array([0, 0, 1, 1, 1, 0, 1, 1, 1, 0, 0])
    out = object_closing(arr)
    assert out.tolist() == [0, 0, 1, 1, 1, 1, 1, 1, 1, 0, 0]


def test_closing_fills_hole_and_reports_progress():
    arr = np.zeros((9, 9))
    arr[2:7, 2:7] = 1
    arr[4, 4] = 0
    values = []
    out = object_closing(arr, morphology_cfg=MorphologyConfig(kernel_shape="box"), progress_callback=values.append)
    expected = np.zeros((9, 9))
    expected[2:7, 2:7] = 1
    np.testing.assert_array_equal(out, expected)
    assert values[-1] == pytest.approx(1.0)
    assert all(b >= a - 1e-12 for a, b in zip(values, values[1:]))
