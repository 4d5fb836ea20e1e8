# ==================================================
# =====  MODULE: neighborhood_operator_filter  =====
# ==================================================
from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

import numpy as np

from algorithms.neighborhood_inner_product import inner_product
from core.boundary_conditions import BoundaryCondition, make_boundary_condition
from core.config import GlobalConfig, IteratorConfig, NeighborhoodConfig, ProgressConfig
from core.image import Image
from core.neighborhood import Neighborhood
from core.region import ImageRegion
from filters.neighborhood_filter import ArrayLike, NeighborhoodImageFilter
from iterators.neighborhood_iterator import NeighborhoodIterator
from iterators.region_iterator import ImageRegionIterator
from utils.decorators import safe_timer
from utils.progress import ProgressReporter

# Public API
__all__ = ["NeighborhoodOperatorImageFilter", "correlate_image"]


class NeighborhoodOperatorImageFilter(NeighborhoodImageFilter):
    """
    Correlate an image with a neighborhood operator.

    Every output pixel is the inner product of the operator with the input
    window centered on it. The interior face is walked without any bounds
    check; boundary faces use the filter's boundary condition.

    Parameters
    ----------
    operator : Neighborhood
        Coefficients (e.g. a `LaplacianOperator` or `DerivativeOperator`).
        Its radius is the filter radius.
    boundary_condition : BoundaryCondition, optional
        Defaults to the policy of `neighborhood_cfg`.
    """

    def __init__(
        self,
        operator: Neighborhood,
        boundary_condition: Optional[BoundaryCondition] = None,
        global_cfg: GlobalConfig = GlobalConfig(),
        neighborhood_cfg: NeighborhoodConfig = NeighborhoodConfig(),
        iterator_cfg: IteratorConfig = IteratorConfig(),
        progress_cfg: ProgressConfig = ProgressConfig(),
    ) -> None:
        super().__init__(
            radius=operator.radius,
            boundary_condition=boundary_condition,
            global_cfg=global_cfg,
            neighborhood_cfg=neighborhood_cfg,
            iterator_cfg=iterator_cfg,
            progress_cfg=progress_cfg,
        )
        self.operator: Neighborhood = operator

    def allocate_output(self, input_image: Image) -> Image:
        # Real coefficients on an integer image give real results.
        return input_image.new_like(dtype=np.result_type(input_image.dtype, self.operator.dtype))

    def process_face(
        self,
        input_image: Image,
        output_image: Image,
        face: ImageRegion,
        is_interior: bool,
        progress: ProgressReporter.Chunk,
        piece: ImageRegion,
    ) -> None:
        bit = NeighborhoodIterator(self.operator.radius, input_image, face, iterator_cfg=self.iterator_cfg)
        if not is_interior:
            bit.override_boundary_condition(self.boundary_condition)
        out = ImageRegionIterator(output_image, face, iterator_cfg=self.iterator_cfg)

        bit.go_to_begin()
        out.go_to_begin()
        while not out.is_at_end():
            out.set(inner_product(bit, self.operator))
            bit.advance()
            out.advance()
            progress.completed_pixel()


@safe_timer(name="correlate_image")
def correlate_image(
    img: Union[Image, ArrayLike],
    operator: Neighborhood,
    boundary_condition: str = "constant",
    constant: float = 0.0,
    output_format: Literal["numpy", "torch"] = "numpy",
    backend: str = "sequential",
    number_of_pieces: int = 1,
) -> ArrayLike:
    """
    Convenience wrapper: correlate `img` with `operator` and return an array.

    Parameters
    ----------
    img : Image, np.ndarray or torch.Tensor
        Input image (array order `(..., axis1, axis0)`).
    operator : Neighborhood
        Coefficients.
    boundary_condition : str, default "constant"
        "constant", "zero_flux", "periodic" or "mirror".
    constant : float, default 0.0
        Value of the constant policy.
    output_format : {"numpy", "torch"}, default "numpy"
        Framework of the returned array.
    backend : {"sequential", "threading"}, default "sequential"
        joblib backend for the pieces.
    number_of_pieces : int, default 1
        Number of pieces processed in parallel.
    """
    # ====[ Configuration ]====
    global_params: Dict[str, Any] = {
        "output_format": output_format,
        "backend": backend,
        "number_of_pieces": number_of_pieces,
    }
    neighborhood_params: Dict[str, Any] = {"boundary_condition": boundary_condition, "constant_value": constant}
    neighborhood_cfg = NeighborhoodConfig(**neighborhood_params)

    flt = NeighborhoodOperatorImageFilter(
        operator,
        boundary_condition=make_boundary_condition(neighborhood_cfg=neighborhood_cfg),
        global_cfg=GlobalConfig(**global_params),
        neighborhood_cfg=neighborhood_cfg,
    )
    return flt(img)
