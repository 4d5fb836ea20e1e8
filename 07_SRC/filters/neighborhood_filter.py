# ==================================================
# ==========  MODULE: neighborhood_filter  =========
# ==================================================
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Literal, Optional, Union
import threading
import time

import numpy as np
import torch
from joblib import Parallel, delayed

from algorithms.boundary_faces import compute_faces
from algorithms.region_splitter import split_region
from core.boundary_conditions import BoundaryCondition, make_boundary_condition
from core.config import GlobalConfig, IteratorConfig, NeighborhoodConfig, ProgressConfig
from core.exceptions import InvalidArgumentError, InvalidRequestedRegionError
from core.image import Image
from core.region import Coordinate, CoordinateLike, ImageRegion, as_coordinate
from utils.decorators import TimerManager, log_exceptions
from utils.logger import get_debug_logger, get_error_logger, get_logger
from utils.progress import ProgressReporter

# Public API
__all__ = ["NeighborhoodImageFilter"]

ArrayLike = Union[np.ndarray, torch.Tensor]
Framework = Literal["numpy", "torch"]


# ==================================================
# ========  CLASS: NeighborhoodImageFilter  ========
# ==================================================
class NeighborhoodImageFilter(ABC):
    """
    Base class of filters computing each output pixel from an input neighborhood.

    `update` runs the pipeline:

    1. the input requested region is the output region padded by the radius
       and cropped to the input's largest possible region;
    2. the output is allocated with the geometry of the input and
       `before_generate_data` prepares it;
    3. the output region is split into disjoint pieces, processed through
       joblib (`GlobalConfig.backend`, "sequential" or "threading");
    4. the source region of each piece (`get_piece_source_region`, the piece
       itself unless a filter writes around the pixels it visits) is
       decomposed into faces (interior first) and every face is handed to
       `process_face`, which only writes inside the piece. The abort flag is
       checked once per face.

    Parameters
    ----------
    radius : int or Sequence[int], optional
        Neighborhood radius. Defaults to `neighborhood_cfg.radius`.
    boundary_condition : BoundaryCondition, optional
        Policy for neighbors outside the input buffer. Defaults to the one
        described by `neighborhood_cfg`.
    global_cfg : GlobalConfig
        Output format, backend, number of pieces, logging.
    neighborhood_cfg : NeighborhoodConfig
        Radius and boundary policy defaults.
    iterator_cfg : IteratorConfig
        Checks performed by the iterators built per face.
    progress_cfg : ProgressConfig
        Progress granularity.

    Notes
    -----
    - Pieces write disjoint parts of one shared output buffer, which is why
      only thread-based execution is offered.
    - Subclasses never see arrays: they iterate `Image` objects face by face.
    """

    def __init__(
        self,
        radius: Optional[CoordinateLike] = None,
        boundary_condition: Optional[BoundaryCondition] = None,
        global_cfg: GlobalConfig = GlobalConfig(),
        neighborhood_cfg: NeighborhoodConfig = NeighborhoodConfig(),
        iterator_cfg: IteratorConfig = IteratorConfig(),
        progress_cfg: ProgressConfig = ProgressConfig(),
    ) -> None:
        # ====[ Configuration ]====
        self.global_cfg: GlobalConfig = global_cfg
        self.neighborhood_cfg: NeighborhoodConfig = neighborhood_cfg
        self.iterator_cfg: IteratorConfig = iterator_cfg
        self.progress_cfg: ProgressConfig = progress_cfg

        self.radius: CoordinateLike = radius if radius is not None else neighborhood_cfg.radius
        self.boundary_condition: BoundaryCondition = boundary_condition or make_boundary_condition(
            neighborhood_cfg=neighborhood_cfg
        )

        # ====[ Mirror inherited params locally for easy access ]====
        self.output_format: Framework = self.global_cfg.output_format
        self.device: str = self.global_cfg.device
        self.backend: str = self.global_cfg.backend
        self.n_jobs: int = self.global_cfg.n_jobs
        self.number_of_pieces: int = self.global_cfg.number_of_pieces
        self.verbose: bool = bool(self.global_cfg.verbose)

        # ====[ Logging / timing ]====
        log_dir = self.global_cfg.log_dir
        self.logger = get_logger(log_dir=log_dir, level=self.global_cfg.log_level)
        self.error_logger = get_error_logger(log_dir=log_dir)
        self.debug_logger = get_debug_logger(log_dir=log_dir) if self.verbose else None
        self.timers = TimerManager()

        # ====[ Execution state ]====
        self._abort_event = threading.Event()
        self.progress: float = 0.0
        self.progress_callback: Optional[Callable[[float], None]] = None

    # ====[ Helpers ]====
    def _log(self, msg: str) -> None:
        """Trace to the debug logger when verbose mode is enabled."""
        if self.debug_logger is not None:
            self.debug_logger.debug(f"[{type(self).__name__}] {msg}")

    def get_radius(self, dimension: int) -> Coordinate:
        return as_coordinate(self.radius, dimension, non_negative=True, name="radius")

    # ====[ Abort / progress ]====
    def abort(self) -> None:
        """Request the running update to stop at the next face (or progress flush)."""
        self._abort_event.set()

    @property
    def abort_generate_data(self) -> bool:
        return self._abort_event.is_set()

    @abort_generate_data.setter
    def abort_generate_data(self, flag: bool) -> None:
        if flag:
            self._abort_event.set()
        else:
            self._abort_event.clear()

    def _update_progress(self, fraction: float) -> None:
        self.progress = fraction
        if self.progress_callback is not None:
            self.progress_callback(fraction)

    # ====[ Pipeline negotiation ]====
    def generate_input_requested_region(self, input_image: Image, output_region: ImageRegion) -> ImageRegion:
        """
        Pad `output_region` by the radius, crop it to the largest possible
        region of `input_image` and store it as the input requested region.

        Policies that synthesize values from real pixels (zero flux, periodic,
        mirror) widen the result through
        `BoundaryCondition.get_input_requested_region`.

        Raises
        ------
        InvalidRequestedRegionError
            When the padded region does not overlap the largest possible
            region; the exception carries the uncropped region and the image,
            which also keeps the uncropped region as its requested region.
        """
        padded = output_region.pad_by_radius(self.get_radius(input_image.dimension))
        largest = input_image.get_largest_possible_region()
        cropped = padded.crop(largest)
        if cropped is None:
            input_image.set_requested_region(padded)
            raise InvalidRequestedRegionError(
                "Requested region is (at least partially) outside the largest possible region.",
                f"{type(self).__name__}.generate_input_requested_region",
                region=padded,
                data_object=input_image,
            )
        requested = cropped
        if self.boundary_condition.requires_complete_neighborhood():
            requested = self.boundary_condition.get_input_requested_region(largest, padded)
        input_image.set_requested_region(requested)
        return requested

    def allocate_output(self, input_image: Image) -> Image:
        """Output with the input geometry; subclasses may change the pixel type."""
        return input_image.new_like()

    def before_generate_data(self, input_image: Image, output_image: Image) -> None:
        """Hook run once before the pieces are processed."""

    def after_generate_data(self, input_image: Image, output_image: Image) -> None:
        """Hook run once after every piece completed."""

    # ====[ Per-face work ]====
    @abstractmethod
    def process_face(
        self,
        input_image: Image,
        output_image: Image,
        face: ImageRegion,
        is_interior: bool,
        progress: ProgressReporter.Chunk,
        piece: ImageRegion,
    ) -> None:
        """
        Compute the output pixels of `face`, reporting visited pixels to `progress`.

        Writes must stay inside `piece`, the part of the output owned by
        the calling worker.
        """

    def get_piece_source_region(self, input_image: Image, piece: ImageRegion) -> ImageRegion:
        """Input region whose faces are walked to compute `piece` (the piece itself by default)."""
        return piece

    def threaded_generate_data(
        self,
        input_image: Image,
        output_image: Image,
        piece: ImageRegion,
        reporter: ProgressReporter,
    ) -> None:
        """Process one piece: decompose its source region into faces and run `process_face` on each."""
        source = self.get_piece_source_region(input_image, piece)
        faces = compute_faces(input_image, source, self.get_radius(input_image.dimension))
        chunk = reporter.chunk()
        for k, face in enumerate(faces):
            reporter.check_abort()
            if face.is_empty:
                continue
            label = "interior" if k == 0 else "boundary"
            start = time.perf_counter()
            self.process_face(input_image, output_image, face, k == 0, chunk, piece)
            self.timers.add(label, time.perf_counter() - start)
            self._log(f"{label} face {face} done")
        chunk.flush()

    # ====[ Execution ]====
    def _as_image(self, image: Union[Image, ArrayLike]) -> Image:
        if isinstance(image, Image):
            if not image.is_allocated:
                raise InvalidArgumentError("Input image has no buffer.", type(self).__name__)
            return image
        if isinstance(image, (np.ndarray, torch.Tensor)):
            return Image.from_array(image)
        raise InvalidArgumentError(f"Unsupported input type {type(image)}.", type(self).__name__)

    @log_exceptions()
    def update(self, image: Union[Image, ArrayLike], output_region: Optional[ImageRegion] = None) -> Image:
        """
        Run the filter and return the output image.

        Parameters
        ----------
        image : Image, np.ndarray or torch.Tensor
            Input image. Arrays are wrapped (copied) with `Image.from_array`.
        output_region : ImageRegion, optional
            Part of the output to compute. Defaults to the input buffered
            region; pixels outside it keep their initial value.

        Raises
        ------
        InvalidRequestedRegionError
            If the padded output region misses the input entirely.
        ProcessAborted
            If `abort()` was called; the output is partially written.
        """
        input_image = self._as_image(image)
        output_region = output_region if output_region is not None else input_image.get_buffered_region()
        self.generate_input_requested_region(input_image, output_region)

        output_image = self.allocate_output(input_image)
        output_image.set_requested_region(output_region)
        self.before_generate_data(input_image, output_image)

        pieces: List[ImageRegion] = split_region(output_region, self.number_of_pieces)
        n_jobs = 1 if self.backend == "sequential" else self.n_jobs
        self._log(f"{len(pieces)} piece(s), backend={self.backend}, n_jobs={n_jobs}, radius={self.radius}")

        self.timers.reset()
        self._abort_event.clear()
        self.progress = 0.0
        reporter = ProgressReporter(
            output_region.get_number_of_pixels(),
            self.progress_cfg,
            desc=type(self).__name__,
            abort_event=self._abort_event,
            callback=self._update_progress,
        )
        try:
            Parallel(n_jobs=n_jobs, backend=self.backend)(
                delayed(self.threaded_generate_data)(input_image, output_image, piece, reporter) for piece in pieces
            )
        finally:
            reporter.close()
            if self.verbose:
                self.timers.to_log(self.logger)

        self.after_generate_data(input_image, output_image)
        self._update_progress(1.0)
        return output_image

    def __call__(self, image: Union[Image, ArrayLike]) -> ArrayLike:
        """Filter an array (or image) and return the result in `output_format`."""
        return self.update(image).to_array(self.output_format, self.device)

    def get_timings(self) -> Dict[str, Dict[str, float]]:
        return self.timers.to_dict()
