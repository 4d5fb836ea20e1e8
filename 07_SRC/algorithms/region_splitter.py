# ==================================================
# ============  MODULE: region_splitter  ===========
# ==================================================
from __future__ import annotations

from typing import List, Optional
import math

from core.exceptions import InvalidArgumentError
from core.region import ImageRegion

# Public API
__all__ = ["get_number_of_splits", "split_region"]


def _split_axis(region: ImageRegion) -> Optional[int]:
    # Slowest varying axis that can actually be divided.
    for axis in reversed(range(region.dimension)):
        if region.size[axis] > 1:
            return axis
    return None


def get_number_of_splits(region: ImageRegion, requested: int) -> int:
    """
    Number of pieces `split_region` will produce for `requested` pieces.

    Pieces are cut along the slowest axis with more than one pixel, with the
    same extent for all but the last; the count can be lower than requested
    (5 rows requested in 4 pieces give 3 pieces of 2, 2 and 1 rows).
    """
    if requested < 1:
        raise InvalidArgumentError(f"Number of pieces must be >= 1, got {requested}.", "get_number_of_splits")
    axis = _split_axis(region)
    if axis is None:
        return 1
    extent = region.size[axis]
    per_piece = math.ceil(extent / requested)
    return math.ceil(extent / per_piece)


def split_region(region: ImageRegion, number_of_pieces: int) -> List[ImageRegion]:
    """
    Split `region` into disjoint pieces covering it, for parallel work.

    Parameters
    ----------
    region : ImageRegion
        Region to split.
    number_of_pieces : int
        Requested number of pieces (an upper bound).

    Returns
    -------
    list of ImageRegion
        Pieces in increasing order along the split axis. A region that
        cannot be split is returned as a single piece.
    """
    count = get_number_of_splits(region, number_of_pieces)
    axis = _split_axis(region)
    if axis is None or count == 1:
        return [region]

    start, extent = region.index[axis], region.size[axis]
    per_piece = math.ceil(extent / number_of_pieces)
    pieces = []
    for k in range(count):
        lo = start + k * per_piece
        length = min(per_piece, start + extent - lo)
        pieces.append(region.slice_region(axis, lo, length))
    return pieces
