# ==================================================
# ============== TESTS: shared fixtures ============
# ==================================================
from __future__ import annotations

import os
import tempfile

# Log files of the suite go to a throwaway directory (read at import of utils.logger).
os.environ.setdefault("NDITER_LOG_DIR", tempfile.mkdtemp(prefix="nditer_logs_"))

import numpy as np
import pytest

from core.image import Image


def _ramp(shape) -> np.ndarray:
    """Array of distinct values 1, 2, ... in C order."""
    return np.arange(1, int(np.prod(shape)) + 1, dtype=np.float64).reshape(shape)


@pytest.fixture
def ramp_2d() -> Image:
    """5x5 image holding 1..25 (size (5, 5), axis 0 = columns)."""
    return Image.from_array(_ramp((5, 5)))


@pytest.fixture
def ramp_3d() -> Image:
    """Image of size (6, 5, 4) holding distinct values."""
    return Image.from_array(_ramp((4, 5, 6)))


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(123)
