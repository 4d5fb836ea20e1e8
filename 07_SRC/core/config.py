# ==================================================
# ================  MODULE: config  ================
# ==================================================
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

import yaml

from core.exceptions import InvalidArgumentError

__all__ = [
    "GlobalConfig",
    "IteratorConfig",
    "NeighborhoodConfig",
    "MorphologyConfig",
    "ProgressConfig",
    "CONFIG_SECTIONS",
    "load_config",
    "save_config",
]

BACKENDS = ("sequential", "threading")
FRAMEWORKS = ("numpy", "torch")
BOUNDARY_CONDITIONS = ("constant", "zero_flux", "periodic", "mirror")
KERNEL_SHAPES = ("ball", "box", "cross")


class _UpdatableConfig:
    """Mixin providing in-place `update_config` with unknown-key detection."""

    def update_config(self, **kwargs):
        """Dynamically update configuration attributes (in-place)."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"[{type(self).__name__}] Unknown config key: '{key}'")
        if hasattr(self, "__post_init__"):
            self.__post_init__()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ==================================================
# ===============  CLASS: GlobalConfig  ============
# ==================================================
@dataclass
class GlobalConfig(_UpdatableConfig):
    """
    Global configuration shared by images, iterators and filters.

    Attributes
    ----------
    output_format : str, default "numpy"
        Framework of arrays returned by filters.
    device : str, default "cpu"
        Torch device used when `output_format` is "torch".
    verbose : bool, default False
        Log per-face and per-piece details through the debug logger.
    backend : str, default "sequential"
        joblib backend used to process region pieces ("sequential" or "threading").
        Output pieces are written into one shared buffer, so process-based
        backends are not accepted.
    n_jobs : int, default -1
        Number of joblib workers (-1 uses every core).
    number_of_pieces : int, default 1
        Number of disjoint pieces the output region is split into.
    log_dir : str or Path, optional
        Directory of rotating log files. None uses `utils.logger.DEFAULT_LOG_DIR`.
    log_level : int, default logging.INFO
        Level of the console/file logger.
    """
    output_format: str = "numpy"
    device: str = "cpu"
    verbose: bool = False

    # ====[ Execution ]====
    backend: str = "sequential"
    n_jobs: int = -1
    number_of_pieces: int = 1

    # ====[ Logging ]====
    log_dir: Optional[Union[str, Path]] = None
    log_level: int = logging.INFO

    def __post_init__(self) -> None:
        self.output_format = str(self.output_format).lower()
        self.backend = str(self.backend).lower()
        if self.output_format not in FRAMEWORKS:
            raise InvalidArgumentError(f"Unsupported output_format '{self.output_format}'. Use one of: {FRAMEWORKS}", "GlobalConfig")
        if self.backend not in BACKENDS:
            raise InvalidArgumentError(f"Unsupported backend '{self.backend}'. Use one of: {BACKENDS}", "GlobalConfig")
        if int(self.number_of_pieces) < 1:
            raise InvalidArgumentError("number_of_pieces must be >= 1.", "GlobalConfig")


# ==================================================
# ==============  CLASS: IteratorConfig  ===========
# ==================================================
@dataclass
class IteratorConfig(_UpdatableConfig):
    """
    Checks performed by region and neighborhood iterators.

    Attributes
    ----------
    validate_regions : bool, default True
        Verify at construction that the iteration region matches the image
        dimension and lies inside the buffered region.
    check_generation : bool, default True
        Refuse to walk a buffer that was reallocated after the iterator was bound.
    """
    validate_regions: bool = True
    check_generation: bool = True


# ==================================================
# ============  CLASS: NeighborhoodConfig  =========
# ==================================================
@dataclass
class NeighborhoodConfig(_UpdatableConfig):
    """
    Neighborhood radius and boundary policy.

    Attributes
    ----------
    radius : int or list of int, default 1
        Half-width of the neighborhood per axis (scalar is broadcast).
    boundary_condition : str, default "constant"
        One of "constant", "zero_flux", "periodic", "mirror".
    constant_value : float, default 0.0
        Value synthesized by the constant boundary condition.
    """
    radius: Union[int, List[int]] = 1
    boundary_condition: str = "constant"
    constant_value: float = 0.0

    def __post_init__(self) -> None:
        self.boundary_condition = str(self.boundary_condition).lower()
        if self.boundary_condition not in BOUNDARY_CONDITIONS:
            raise InvalidArgumentError(
                f"Unsupported boundary condition '{self.boundary_condition}'. Use one of: {BOUNDARY_CONDITIONS}",
                "NeighborhoodConfig",
            )
        radii = [self.radius] if isinstance(self.radius, int) else list(self.radius)
        if any(int(r) < 0 for r in radii):
            raise InvalidArgumentError(f"Radius must be non-negative, got {self.radius}.", "NeighborhoodConfig")


# ==================================================
# =============  CLASS: MorphologyConfig  ==========
# ==================================================
@dataclass
class MorphologyConfig(_UpdatableConfig):
    """
    Object morphology parameters.

    Attributes
    ----------
    object_value : float, default 1
        Pixel value identifying object pixels.
    background_value : float, default 0
        Value written by erosion.
    use_boundary_condition : bool, default False
        If True, synthesized out-of-buffer neighbors count when deciding
        whether an object pixel lies on the object boundary. If False they
        are skipped.
    kernel_shape : str, default "ball"
        Structuring element shape ("ball", "box", "cross").
    kernel_radius : int or list of int, default 1
        Structuring element radius.
    """
    object_value: float = 1
    background_value: float = 0
    use_boundary_condition: bool = False
    kernel_shape: str = "ball"
    kernel_radius: Union[int, List[int]] = 1

    def __post_init__(self) -> None:
        self.kernel_shape = str(self.kernel_shape).lower()
        if self.kernel_shape not in KERNEL_SHAPES:
            raise InvalidArgumentError(f"Unsupported kernel shape '{self.kernel_shape}'. Use one of: {KERNEL_SHAPES}", "MorphologyConfig")


# ==================================================
# ==============  CLASS: ProgressConfig  ===========
# ==================================================
@dataclass
class ProgressConfig(_UpdatableConfig):
    """
    Progress reporting granularity.

    Attributes
    ----------
    enabled : bool, default True
        Track progress at all.
    use_tqdm : bool, default False
        Display a tqdm bar on the console.
    update_every : int, default 1024
        Pixels accumulated locally before flushing to the shared counter.
    desc : str, optional
        Label of the progress bar (defaults to the filter class name).
    """
    enabled: bool = True
    use_tqdm: bool = False
    update_every: int = 1024
    desc: Optional[str] = None

    def __post_init__(self) -> None:
        if int(self.update_every) < 1:
            raise InvalidArgumentError("update_every must be >= 1.", "ProgressConfig")


# ====[ YAML persistence ]====
CONFIG_SECTIONS: Dict[str, type] = {
    "global": GlobalConfig,
    "iterator": IteratorConfig,
    "neighborhood": NeighborhoodConfig,
    "morphology": MorphologyConfig,
    "progress": ProgressConfig,
}


def load_config(path: Union[str, Path], sections: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """
    Load configuration dataclasses from a YAML file.

    The file holds one mapping per section (`global`, `iterator`,
    `neighborhood`, `morphology`, `progress`). Missing sections get default
    instances; unknown sections or keys raise.

    Parameters
    ----------
    path : str or Path
        YAML file to read.
    sections : Sequence[str], optional
        Restrict the returned mapping to these section names.

    Returns
    -------
    dict
        Section name -> config instance.
    """
    with Path(path).open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise InvalidArgumentError(f"Config file {path} must contain a mapping at top level.", "load_config")

    unknown = set(raw) - set(CONFIG_SECTIONS)
    if unknown:
        raise InvalidArgumentError(f"Unknown config sections: {sorted(unknown)}", "load_config")

    wanted = list(sections) if sections is not None else list(CONFIG_SECTIONS)
    out: Dict[str, Any] = {}
    for name in wanted:
        cls = CONFIG_SECTIONS[name]
        values = raw.get(name) or {}
        allowed = {f.name for f in fields(cls)}
        bad = set(values) - allowed
        if bad:
            raise AttributeError(f"[{cls.__name__}] Unknown config key(s): {sorted(bad)}")
        out[name] = cls(**values)
    return out


def save_config(configs: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write config instances (section name -> dataclass) to a YAML file."""
    payload = {}
    for name, cfg in configs.items():
        if name not in CONFIG_SECTIONS:
            raise InvalidArgumentError(f"Unknown config section '{name}'.", "save_config")
        data = asdict(cfg)
        if data.get("log_dir") is not None:
            data["log_dir"] = str(data["log_dir"])
        payload[name] = data

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False)
    return out
