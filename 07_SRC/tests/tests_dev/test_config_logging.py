# ==================================================
# ======= TESTS: Config / logging / progress =======
# ==================================================
from __future__ import annotations

import logging
import threading

import pytest

from core.config import (
    GlobalConfig,
    MorphologyConfig,
    NeighborhoodConfig,
    ProgressConfig,
    load_config,
    save_config,
)
from core.exceptions import InvalidArgumentError, ProcessAborted
from utils.decorators import TimerManager, log_exceptions, safe_timer
from utils.logger import get_logger
from utils.progress import ProgressAccumulator, ProgressReporter


# ===================
# Configuration
# ===================

def test_yaml_roundtrip(tmp_path):
    configs = {
        "global": GlobalConfig(backend="threading", number_of_pieces=4, log_dir=tmp_path),
        "neighborhood": NeighborhoodConfig(radius=[2, 1], boundary_condition="mirror"),
        "morphology": MorphologyConfig(kernel_shape="box", object_value=255),
    }
    path = save_config(configs, tmp_path / "cfg" / "run.yaml")
    loaded = load_config(path)
    assert loaded["global"].backend == "threading"
    assert loaded["global"].number_of_pieces == 4
    assert loaded["global"].log_dir == str(tmp_path)
    assert loaded["neighborhood"].radius == [2, 1]
    assert loaded["morphology"].object_value == 255
    # Sections absent from the file come back with defaults.
    assert loaded["progress"] == ProgressConfig()


def test_load_config_selected_sections(tmp_path):
    path = tmp_path / "partial.yaml"
    path.write_text("neighborhood:\n  boundary_condition: Periodic\n", encoding="utf-8")
    loaded = load_config(path, sections=["neighborhood"])
    assert list(loaded) == ["neighborhood"]
    assert loaded["neighborhood"].boundary_condition == "periodic"


def test_load_config_rejects_unknown_entries(tmp_path):
    bad_section = tmp_path / "a.yaml"
    bad_section.write_text("filters:\n  radius: 1\n", encoding="utf-8")
    with pytest.raises(InvalidArgumentError):
        load_config(bad_section)

    bad_key = tmp_path / "b.yaml"
    bad_key.write_text("global:\n  threads: 3\n", encoding="utf-8")
    with pytest.raises(AttributeError):
        load_config(bad_key)


def test_update_config_validates():
    cfg = NeighborhoodConfig()
    cfg.update_config(radius=3, boundary_condition="ZERO_FLUX")
    assert cfg.radius == 3
    assert cfg.boundary_condition == "zero_flux"
    with pytest.raises(AttributeError):
        cfg.update_config(diameter=2)
    with pytest.raises(InvalidArgumentError):
        cfg.update_config(boundary_condition="nearest")


def test_global_config_has_no_input_framework_key():
    with pytest.raises(AttributeError):
        GlobalConfig().update_config(framework="torch")


@pytest.mark.parametrize(
    "factory",
    [
        lambda: GlobalConfig(backend="loky"),
        lambda: GlobalConfig(output_format="jax"),
        lambda: GlobalConfig(number_of_pieces=0),
        lambda: NeighborhoodConfig(radius=[1, -1]),
        lambda: MorphologyConfig(kernel_shape="disk"),
        lambda: ProgressConfig(update_every=0),
    ],
)
def test_invalid_config_values(factory):
    with pytest.raises(InvalidArgumentError):
        factory()


# ===================
# Logging / timing
# ===================

def test_get_logger_is_idempotent(tmp_path):
    first = get_logger("nditer.tests.idem", log_dir=tmp_path)
    second = get_logger("nditer.tests.idem", log_dir=tmp_path, level=logging.DEBUG)
    assert first is second
    assert len(second.handlers) == 2
    assert all(h.level == logging.DEBUG for h in second.handlers)
    assert not second.propagate


def test_timer_manager_accumulates():
    timers = TimerManager()
    timers.add("interior", 0.5)
    timers.add("interior", 1.5)
    timers.add("boundary", 0.25)
    stats = timers.to_dict()
    assert stats["interior"] == {"total": 2.0, "count": 2, "avg": 1.0}
    assert [row[0] for row in timers.to_list()] == ["interior", "boundary"]

    @timers.decorator("work")
    def work():
        return 42

    assert work() == 42
    assert timers.to_dict()["work"]["count"] == 1
    timers.reset()
    assert timers.to_dict() == {}


def test_log_exceptions_reraises_or_swallows_on_request(tmp_path):
    logger = get_logger("nditer.tests.errors", log_dir=tmp_path)

    @log_exceptions(logger=logger)
    def fails():
        raise InvalidArgumentError("bad", "fails")

    with pytest.raises(InvalidArgumentError):
        fails()

    @log_exceptions(logger=logger, raise_exception=False)
    def quiet():
        raise ValueError("ignored")

    assert quiet() is None


def test_safe_timer_returns_result(tmp_path):
    logger = get_logger("nditer.tests.timer", log_dir=tmp_path)

    @safe_timer(name="double", info_logger=logger, error_logger=logger)
    def double(x):
        return 2 * x

    assert double(4) == 8


# ===================
# Progress
# ===================

def test_reporter_flushes_by_chunk():
    seen = []
    reporter = ProgressReporter(10, ProgressConfig(update_every=4), callback=seen.append)
    chunk = reporter.chunk()
    for _ in range(3):
        chunk.completed_pixel()
    assert reporter.completed == 0
    chunk.completed_pixel()
    assert reporter.completed == 4
    for _ in range(6):
        chunk.completed_pixel()
    chunk.flush()
    assert reporter.completed == 10
    assert seen == [0.4, 0.8, 1.0]
    reporter.close()


def test_reporter_bar_label():
    reporter = ProgressReporter(4, ProgressConfig(use_tqdm=True), desc="DilateObjectMorphologyImageFilter")
    assert reporter._bar.desc == "DilateObjectMorphologyImageFilter"
    reporter.close()

    reporter = ProgressReporter(4, ProgressConfig(use_tqdm=True, desc="closing"), desc="DilateObjectMorphologyImageFilter")
    assert reporter._bar.desc == "closing"
    reporter.close()


def test_reporter_disabled_and_empty():
    reporter = ProgressReporter(0, ProgressConfig(enabled=False))
    reporter.completed_pixels(5)
    assert reporter.completed == 0
    assert reporter.progress == 1.0


def test_reporter_abort():
    event = threading.Event()
    reporter = ProgressReporter(8, ProgressConfig(update_every=1), abort_event=event)
    chunk = reporter.chunk()
    chunk.completed_pixel()
    event.set()
    with pytest.raises(ProcessAborted):
        chunk.completed_pixel()


def test_accumulator_weights_and_restart():
    seen = []
    acc = ProgressAccumulator(callback=seen.append)
    acc.register("dilate", 0.25)
    acc.register("erode", 0.75)
    acc.stage_callback("dilate")(1.0)
    acc.update("erode", 0.5)
    assert acc.progress == pytest.approx(0.625)
    assert seen[-1] == pytest.approx(0.625)

    # Restarting a stage banks what it already contributed.
    acc.start("erode")
    assert acc.progress == pytest.approx(0.625)
    acc.update("erode", 1.0)
    assert acc.progress == pytest.approx(1.375)

    acc.reset()
    assert acc.progress == 0.0
    with pytest.raises(InvalidArgumentError):
        acc.update("open", 0.1)
    with pytest.raises(InvalidArgumentError):
        acc.register("close", -1.0)
