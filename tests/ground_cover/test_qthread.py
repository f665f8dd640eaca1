"""Tests for the coverage analysis worker."""

import numpy as np
import pytest

from ecomeasure.core.coverage_engine import analyze_ground_cover
from ecomeasure.core.models import AnalysisOptions, CoverageResult, RasterImage
from ecomeasure.utils.ground_cover.progress import STAGE_CLASSIFY
from ecomeasure.utils.ground_cover.qthread import (
    CoverageAnalysisInput,
    CoverageAnalysisWorker,
    format_worker_exception,
)


def _split_image(size: int = 40) -> RasterImage:
    """Left half vegetation, right half bare ground."""
    pixels = np.zeros((size, size, 3), dtype=np.uint8)
    pixels[:, : size // 2] = (0, 255, 0)
    pixels[:, size // 2 :] = (150, 120, 100)
    return RasterImage.from_array(pixels)


def _connect(worker: CoverageAnalysisWorker) -> dict[str, list]:
    emitted: dict[str, list] = {"progress": [], "finished": [], "failed": [], "cancelled": []}
    worker.sigProgress.connect(lambda percent, stage: emitted["progress"].append((percent, stage)))
    worker.sigFinished.connect(emitted["finished"].append)
    worker.sigFailed.connect(lambda kind, message: emitted["failed"].append((kind, message)))
    worker.sigCancelled.connect(lambda: emitted["cancelled"].append(True))
    return emitted


def test_format_worker_exception_includes_traceback_lines() -> None:
    """Worker exception formatter should include exception type and traceback."""
    try:
        raise RuntimeError("classifier boom")
    except RuntimeError as exc:
        message = format_worker_exception(exc)
    assert "RuntimeError" in message
    assert "classifier boom" in message
    assert "Traceback" in message


def test_worker_emits_progress_and_finished() -> None:
    """Worker output equals the synchronous call and progress ends at 100."""
    image = _split_image()
    worker = CoverageAnalysisWorker(CoverageAnalysisInput(image, AnalysisOptions(grid_size=2)))
    emitted = _connect(worker)

    worker.run()

    assert len(emitted["finished"]) == 1
    result = emitted["finished"][0]
    assert isinstance(result, CoverageResult)
    expected = analyze_ground_cover(image, AnalysisOptions(grid_size=2))
    assert result.percentages == expected.percentages
    assert result.shannon_index == pytest.approx(expected.shannon_index)
    assert result.grid.to_dict() == expected.grid.to_dict()
    percents = [percent for percent, _ in emitted["progress"]]
    assert percents[0] == 0.0
    assert percents[-1] == 100.0
    assert percents == sorted(percents)
    assert not emitted["failed"]


def test_worker_cancelled_before_start() -> None:
    """A cancel request before run() skips the analysis."""
    worker = CoverageAnalysisWorker(CoverageAnalysisInput(_split_image()))
    emitted = _connect(worker)

    worker.request_cancel()
    worker.run()

    assert emitted["cancelled"] == [True]
    assert not emitted["finished"]
    assert not emitted["progress"]


def test_worker_cancelled_during_classification() -> None:
    """Cancelling from a progress slot stops at the next checkpoint."""
    worker = CoverageAnalysisWorker(CoverageAnalysisInput(_split_image(100)))
    emitted = _connect(worker)

    def _cancel_on_classify(percent: float, stage: str) -> None:
        if stage == STAGE_CLASSIFY:
            worker.request_cancel()

    worker.sigProgress.connect(_cancel_on_classify)
    worker.run()

    assert emitted["cancelled"] == [True]
    assert not emitted["finished"]
    assert emitted["progress"][-1][0] < 100.0


def test_worker_reports_analysis_errors_with_kind() -> None:
    """Engine errors are forwarded as (kind, message) pairs."""
    black = RasterImage.from_array(np.zeros((8, 8, 3), dtype=np.uint8))
    worker = CoverageAnalysisWorker(CoverageAnalysisInput(black))
    emitted = _connect(worker)

    worker.run()

    assert emitted["failed"][0][0] == "no_ground_cover"
    assert not emitted["finished"]


def test_worker_reports_unexpected_errors_with_traceback() -> None:
    """Programming errors are formatted with their traceback."""

    class _BrokenEngine:
        def analyze(self, image, options):
            raise RuntimeError("engine exploded")

    worker = CoverageAnalysisWorker(
        CoverageAnalysisInput(_split_image()), engine=_BrokenEngine()
    )
    emitted = _connect(worker)

    worker.run()

    kind, message = emitted["failed"][0]
    assert kind == "internal"
    assert "engine exploded" in message
    assert "Traceback" in message
