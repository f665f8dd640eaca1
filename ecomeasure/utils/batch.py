"""Concurrent analysis of independent photographs."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from loguru import logger

from ecomeasure.core.coverage_engine import CoverageEngine
from ecomeasure.core.errors import EcoMeasureError, InvalidOptions
from ecomeasure.core.models import AnalysisOptions, CoverageResult, RasterImage


DEFAULT_MAX_WORKERS = 3


def analyze_batch(
    images: Sequence[RasterImage],
    options: AnalysisOptions | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[CoverageResult | EcoMeasureError]:
    """Analyze several photographs concurrently.

    Every call runs on its own counters, so results are identical to
    running the calls one after another.

    Parameters
    ----------
    images : Sequence[RasterImage]
        Photographs to analyze.
    options : AnalysisOptions, optional
        Shared configuration. A progress callback receives notifications
        from all calls interleaved.
    max_workers : int, optional
        Number of concurrent analyses, by default ``3``.

    Returns
    -------
    list[CoverageResult | EcoMeasureError]
        One entry per input image, in input order. A failed analysis
        leaves its error in its slot without affecting the others.
    """
    if max_workers < 1:
        raise InvalidOptions(f"max_workers must be >= 1, got {max_workers}")
    engine = CoverageEngine()

    def _run_one(image: RasterImage) -> CoverageResult | EcoMeasureError:
        try:
            return engine.analyze(image, options)
        except EcoMeasureError as exc:
            logger.warning(f"Batch item failed: {exc}")
            return exc

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        results = list(executor.map(_run_one, images))
    failed = sum(isinstance(item, EcoMeasureError) for item in results)
    logger.info(f"Batch analysis finished: {len(results) - failed} ok, {failed} failed")
    return results
