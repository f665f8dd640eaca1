"""
Horizontal Vegetation Obstruction Analysis.

Measures how much of a horizontal photograph is obstructed by vegetation
at several heights above ground and summarizes the vertical profile.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Any, Sequence

import numpy as np
from loguru import logger

from ecomeasure.core.errors import InvalidOptions
from ecomeasure.core.models import (
    DEFAULT_METHOD,
    DiversityIndices,
    ProgressCallback,
    RasterImage,
)
from ecomeasure.utils.ground_cover.classifier import VEGETATION_CODE, PixelClassifier
from ecomeasure.utils.ground_cover.diversity import diversity_indices
from ecomeasure.utils.ground_cover.progress import (
    STAGE_COVERAGE,
    STAGE_PREPARE,
    CancellationToken,
    PixelWindow,
    ProgressReporter,
    chunk_pixels_for,
    iter_checkpointed_chunks,
)
from ecomeasure.utils.ground_cover.thresholds import get_threshold_table


OBSTRUCTION_METHODS = ("classifier", "color_threshold")
REFERENCE_HEIGHT_CM = 250.0
SPARSE_COVER = 30.0
DENSE_COVER = 70.0


@dataclass(frozen=True)
class ObstructionOptions:
    """Configuration of a horizontal obstruction analysis.

    Parameters
    ----------
    method : str
        ``"classifier"`` uses the vegetation class of ``table_method``;
        ``"color_threshold"`` uses the green-ratio rule.
    green_ratio_threshold : float
        Minimum ``g / (r + g + b)`` for the ``"color_threshold"`` method.
    table_method : str
        Threshold table used by the ``"classifier"`` method.
    """

    method: str = "classifier"
    green_ratio_threshold: float = 0.3
    table_method: str = DEFAULT_METHOD
    on_progress: ProgressCallback | None = None
    progress_interval: float = 0.05
    chunk_pixels: int = 262_144
    cancel_token: CancellationToken | None = field(default=None, repr=False)

    def validate(self) -> None:
        if self.method not in OBSTRUCTION_METHODS:
            raise InvalidOptions(
                f"Unknown obstruction method {self.method!r}; "
                f"known: {', '.join(OBSTRUCTION_METHODS)}"
            )
        if not 0.0 < self.green_ratio_threshold < 1.0:
            raise InvalidOptions("green_ratio_threshold must be in (0, 1)")
        if not 0.0 < self.progress_interval <= 1.0:
            raise InvalidOptions("progress_interval must be in (0, 1]")
        if self.chunk_pixels <= 0:
            raise InvalidOptions("chunk_pixels must be positive")


@dataclass(frozen=True)
class HeightMeasurement:
    """Obstruction of one photograph taken at ``height_cm``."""

    height_cm: float
    vegetation_cover: float
    pixels_analyzed: int
    green_pixels: int
    density_index: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "height_cm": self.height_cm,
            "vegetation_cover": self.vegetation_cover,
            "pixels_analyzed": self.pixels_analyzed,
            "green_pixels": self.green_pixels,
            "density_index": self.density_index,
        }


@dataclass(frozen=True)
class ObstructionResult:
    """Vertical vegetation profile across all photographed heights."""

    measurements: tuple[HeightMeasurement, ...]
    average_cover: float
    cover_by_height: dict[float, float]
    vegetation_profile: str
    height_diversity: DiversityIndices
    processing_time_s: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "measurements": [item.to_dict() for item in self.measurements],
            "average_cover": self.average_cover,
            "cover_by_height": {str(k): v for k, v in self.cover_by_height.items()},
            "vegetation_profile": self.vegetation_profile,
            "height_diversity": self.height_diversity.to_dict(),
            "processing_time_s": self.processing_time_s,
        }


def green_threshold_mask(rgb: np.ndarray, green_ratio_threshold: float) -> np.ndarray:
    """Green-dominant pixels with clear margins over red and blue."""
    channels = np.asarray(rgb, dtype=np.float64)[..., :3]
    red = channels[..., 0]
    green = channels[..., 1]
    blue = channels[..., 2]
    total = red + green + blue
    green_ratio = green / np.maximum(total, 1.0)
    return (
        (green_ratio > green_ratio_threshold)
        & (green > red)
        & (green > blue)
        & (green - red > 30.0)
        & (green - blue > 20.0)
    )


def density_index(vegetation_cover: float, height_cm: float) -> float:
    """Weight cover by closeness to the ground; lower heights count more."""
    height_factor = max(0.1, REFERENCE_HEIGHT_CM - height_cm) / REFERENCE_HEIGHT_CM
    return vegetation_cover * height_factor


def vegetation_profile(average_cover: float) -> str:
    if average_cover < SPARSE_COVER:
        return "sparse"
    if average_cover < DENSE_COVER:
        return "moderate"
    return "dense"


def analyze_obstruction(
    images: Sequence[RasterImage],
    heights_cm: Sequence[float],
    options: ObstructionOptions | None = None,
) -> ObstructionResult:
    """Analyze one horizontal photograph per sampling height.

    Parameters
    ----------
    images : Sequence[RasterImage]
        Photographs of the cover pole, one per height.
    heights_cm : Sequence[float]
        Camera height of each photograph in centimeters.
    options : ObstructionOptions, optional
        Method and progress configuration.

    Returns
    -------
    ObstructionResult
        Per-height cover, density and the overall profile.
    """
    options = options or ObstructionOptions()
    options.validate()
    if not images:
        raise InvalidOptions("No images provided")
    if len(images) != len(heights_cm):
        raise InvalidOptions(
            f"Number of images ({len(images)}) must match number of heights "
            f"({len(heights_cm)})"
        )
    if any(height < 0 for height in heights_cm):
        raise InvalidOptions("heights_cm must be non-negative")
    classifier = None
    if options.method == "classifier":
        classifier = PixelClassifier(get_threshold_table(options.table_method))

    start_time = time.perf_counter()
    reporter = ProgressReporter(
        options.on_progress,
        interval=options.progress_interval,
        cancel_token=options.cancel_token,
    )
    reporter.report(0.0, STAGE_PREPARE)
    measurements: list[HeightMeasurement] = []
    share = 90.0 / len(images)
    for idx, (image, height) in enumerate(zip(images, heights_cm)):
        reporter.begin_pixels(
            image.pixel_count,
            idx * share,
            (idx + 1) * share,
            f"Analyzing image at {height:g}cm height",
        )
        frame = PixelWindow(0, 0, image.width, image.height)
        strip_pixels = chunk_pixels_for(
            options.chunk_pixels, image.pixel_count, options.progress_interval
        )
        green_pixels = 0
        for _, chunk in iter_checkpointed_chunks(
            image.rgb, frame, strip_pixels, reporter
        ):
            if classifier is not None:
                mask = classifier.classify_array(chunk) == VEGETATION_CODE
            else:
                mask = green_threshold_mask(chunk, options.green_ratio_threshold)
            green_pixels += int(np.count_nonzero(mask))
        cover = green_pixels / image.pixel_count * 100.0
        measurements.append(
            HeightMeasurement(
                height_cm=float(height),
                vegetation_cover=cover,
                pixels_analyzed=image.pixel_count,
                green_pixels=green_pixels,
                density_index=density_index(cover, float(height)),
            )
        )

    reporter.report(90.0, STAGE_COVERAGE)
    average_cover = sum(item.vegetation_cover for item in measurements) / len(measurements)
    total_cover = sum(item.vegetation_cover for item in measurements)
    if total_cover > 0:
        height_diversity = diversity_indices(
            [item.vegetation_cover / total_cover for item in measurements],
            basis="height_cover_proportion",
        )
    else:
        height_diversity = DiversityIndices(0.0, 0.0, 0, basis="height_cover_proportion")
    result = ObstructionResult(
        measurements=tuple(measurements),
        average_cover=average_cover,
        cover_by_height={item.height_cm: item.vegetation_cover for item in measurements},
        vegetation_profile=vegetation_profile(average_cover),
        height_diversity=height_diversity,
        processing_time_s=time.perf_counter() - start_time,
    )
    reporter.complete()
    logger.info(
        f"Obstruction analysis of {len(measurements)} heights finished: "
        f"average cover={average_cover:.1f}% ({result.vegetation_profile})"
    )
    return result
