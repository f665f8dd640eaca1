"""
Canopy Cover Analysis.

Estimates canopy cover and light transmission from an upward photograph,
optionally limited to a circular field of view set by a zenith angle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
import time
from typing import Any

import numpy as np
from loguru import logger

from ecomeasure.core.errors import InvalidOptions
from ecomeasure.core.models import DEFAULT_METHOD, ProgressCallback, RasterImage
from ecomeasure.utils.ground_cover.classifier import PixelClassifier
from ecomeasure.utils.ground_cover.color import rgb_to_hsv_array
from ecomeasure.utils.ground_cover.progress import (
    STAGE_CLASSIFY,
    STAGE_COVERAGE,
    STAGE_PREPARE,
    CancellationToken,
    PixelWindow,
    ProgressReporter,
    chunk_pixels_for,
    iter_checkpointed_chunks,
)
from ecomeasure.utils.ground_cover.thresholds import get_threshold_table


CANOPY_METHODS = ("glama", "canopeo", "threshold")
GLAMA_DARK_BRIGHTNESS = 80.0
GLAMA_GREENNESS = 0.4


@dataclass(frozen=True)
class CanopyOptions:
    """Configuration of one canopy analysis.

    Parameters
    ----------
    method : str
        ``"glama"``, ``"canopeo"`` or ``"threshold"``.
    zenith_angle : float
        Half-angle of the analyzed field of view in degrees, ``(0, 90]``.
    brightness_threshold : float
        Mean channel brightness below which a pixel is canopy for the
        ``"threshold"`` method.
    table_method : str
        Threshold table whose vegetation rule the ``"canopeo"`` method uses.
    """

    method: str = "canopeo"
    zenith_angle: float = 90.0
    brightness_threshold: float = 128.0
    table_method: str = DEFAULT_METHOD
    on_progress: ProgressCallback | None = None
    progress_interval: float = 0.05
    chunk_pixels: int = 262_144
    cancel_token: CancellationToken | None = field(default=None, repr=False)

    def validate(self) -> None:
        if self.method not in CANOPY_METHODS:
            raise InvalidOptions(
                f"Unknown canopy method {self.method!r}; known: {', '.join(CANOPY_METHODS)}"
            )
        if not 0.0 < self.zenith_angle <= 90.0:
            raise InvalidOptions(f"zenith_angle must be in (0, 90], got {self.zenith_angle}")
        if not 0.0 < self.brightness_threshold <= 255.0:
            raise InvalidOptions(
                f"brightness_threshold must be in (0, 255], got {self.brightness_threshold}"
            )
        if not 0.0 < self.progress_interval <= 1.0:
            raise InvalidOptions("progress_interval must be in (0, 1]")
        if self.chunk_pixels <= 0:
            raise InvalidOptions("chunk_pixels must be positive")


@dataclass(frozen=True)
class CanopyResult:
    """Canopy cover statistics of one upward photograph."""

    canopy_cover: float
    light_transmission: float
    leaf_area_index: float | None
    pixels_analyzed: int
    method: str
    zenith_angle: float
    processing_time_s: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "canopy_cover": self.canopy_cover,
            "light_transmission": self.light_transmission,
            "leaf_area_index": self.leaf_area_index,
            "pixels_analyzed": self.pixels_analyzed,
            "method": self.method,
            "zenith_angle": self.zenith_angle,
            "processing_time_s": self.processing_time_s,
        }


def leaf_area_index(light_transmission: float) -> float | None:
    """Beer's-law approximation ``-ln(T)`` from transmission in percent.

    Returns ``0`` for full transmission and ``None`` when no light is
    transmitted, where the approximation is undefined.
    """
    fraction = light_transmission / 100.0
    if fraction <= 0.0:
        return None
    return max(0.0, -math.log(fraction))


def zenith_radius(width: int, height: int, zenith_angle: float) -> float:
    """Radius in pixels of the circular field of view."""
    return min(width, height) / 2.0 * math.sin(math.radians(zenith_angle))


def _zenith_mask(strip: PixelWindow, width: int, height: int, radius: float) -> np.ndarray:
    """Pixels of ``strip`` whose centers lie inside the view circle."""
    xs = np.arange(strip.x0, strip.x1, dtype=np.float64) + 0.5 - width / 2.0
    ys = np.arange(strip.y0, strip.y1, dtype=np.float64) + 0.5 - height / 2.0
    return (ys[:, None] ** 2 + xs[None, :] ** 2) <= radius * radius


def canopy_mask(
    rgb: np.ndarray,
    method: str,
    classifier: PixelClassifier | None = None,
    brightness_threshold: float = 128.0,
) -> np.ndarray:
    """Boolean canopy membership of each pixel.

    Parameters
    ----------
    rgb : numpy.ndarray
        ``(..., 3)`` byte channels.
    method : str
        ``"glama"``: dark (mean < 80) or green-dominant (g share > 0.4).
        ``"canopeo"``: vegetation rule of ``classifier``'s table.
        ``"threshold"``: mean brightness below ``brightness_threshold``.
    """
    channels = np.asarray(rgb, dtype=np.float64)[..., :3]
    total = channels.sum(axis=-1)
    brightness = total / 3.0
    if method == "glama":
        greenness = channels[..., 1] / np.maximum(total, 1.0)
        return (brightness < GLAMA_DARK_BRIGHTNESS) | (greenness > GLAMA_GREENNESS)
    if method == "threshold":
        return brightness < brightness_threshold
    if method == "canopeo":
        if classifier is None:
            raise ValueError("canopeo method needs a classifier")
        hue, saturation, value = rgb_to_hsv_array(rgb[..., :3])
        return classifier.vegetation_mask(rgb[..., :3], hue, saturation, value)
    raise ValueError(f"Unknown canopy method: {method}")


def analyze_canopy(image: RasterImage, options: CanopyOptions | None = None) -> CanopyResult:
    """Measure canopy cover of an upward photograph.

    Parameters
    ----------
    image : RasterImage
        Decoded photograph taken towards the zenith.
    options : CanopyOptions, optional
        Method, field of view and progress configuration.

    Returns
    -------
    CanopyResult
        Cover and transmission in percent of analyzed pixels.
    """
    options = options or CanopyOptions()
    options.validate()
    radius = zenith_radius(image.width, image.height, options.zenith_angle)
    if radius < 1.0:
        raise InvalidOptions(
            f"zenith_angle {options.zenith_angle} leaves no pixels in view"
        )
    classifier = None
    if options.method == "canopeo":
        classifier = PixelClassifier(get_threshold_table(options.table_method))

    start_time = time.perf_counter()
    reporter = ProgressReporter(
        options.on_progress,
        interval=options.progress_interval,
        cancel_token=options.cancel_token,
    )
    reporter.report(0.0, STAGE_PREPARE)
    frame = PixelWindow(0, 0, image.width, image.height)
    use_zenith = options.zenith_angle < 90.0
    reporter.begin_pixels(image.pixel_count, 10.0, 90.0, STAGE_CLASSIFY)
    strip_pixels = chunk_pixels_for(
        options.chunk_pixels, image.pixel_count, options.progress_interval
    )
    canopy_pixels = 0
    analyzed_pixels = 0
    for strip, chunk in iter_checkpointed_chunks(
        image.rgb, frame, strip_pixels, reporter
    ):
        mask = canopy_mask(
            chunk, options.method, classifier, options.brightness_threshold
        )
        if use_zenith:
            in_view = _zenith_mask(strip, image.width, image.height, radius)
            canopy_pixels += int(np.count_nonzero(mask & in_view))
            analyzed_pixels += int(np.count_nonzero(in_view))
        else:
            canopy_pixels += int(np.count_nonzero(mask))
            analyzed_pixels += strip.pixel_count
    reporter.report(90.0, STAGE_COVERAGE)

    cover = canopy_pixels / analyzed_pixels * 100.0
    transmission = 100.0 - cover
    result = CanopyResult(
        canopy_cover=cover,
        light_transmission=transmission,
        leaf_area_index=0.0 if canopy_pixels == 0 else leaf_area_index(transmission),
        pixels_analyzed=analyzed_pixels,
        method=options.method,
        zenith_angle=float(options.zenith_angle),
        processing_time_s=time.perf_counter() - start_time,
    )
    reporter.complete()
    logger.info(
        f"Canopy analysis ({options.method}) finished: cover={cover:.1f}% "
        f"over {analyzed_pixels} pixels"
    )
    return result
