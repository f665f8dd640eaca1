"""Progress reporting and cancellation checkpoints for pixel passes."""

from __future__ import annotations

from dataclasses import dataclass
import math
import threading
from typing import Iterator

import numpy as np

from ecomeasure.core.errors import AnalysisCancelled
from ecomeasure.core.models import ProgressCallback


STAGE_PREPARE = "Preparing image data"
STAGE_CLASSIFY = "Classifying pixels"
STAGE_COVERAGE = "Calculating coverage statistics"
STAGE_DIVERSITY = "Calculating diversity indices"
STAGE_COMPLETE = "Complete"

# Absorbs float error when a fraction lands exactly on a mark.
MARK_EPSILON = 1e-9


class CancellationToken:
    """Thread-safe cancel flag shared between a caller and one pass."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class ProgressReporter:
    """Turn pixel counts into bounded ``(percent, stage)`` notifications.

    Percent values never decrease. Inside a pixel stage a notification is
    emitted only when another ``interval`` fraction of the stage's pixels
    has been processed, so the callback fires at most ``1 / interval``
    times per stage regardless of image size.

    Parameters
    ----------
    callback : Callable[[float, str], None] | None
        Receiver of notifications; ``None`` disables reporting.
    interval : float, optional
        Fraction of pixels between notifications, by default ``0.05``.
    cancel_token : CancellationToken | None, optional
        Checked by :meth:`checkpoint`.
    """

    def __init__(
        self,
        callback: ProgressCallback | None = None,
        interval: float = 0.05,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.callback = callback
        self.interval = float(interval)
        self.cancel_token = cancel_token
        self.last_percent = 0.0
        self.emitted = 0
        self._stage = ""
        self._stage_start = 0.0
        self._stage_end = 0.0
        self._stage_total = 0
        self._stage_done = 0
        self._mark = 0

    def report(self, percent: float, stage: str) -> None:
        """Emit one notification, clamped to ``[last, 100]``."""
        percent = min(100.0, max(self.last_percent, float(percent)))
        self.last_percent = percent
        if self.callback is None:
            return
        self.emitted += 1
        self.callback(percent, stage)

    def begin_pixels(self, total: int, start: float, end: float, stage: str) -> None:
        """Open a pixel stage spanning ``[start, end]`` percent."""
        self._stage = stage
        self._stage_start = float(start)
        self._stage_end = float(end)
        self._stage_total = max(1, int(total))
        self._stage_done = 0
        self._mark = 0
        self.report(start, stage)

    def advance(self, pixel_count: int) -> None:
        """Record processed pixels and notify when a mark is crossed."""
        self._stage_done += int(pixel_count)
        fraction = min(1.0, self._stage_done / self._stage_total)
        if fraction >= 1.0:
            mark = math.floor(1.0 / self.interval + MARK_EPSILON) + 1
        else:
            mark = math.floor(fraction / self.interval + MARK_EPSILON)
        if mark <= self._mark:
            return
        self._mark = mark
        span = self._stage_end - self._stage_start
        self.report(self._stage_start + span * fraction, self._stage)

    def checkpoint(self) -> None:
        """Raise ``AnalysisCancelled`` if cancellation was requested."""
        if self.cancel_token is not None and self.cancel_token.is_cancelled:
            raise AnalysisCancelled(
                f"Analysis cancelled at {self.last_percent:.1f}% ({self._stage})"
            )

    def complete(self) -> None:
        self.report(100.0, STAGE_COMPLETE)


@dataclass(frozen=True)
class PixelWindow:
    """Rectangular pixel region ``[x0, x1) x [y0, y1)``."""

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def chunk_pixels_for(chunk_pixels: int, total_pixels: int, interval: float) -> int:
    """Largest strip, in pixels, that never spans more than one progress mark."""
    per_mark = max(1, int(total_pixels * interval))
    return max(1, min(int(chunk_pixels), per_mark))


def iter_pixel_strips(window: PixelWindow, max_pixels: int) -> Iterator[PixelWindow]:
    """Split ``window`` into strips of at most ``max_pixels`` pixels.

    Strips are full-width row bands when a whole row fits the budget.
    Rows wider than the budget are cut into column segments instead.
    """
    budget = max(1, int(max_pixels))
    width = window.width
    if width == 0:
        return
    if width <= budget:
        step = budget // width
        for y0 in range(window.y0, window.y1, step):
            yield PixelWindow(window.x0, y0, window.x1, min(window.y1, y0 + step))
        return
    for y0 in range(window.y0, window.y1):
        for x0 in range(window.x0, window.x1, budget):
            yield PixelWindow(x0, y0, min(window.x1, x0 + budget), y0 + 1)


def iter_checkpointed_chunks(
    rgb: np.ndarray,
    window: PixelWindow,
    max_pixels: int,
    reporter: ProgressReporter,
) -> Iterator[tuple[PixelWindow, np.ndarray]]:
    """Yield ``(strip, pixels)`` with a checkpoint before each strip.

    Progress is advanced once the consumer has finished a strip, so a
    cancel request never interrupts a strip halfway.
    """
    for strip in iter_pixel_strips(window, max_pixels):
        reporter.checkpoint()
        yield strip, rgb[strip.y0 : strip.y1, strip.x0 : strip.x1]
        reporter.advance(strip.pixel_count)
