"""Verbosity-gated tracing of per-pixel classification decisions."""

from __future__ import annotations

from typing import Protocol

import numpy as np
from loguru import logger

from ecomeasure.core.models import COVER_CLASSES


class PixelTracer(Protocol):
    """Collaborator receiving classified pixel chunks.

    The classifier only calls :meth:`trace_pixels` when ``enabled`` is
    true, so a disabled tracer costs one attribute lookup per chunk.
    """

    enabled: bool

    def trace_pixels(
        self,
        rgb: np.ndarray,
        labels: np.ndarray,
        hsv: tuple[np.ndarray, np.ndarray, np.ndarray],
    ) -> None: ...


class NullTracer:
    """Tracer that never records anything."""

    enabled = False

    def trace_pixels(self, rgb, labels, hsv) -> None:
        return None


class LoguruPixelTracer:
    """Log every ``sample_every``-th pixel of each chunk through loguru.

    Parameters
    ----------
    sample_every : int, optional
        Sampling stride over the flattened chunk, by default ``10000``.
    level : str, optional
        loguru level name, by default ``"TRACE"``.
    enabled : bool, optional
        Initial state of the gate, by default ``True``.
    """

    def __init__(
        self,
        sample_every: int = 10_000,
        level: str = "TRACE",
        enabled: bool = True,
    ) -> None:
        if sample_every < 1:
            raise ValueError("sample_every must be >= 1")
        self.sample_every = int(sample_every)
        self.level = level
        self.enabled = enabled
        self.sampled = 0

    def trace_pixels(
        self,
        rgb: np.ndarray,
        labels: np.ndarray,
        hsv: tuple[np.ndarray, np.ndarray, np.ndarray],
    ) -> None:
        flat_rgb = np.asarray(rgb).reshape(-1, 3)
        flat_labels = np.asarray(labels).reshape(-1)
        hue, saturation, value = (np.asarray(plane).reshape(-1) for plane in hsv)
        for idx in range(0, flat_labels.size, self.sample_every):
            self.sampled += 1
            logger.opt(lazy=True).log(
                self.level,
                "pixel rgb={} hsv=({:.1f}, {:.3f}, {:.3f}) -> {}",
                lambda i=idx: tuple(int(c) for c in flat_rgb[i]),
                lambda i=idx: float(hue[i]),
                lambda i=idx: float(saturation[i]),
                lambda i=idx: float(value[i]),
                lambda i=idx: COVER_CLASSES[int(flat_labels[i])].value,
            )
