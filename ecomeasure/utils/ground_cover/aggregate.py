"""Per-class pixel tallies and coverage percentages."""

from __future__ import annotations

import numpy as np

from ecomeasure.core.errors import NoGroundCoverDetected
from ecomeasure.core.models import COVER_CLASSES, GROUND_CLASSES, ClassCounts, CoverClass


class FrameAggregator:
    """Accumulate class counts from streamed label chunks.

    Memory use is one counter per class, independent of image size.

    Examples
    --------
    >>> aggregator = FrameAggregator()
    >>> aggregator.add_labels(np.array([0, 0, 1, 4], dtype=np.uint8))
    >>> aggregator.counts().vegetation
    2
    """

    def __init__(self) -> None:
        self._counts = np.zeros(len(COVER_CLASSES), dtype=np.int64)

    def add_labels(self, labels: np.ndarray) -> None:
        """Add a chunk of integer label codes."""
        flat = np.asarray(labels).reshape(-1)
        if flat.size == 0:
            return
        self._counts += np.bincount(flat, minlength=len(COVER_CLASSES))[
            : len(COVER_CLASSES)
        ]

    def add_counts(self, counts: ClassCounts) -> None:
        """Merge an already aggregated tally, e.g. from a grid cell."""
        self._counts += counts.to_array()

    def counts(self) -> ClassCounts:
        return ClassCounts.from_array(self._counts)


def coverage_proportions(counts: ClassCounts) -> dict[CoverClass, float]:
    """Fractions of classified pixels per ground class.

    Parameters
    ----------
    counts : ClassCounts
        Frame or cell tally.

    Returns
    -------
    dict[CoverClass, float]
        Unrounded proportions summing to 1.

    Raises
    ------
    NoGroundCoverDetected
        When no pixel was assigned to a ground class.
    """
    classified_total = counts.classified_total
    if classified_total == 0:
        raise NoGroundCoverDetected(counts)
    return {cover: counts[cover] / classified_total for cover in GROUND_CLASSES}


def coverage_percentages(counts: ClassCounts) -> dict[CoverClass, float]:
    """Percentages of classified pixels per ground class (unrounded)."""
    return {
        cover: proportion * 100.0
        for cover, proportion in coverage_proportions(counts).items()
    }


def rank_classes(percentages: dict[CoverClass, float]) -> tuple[CoverClass, ...]:
    """Non-zero classes ordered by descending share; ties keep class order."""
    present = [cover for cover in GROUND_CLASSES if percentages.get(cover, 0.0) > 0.0]
    return tuple(sorted(present, key=lambda cover: -percentages[cover]))
