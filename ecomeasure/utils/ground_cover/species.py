"""Heuristic vegetation labels from reduced-precision color buckets.

These labels describe color groups only. They are never a botanical
species identification.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


HUE_STEP = 15.0
SAT_STEP = 0.25
VAL_STEP = 0.25
HUE_BINS = 24
SAT_BINS = 5
VAL_BINS = 5
BUCKET_COUNT = HUE_BINS * SAT_BINS * VAL_BINS
MAX_DOMINANT_LABELS = 3


@dataclass(frozen=True)
class SpeciesBand:
    """Hue-group range mapped to a display label.

    Parameters
    ----------
    name : str
        Label shown to users.
    hue_group_lo, hue_group_hi : int
        Half-open range of 15 degree hue groups.
    min_share : float
        Minimum bucket share (percent of vegetation pixels) required.
    """

    name: str
    hue_group_lo: int
    hue_group_hi: int
    min_share: float = 0.0

    def matches(self, hue_group: int, share: float) -> bool:
        return self.hue_group_lo <= hue_group < self.hue_group_hi and share > self.min_share


# First matching band wins. Hue group 8 (120-135 degrees) is still green.
DEFAULT_SPECIES_BANDS: tuple[SpeciesBand, ...] = (
    SpeciesBand("Grass/Forb", 4, 9, min_share=20.0),
    SpeciesBand("Mixed Vegetation", 4, 9),
    SpeciesBand("Senescent Vegetation", 2, 4),
    SpeciesBand("Moss/Algae", 9, 13),
)

DEFAULT_SPECIES_LIBRARY: tuple[str, ...] = tuple(
    dict.fromkeys(band.name for band in DEFAULT_SPECIES_BANDS)
)


def bucket_indices(
    hue: np.ndarray, saturation: np.ndarray, value: np.ndarray
) -> np.ndarray:
    """Flat bucket index of each pixel."""
    hue_group = np.clip((hue // HUE_STEP).astype(np.int64), 0, HUE_BINS - 1)
    sat_group = np.clip((saturation // SAT_STEP).astype(np.int64), 0, SAT_BINS - 1)
    val_group = np.clip((value // VAL_STEP).astype(np.int64), 0, VAL_BINS - 1)
    return (hue_group * SAT_BINS + sat_group) * VAL_BINS + val_group


class ColorBucketCounter:
    """Fixed-size histogram of vegetation pixel colors."""

    def __init__(self) -> None:
        self.counts = np.zeros(BUCKET_COUNT, dtype=np.int64)

    def add(
        self,
        hue: np.ndarray,
        saturation: np.ndarray,
        value: np.ndarray,
        mask: np.ndarray,
    ) -> None:
        """Count pixels selected by ``mask``."""
        selected = np.asarray(mask, dtype=bool)
        if not np.any(selected):
            return
        indices = bucket_indices(hue[selected], saturation[selected], value[selected])
        self.counts += np.bincount(indices, minlength=BUCKET_COUNT)

    def merge(self, other: ColorBucketCounter) -> None:
        self.counts += other.counts

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    def top_buckets(self, limit: int = MAX_DOMINANT_LABELS) -> list[tuple[int, float]]:
        """Return ``(hue_group, share_percent)`` of the most populated buckets."""
        total = self.total
        if total == 0:
            return []
        # Stable sort keeps the lower bucket index first on ties.
        order = np.argsort(-self.counts, kind="stable")[:limit]
        top: list[tuple[int, float]] = []
        for index in order:
            count = int(self.counts[index])
            if count == 0:
                break
            hue_group = int(index) // (SAT_BINS * VAL_BINS)
            top.append((hue_group, count / total * 100.0))
        return top


def label_for_bucket(
    hue_group: int,
    share: float,
    bands: tuple[SpeciesBand, ...] = DEFAULT_SPECIES_BANDS,
) -> str | None:
    for band in bands:
        if band.matches(hue_group, share):
            return band.name
    return None


def dominant_species(
    counter: ColorBucketCounter,
    species_library: tuple[str, ...] | None = None,
    bands: tuple[SpeciesBand, ...] = DEFAULT_SPECIES_BANDS,
) -> tuple[str, ...]:
    """Map the top color buckets to up to three distinct labels.

    Parameters
    ----------
    counter : ColorBucketCounter
        Vegetation color histogram.
    species_library : tuple[str, ...] | None, optional
        Allowed display names. Labels not in the library (compared
        case-insensitively) are dropped; kept labels use the library
        spelling.
    bands : tuple[SpeciesBand, ...], optional
        Color lookup table.

    Returns
    -------
    tuple[str, ...]
        Labels ordered by bucket population, duplicates removed.
    """
    allowed: dict[str, str] | None = None
    if species_library is not None:
        allowed = {name.strip().casefold(): name.strip() for name in species_library}
    labels: list[str] = []
    for hue_group, share in counter.top_buckets():
        label = label_for_bucket(hue_group, share, bands)
        if label is None:
            continue
        if allowed is not None:
            label = allowed.get(label.casefold())
            if label is None:
                continue
        if label not in labels:
            labels.append(label)
    return tuple(labels)
