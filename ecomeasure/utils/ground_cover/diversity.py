"""Shannon diversity and evenness indices."""

from __future__ import annotations

from typing import Iterable

import numpy as np
from loguru import logger

from ecomeasure.core.models import DiversityIndices


PROPORTION_TOLERANCE = 1e-6


def _as_proportions(proportions: Iterable[float]) -> np.ndarray:
    values = np.asarray(list(proportions), dtype=np.float64)
    if values.ndim != 1:
        raise ValueError("proportions must be 1D")
    if np.any(values < 0) or not np.all(np.isfinite(values)):
        raise ValueError("proportions must be finite and non-negative")
    return values


def shannon_index(proportions: Iterable[float], min_proportion: float = 0.0) -> float:
    """Compute ``H = -sum(p ln p)`` over proportions above the cutoff.

    Parameters
    ----------
    proportions : Iterable[float]
        Class proportions, normally summing to 1.
    min_proportion : float, optional
        Proportions strictly below this value are left out. The default
        ``0`` keeps every non-zero proportion. Remaining proportions are
        not renormalized.

    Returns
    -------
    float
        Shannon index in nats; ``0`` when at most one class is present.
    """
    return diversity_indices(proportions, min_proportion).shannon


def evenness_index(proportions: Iterable[float], min_proportion: float = 0.0) -> float:
    """Compute ``H / ln(S)``; defined as ``0`` when ``S <= 1``."""
    return diversity_indices(proportions, min_proportion).evenness


def diversity_indices(
    proportions: Iterable[float],
    min_proportion: float = 0.0,
    basis: str = "pixel_proportion",
) -> DiversityIndices:
    """Compute Shannon index, evenness and richness in one pass.

    Parameters
    ----------
    proportions : Iterable[float]
        Class proportions, normally summing to 1.
    min_proportion : float, optional
        Cutoff below which proportions are excluded, by default ``0``.
    basis : str, optional
        Label describing what the proportions measure.

    Returns
    -------
    DiversityIndices
        Indices of the included proportions.

    Examples
    --------
    >>> round(diversity_indices([0.25, 0.25, 0.25, 0.25]).evenness, 6)
    1.0
    """
    values = _as_proportions(proportions)
    total = float(values.sum())
    if values.size and abs(total - 1.0) > PROPORTION_TOLERANCE:
        logger.warning(f"Proportions sum to {total:.6f}, expected 1")
    included = values[(values > 0) & (values >= min_proportion)]
    richness = int(included.size)
    if richness == 0:
        return DiversityIndices(shannon=0.0, evenness=0.0, richness=0, basis=basis)
    shannon = float(-np.sum(included * np.log(included)))
    # ln(1) == 0, so a single class is defined as perfectly uneven.
    evenness = shannon / float(np.log(richness)) if richness > 1 else 0.0
    return DiversityIndices(
        shannon=max(0.0, shannon),
        evenness=evenness,
        richness=richness,
        basis=basis,
    )


def label_frequency_diversity(labels: Iterable[object]) -> DiversityIndices:
    """Diversity of how often each label occurs in a sequence.

    Used for grid cells, where every cell contributes its dominant class
    once. ``None`` entries (cells without ground cover) are ignored.
    """
    tally: dict[object, int] = {}
    for label in labels:
        if label is None:
            continue
        tally[label] = tally.get(label, 0) + 1
    total = sum(tally.values())
    if total == 0:
        return DiversityIndices(0.0, 0.0, 0, basis="cell_label_frequency")
    return diversity_indices(
        [count / total for count in tally.values()],
        basis="cell_label_frequency",
    )
