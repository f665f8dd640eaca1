"""Classification preview figures for field QA."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch

from ecomeasure.core.models import COVER_CLASSES, DEFAULT_METHOD, RasterImage
from ecomeasure.utils.ground_cover.classifier import PixelClassifier
from ecomeasure.utils.ground_cover.thresholds import ThresholdTable, get_threshold_table


CLASS_COLORS: tuple[tuple[float, float, float], ...] = (
    (0.13, 0.62, 0.20),  # vegetation
    (0.72, 0.53, 0.30),  # bare ground
    (0.85, 0.75, 0.25),  # litter
    (0.60, 0.60, 0.65),  # rock
    (0.10, 0.10, 0.20),  # shadow
    (1.00, 0.00, 1.00),  # unclassified
)


def class_map(
    image: RasterImage,
    method: str = DEFAULT_METHOD,
    table: ThresholdTable | None = None,
) -> np.ndarray:
    """Label codes of every pixel, shaped ``(H, W)``."""
    classifier = PixelClassifier(table if table is not None else get_threshold_table(method))
    return classifier.classify_array(image.rgb)


def _draw_preview_page(image: RasterImage, labels: np.ndarray, title: str) -> plt.Figure:
    """Draw the photograph beside its class map."""
    fig, (ax_img, ax_map) = plt.subplots(1, 2, figsize=(11.7, 5.8), dpi=100)
    ax_img.imshow(image.rgb)
    ax_img.set_title(title)
    ax_img.axis("off")

    cmap = ListedColormap(CLASS_COLORS)
    ax_map.imshow(labels, cmap=cmap, vmin=0, vmax=len(COVER_CLASSES) - 1,
                  interpolation="nearest")
    ax_map.set_title("Classification")
    ax_map.axis("off")
    handles = [
        Patch(facecolor=color, edgecolor="black", label=cover.display_name)
        for cover, color in zip(COVER_CLASSES, CLASS_COLORS)
    ]
    ax_map.legend(handles=handles, loc="upper left", bbox_to_anchor=(1.01, 1.0),
                  fontsize=8, frameon=False)
    fig.tight_layout()
    return fig


def export_classification_preview(
    image: RasterImage,
    output_path: str | Path,
    method: str = DEFAULT_METHOD,
    table: ThresholdTable | None = None,
) -> Path:
    """Save a side-by-side photograph / class map figure.

    Parameters
    ----------
    image : RasterImage
        Analyzed photograph.
    output_path : str | Path
        Target image or PDF path; the format follows the suffix.
    method : str, optional
        Threshold table identifier used for the class map.
    table : ThresholdTable, optional
        Custom table; takes precedence over ``method``.

    Returns
    -------
    Path
        The written file.
    """
    target_path = Path(output_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    identifier = table.identifier if table is not None else method
    labels = class_map(image, method, table)
    fig = _draw_preview_page(
        image, labels, f"{image.width} x {image.height} ({identifier})"
    )
    try:
        fig.savefig(target_path)
    finally:
        plt.close(fig)
    return target_path
