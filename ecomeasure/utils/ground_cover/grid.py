"""Grid partition helpers for cell-based quadrat analysis."""

from __future__ import annotations

from dataclasses import dataclass

from ecomeasure.core.models import (
    GROUND_CLASSES,
    COVER_CLASSES,
    CellResult,
    ClassCounts,
    CoverClass,
    DiversityIndices,
    GridSummary,
)
from ecomeasure.utils.ground_cover.aggregate import coverage_proportions
from ecomeasure.utils.ground_cover.diversity import (
    diversity_indices,
    label_frequency_diversity,
)
from ecomeasure.utils.ground_cover.progress import PixelWindow
from ecomeasure.utils.ground_cover.species import ColorBucketCounter, dominant_species


@dataclass(frozen=True)
class GridWindow(PixelWindow):
    """Single grid cell window in pixel space.

    Parameters
    ----------
    x0, y0, x1, y1 : int
        Pixel bounds, ``[x0, x1) x [y0, y1)``.
    row : int
        Grid row index.
    col : int
        Grid column index.
    """

    row: int = 0
    col: int = 0


def _axis_bounds(full_size: int, grid_size: int) -> list[int]:
    """Integer-truncated boundaries ``floor(i * size / n)``."""
    return [(idx * full_size) // grid_size for idx in range(grid_size + 1)]


def generate_grid_windows(
    image_width: int,
    image_height: int,
    grid_size: int,
) -> list[GridWindow]:
    """Split an image into ``grid_size x grid_size`` cells.

    Cell boundaries are truncated to whole pixels, so neighbouring cells
    may differ in size by one pixel along each axis and every pixel
    belongs to exactly one cell. Nothing is padded.

    Parameters
    ----------
    image_width : int
        Full image width in pixels.
    image_height : int
        Full image height in pixels.
    grid_size : int
        Number of cells per axis; must not exceed either dimension.

    Returns
    -------
    list[GridWindow]
        Windows in row-major order.
    """
    if grid_size < 1:
        raise ValueError("grid_size must be >= 1")
    if grid_size > min(image_width, image_height):
        raise ValueError("grid_size must not exceed the image dimensions")
    x_bounds = _axis_bounds(image_width, grid_size)
    y_bounds = _axis_bounds(image_height, grid_size)
    windows: list[GridWindow] = []
    for row in range(grid_size):
        for col in range(grid_size):
            windows.append(
                GridWindow(
                    x0=x_bounds[col],
                    y0=y_bounds[row],
                    x1=x_bounds[col + 1],
                    y1=y_bounds[row + 1],
                    row=row,
                    col=col,
                )
            )
    return windows


def build_cell_result(
    window: GridWindow,
    counts: ClassCounts,
    buckets: ColorBucketCounter,
    species_library: tuple[str, ...] | None = None,
    min_proportion: float = 0.0,
) -> CellResult:
    """Summarize one classified cell.

    Cells without ground cover get zero percentages and no dominant
    class instead of failing the whole frame.
    """
    if counts.classified_total == 0:
        return CellResult(
            row=window.row,
            col=window.col,
            x0=window.x0,
            y0=window.y0,
            x1=window.x1,
            y1=window.y1,
            counts=counts,
            percentages={cover: 0.0 for cover in GROUND_CLASSES},
            dominant_class=None,
            dominant_species=(),
            diversity=DiversityIndices(0.0, 0.0, 0),
        )
    proportions = coverage_proportions(counts)
    dominant_class = max(GROUND_CLASSES, key=lambda cover: counts[cover])
    return CellResult(
        row=window.row,
        col=window.col,
        x0=window.x0,
        y0=window.y0,
        x1=window.x1,
        y1=window.y1,
        counts=counts,
        percentages={cover: value * 100.0 for cover, value in proportions.items()},
        dominant_class=dominant_class,
        dominant_species=dominant_species(buckets, species_library),
        diversity=diversity_indices(proportions.values(), min_proportion),
    )


def summarize_grid(grid_size: int, cells: list[CellResult]) -> GridSummary:
    """Bundle cell results with their label-frequency diversity."""
    return GridSummary(
        grid_size=grid_size,
        cells=tuple(cells),
        cell_label_diversity=label_frequency_diversity(
            cell.dominant_class for cell in cells
        ),
    )


def dominant_class_map(summary: GridSummary) -> list[list[CoverClass | None]]:
    """Dominant class of each cell as a ``grid_size x grid_size`` table."""
    return [
        [summary.cell(row, col).dominant_class for col in range(summary.grid_size)]
        for row in range(summary.grid_size)
    ]


def cell_class_fractions(summary: GridSummary, cover: CoverClass) -> list[list[float]]:
    """Share of ``cover`` among all pixels of each cell, in percent."""
    if cover not in COVER_CLASSES:
        raise ValueError(f"Unknown cover class: {cover}")
    table: list[list[float]] = []
    for row in range(summary.grid_size):
        row_values: list[float] = []
        for col in range(summary.grid_size):
            cell_counts = summary.cell(row, col).counts
            row_values.append(cell_counts[cover] / max(1, cell_counts.total) * 100.0)
        table.append(row_values)
    return table
