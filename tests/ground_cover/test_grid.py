"""Tests for grid partition helpers."""

import pytest

from ecomeasure.core.models import ClassCounts, CoverClass
from ecomeasure.utils.ground_cover.grid import (
    build_cell_result,
    generate_grid_windows,
    summarize_grid,
)
from ecomeasure.utils.ground_cover.species import ColorBucketCounter


def test_generate_grid_windows_truncates_bounds() -> None:
    """Boundaries are floor(i * size / n) along each axis."""
    windows = generate_grid_windows(image_width=10, image_height=7, grid_size=3)

    assert len(windows) == 9
    assert sorted({w.x0 for w in windows}) == [0, 3, 6]
    assert sorted({w.y0 for w in windows}) == [0, 2, 4]
    assert windows[-1].x1 == 10
    assert windows[-1].y1 == 7
    assert (windows[5].row, windows[5].col) == (1, 2)


def test_grid_windows_cover_every_pixel_once() -> None:
    """Cell areas add up to the frame and differ by at most one pixel per axis."""
    windows = generate_grid_windows(image_width=101, image_height=67, grid_size=4)

    assert sum(w.pixel_count for w in windows) == 101 * 67
    widths = {w.width for w in windows}
    heights = {w.height for w in windows}
    assert max(widths) - min(widths) <= 1
    assert max(heights) - min(heights) <= 1


@pytest.mark.parametrize("grid_size", [0, 8])
def test_generate_grid_windows_rejects_bad_sizes(grid_size) -> None:
    """Grids must be non-empty and no finer than the image."""
    with pytest.raises(ValueError):
        generate_grid_windows(image_width=10, image_height=7, grid_size=grid_size)


def test_cell_without_ground_cover_reports_zero() -> None:
    """Empty cells get zero percentages and no dominant class."""
    window = generate_grid_windows(4, 4, 2)[3]
    counts = ClassCounts(shadow=4)

    cell = build_cell_result(window, counts, ColorBucketCounter())

    assert not cell.has_ground_cover
    assert cell.dominant_class is None
    assert set(cell.percentages.values()) == {0.0}
    assert cell.to_dict()["bounds"] == [2, 2, 4, 4]


def test_cell_result_and_label_diversity() -> None:
    """Cells summarize their own tally; the grid tallies dominant labels."""
    windows = generate_grid_windows(4, 4, 2)
    tallies = [
        ClassCounts(vegetation=3, rock=1),
        ClassCounts(vegetation=4),
        ClassCounts(litter=2, shadow=2),
        ClassCounts(unclassified=4),
    ]
    cells = [
        build_cell_result(window, counts, ColorBucketCounter())
        for window, counts in zip(windows, tallies)
    ]

    summary = summarize_grid(2, cells)

    assert summary.cell(0, 0).percentages[CoverClass.VEGETATION] == pytest.approx(75.0)
    assert summary.cell(1, 0).dominant_class == CoverClass.LITTER
    assert summary.cell(1, 1).dominant_class is None
    assert summary.cell_label_diversity.richness == 2
    assert summary.cell_label_diversity.basis == "cell_label_frequency"
