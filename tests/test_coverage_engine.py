"""Tests for the ground cover coverage engine."""

from dataclasses import replace
import math

import numpy as np
import pytest

from ecomeasure.core.coverage_engine import CoverageEngine, analyze_ground_cover
from ecomeasure.core.errors import (
    AnalysisCancelled,
    InvalidOptions,
    NoGroundCoverDetected,
)
from ecomeasure.core.models import AnalysisOptions, CoverClass, RasterImage
from ecomeasure.utils.ground_cover.progress import (
    STAGE_CLASSIFY,
    STAGE_COMPLETE,
    CancellationToken,
)

GREEN = (0, 255, 0)
BROWN = (150, 120, 100)
STRAW = (140, 120, 40)
YELLOW_GREEN = (110, 100, 0)
STONE = (220, 220, 220)
BLACK = (0, 0, 0)
BLUE = (0, 0, 255)


def _solid(color: tuple[int, int, int], width: int = 10, height: int = 10) -> RasterImage:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :] = color
    return RasterImage.from_array(pixels)


def _quadrants(*colors: tuple[int, int, int], size: int = 20) -> RasterImage:
    """Top-left, top-right, bottom-left, bottom-right blocks."""
    half = size // 2
    pixels = np.zeros((size, size, 3), dtype=np.uint8)
    pixels[:half, :half] = colors[0]
    pixels[:half, half:] = colors[1]
    pixels[half:, :half] = colors[2]
    pixels[half:, half:] = colors[3]
    return RasterImage.from_array(pixels)


def test_all_vegetation_frame() -> None:
    """A uniformly green frame is pure vegetation with zero diversity."""
    result = analyze_ground_cover(_solid(GREEN))

    assert result.percentage(CoverClass.VEGETATION) == pytest.approx(100.0)
    assert result.percentage(CoverClass.ROCK) == 0.0
    assert result.shannon_index == 0.0
    assert result.evenness_index == 0.0
    assert result.dominant_classes == (CoverClass.VEGETATION,)
    assert result.method == "groundcover-v1"


def test_four_equal_blocks_maximize_diversity() -> None:
    """Equal blocks of the four ground classes give H = ln 4 and E = 1."""
    result = analyze_ground_cover(_quadrants(GREEN, BROWN, STRAW, STONE))

    for cover in (
        CoverClass.VEGETATION,
        CoverClass.BARE_GROUND,
        CoverClass.LITTER,
        CoverClass.ROCK,
    ):
        assert result.percentage(cover) == pytest.approx(25.0)
    assert result.shannon_index == pytest.approx(math.log(4))
    assert result.evenness_index == pytest.approx(1.0)
    assert result.total_coverage == pytest.approx(100.0)


def test_counts_account_for_every_pixel() -> None:
    """The six class counts add up to width * height."""
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, size=(37, 53, 3), dtype=np.uint8)
    pixels[0, 0] = GREEN

    result = analyze_ground_cover(
        RasterImage.from_array(pixels), AnalysisOptions(chunk_pixels=97)
    )

    assert result.counts.total == 37 * 53
    assert (
        result.classified_total + result.counts.shadow + result.counts.unclassified
        == 37 * 53
    )
    assert sum(result.percentages.values()) == pytest.approx(100.0)


def test_shadow_and_unclassified_do_not_dilute_coverage() -> None:
    """Excluded pixels change counts but not ground class percentages."""
    result = analyze_ground_cover(_quadrants(GREEN, BLACK, BLUE, BROWN))

    assert result.percentage(CoverClass.VEGETATION) == pytest.approx(50.0)
    assert result.percentage(CoverClass.BARE_GROUND) == pytest.approx(50.0)
    assert result.counts.shadow == 100
    assert result.counts.unclassified == 100


def test_black_frame_raises_no_ground_cover() -> None:
    """A frame of shadow only has no defined coverage."""
    with pytest.raises(NoGroundCoverDetected) as exc_info:
        analyze_ground_cover(_solid(BLACK))

    assert exc_info.value.counts.shadow == 100


def test_unclassified_frame_raises_no_ground_cover() -> None:
    """Bright colors outside every class rule are unclassified, not cover."""
    with pytest.raises(NoGroundCoverDetected) as exc_info:
        analyze_ground_cover(_solid(BLUE))

    assert exc_info.value.counts.unclassified == 100


def test_grid_of_one_matches_whole_frame() -> None:
    """A 1 x 1 grid reproduces the non-gridded statistics."""
    image = _quadrants(GREEN, BROWN, STRAW, BLACK, size=30)

    plain = analyze_ground_cover(image)
    gridded = analyze_ground_cover(image, AnalysisOptions(grid_size=1))

    assert gridded.percentages == pytest.approx(plain.percentages)
    assert gridded.shannon_index == pytest.approx(plain.shannon_index)
    assert gridded.evenness_index == pytest.approx(plain.evenness_index)
    assert gridded.counts == plain.counts
    assert len(gridded.grid.cells) == 1
    assert plain.grid is None


def test_grid_cells_report_their_own_statistics() -> None:
    """Each quadrant cell gets its own dominant class."""
    image = _quadrants(GREEN, BROWN, STRAW, STONE)

    result = analyze_ground_cover(image, AnalysisOptions(grid_size=2))

    assert result.grid.cell(0, 0).dominant_class == CoverClass.VEGETATION
    assert result.grid.cell(0, 1).dominant_class == CoverClass.BARE_GROUND
    assert result.grid.cell(1, 0).dominant_class == CoverClass.LITTER
    assert result.grid.cell(1, 1).dominant_class == CoverClass.ROCK
    assert result.grid.cell_label_diversity.shannon == pytest.approx(math.log(4))
    assert result.grid.cell_label_diversity.basis == "cell_label_frequency"
    assert result.diversity_basis == "pixel_proportion"
    assert result.shannon_index == pytest.approx(math.log(4))


def test_empty_grid_cell_does_not_fail_frame() -> None:
    """A shadow-only cell is reported without raising."""
    result = analyze_ground_cover(
        _quadrants(GREEN, GREEN, GREEN, BLACK), AnalysisOptions(grid_size=2)
    )

    empty = result.grid.cell(1, 1)
    assert empty.dominant_class is None
    assert not empty.has_ground_cover
    assert result.percentage(CoverClass.VEGETATION) == pytest.approx(100.0)


def test_grid_cells_partition_odd_sized_frames() -> None:
    """Truncated cell bounds still assign every pixel to one cell."""
    image = _solid(GREEN, width=23, height=17)

    result = analyze_ground_cover(image, AnalysisOptions(grid_size=4))

    assert sum(cell.counts.total for cell in result.grid.cells) == 23 * 17
    assert result.counts.total == 23 * 17


def test_progress_is_monotonic_and_finishes_at_100() -> None:
    """Notifications start at 0, never decrease and end at 100."""
    received: list[tuple[float, str]] = []
    options = AnalysisOptions(
        on_progress=lambda percent, stage: received.append((percent, stage)),
        progress_interval=0.1,
    )

    analyze_ground_cover(_solid(GREEN, width=64, height=64), options)

    percents = [percent for percent, _ in received]
    assert percents[0] == 0.0
    assert percents == sorted(percents)
    assert received[-1] == (100.0, STAGE_COMPLETE)
    assert len(received) <= 1 + 1 + 11 + 3


def test_wide_frame_reports_every_classification_mark() -> None:
    """Rows wider than one interval are split so no mark is skipped."""
    received: list[tuple[float, str]] = []
    options = AnalysisOptions(
        on_progress=lambda percent, stage: received.append((percent, stage)),
        progress_interval=0.05,
    )

    analyze_ground_cover(_solid(GREEN, width=100, height=10), options)

    classify = [percent for percent, stage in received if stage == STAGE_CLASSIFY]
    assert classify == pytest.approx([5.0 + 4.0 * step for step in range(21)])


def test_progress_is_reported_before_failure() -> None:
    """A failing frame still reports classification progress."""
    received: list[float] = []
    options = AnalysisOptions(on_progress=lambda percent, _: received.append(percent))

    with pytest.raises(NoGroundCoverDetected):
        analyze_ground_cover(_solid(BLACK), options)

    assert received
    assert received[-1] < 100.0


def test_cancellation_stops_analysis() -> None:
    """A pre-set cancel token stops the pass at the first checkpoint."""
    token = CancellationToken()
    token.cancel()

    with pytest.raises(AnalysisCancelled):
        analyze_ground_cover(_solid(GREEN), AnalysisOptions(cancel_token=token))


@pytest.mark.parametrize(
    "options",
    [
        AnalysisOptions(grid_size=0),
        AnalysisOptions(grid_size=11),
        AnalysisOptions(grid_size=2.5),
        AnalysisOptions(method="groundcover-v7"),
        AnalysisOptions(method=""),
        AnalysisOptions(min_proportion=1.5),
        AnalysisOptions(progress_interval=0.0),
        AnalysisOptions(chunk_pixels=0),
        AnalysisOptions(sampling_area_m2=0.0),
        AnalysisOptions(species_library=("Grass/Forb", " ")),
        AnalysisOptions(on_progress="not callable"),
    ],
)
def test_invalid_options_fail_before_any_progress(options) -> None:
    """Configuration errors are raised before the pixel loop starts."""
    received: list[float] = []
    if options.on_progress is None:
        options = replace(options, on_progress=lambda percent, _: received.append(percent))

    with pytest.raises(InvalidOptions):
        analyze_ground_cover(_solid(GREEN), options)

    assert received == []


def test_species_labels_are_heuristic_and_filtered() -> None:
    """Vegetation color groups become labels; the library filters them."""
    image = _solid(GREEN)

    default = analyze_ground_cover(image)
    filtered = analyze_ground_cover(
        image, AnalysisOptions(species_library=["grass/forb"])
    )
    excluded = analyze_ground_cover(
        image, AnalysisOptions(species_library=["Moss/Algae"])
    )

    assert default.dominant_species == ("Grass/Forb",)
    assert filtered.dominant_species == ("grass/forb",)
    assert excluded.dominant_species == ()
    assert default.species_diversity == 1


def test_yellow_green_litter_reports_senescent_color_group() -> None:
    """Yellow-green litter feeds the senescent label but stays litter."""
    pixels = np.zeros((8, 8, 3), dtype=np.uint8)
    pixels[:, :] = GREEN
    pixels[7:, :] = YELLOW_GREEN

    result = analyze_ground_cover(RasterImage.from_array(pixels))
    gridded = analyze_ground_cover(
        RasterImage.from_array(pixels), AnalysisOptions(grid_size=2)
    )

    assert result.percentages[CoverClass.VEGETATION] == pytest.approx(87.5)
    assert result.percentages[CoverClass.LITTER] == pytest.approx(12.5)
    assert result.dominant_species == ("Grass/Forb", "Senescent Vegetation")
    assert gridded.grid.cell(1, 0).dominant_species == (
        "Grass/Forb",
        "Senescent Vegetation",
    )
    assert gridded.grid.cell(0, 0).dominant_species == ("Grass/Forb",)


def test_plain_straw_litter_has_no_color_group() -> None:
    """Litter without a green-excess signal is not labelled."""
    result = analyze_ground_cover(_solid(STRAW))

    assert result.percentages[CoverClass.LITTER] == pytest.approx(100.0)
    assert result.dominant_species == ()


def test_min_proportion_drops_rare_classes_from_diversity() -> None:
    """Rare classes can be left out of H without changing percentages."""
    pixels = np.zeros((10, 10, 3), dtype=np.uint8)
    pixels[:, :] = GREEN
    pixels[0, :2] = STONE

    result = analyze_ground_cover(
        RasterImage.from_array(pixels), AnalysisOptions(min_proportion=0.05)
    )

    assert result.percentage(CoverClass.ROCK) == pytest.approx(2.0)
    assert result.shannon_index == pytest.approx(-0.98 * math.log(0.98))
    assert result.evenness_index == 0.0


def test_engine_is_reentrant() -> None:
    """Repeated calls on one engine are independent."""
    engine = CoverageEngine()
    first = engine.analyze(_solid(GREEN))
    second = engine.analyze(_quadrants(GREEN, BROWN, STRAW, STONE))
    third = engine.analyze(_solid(GREEN))

    assert first.counts == third.counts
    assert second.counts.total == 400


def test_rgba_buffer_input() -> None:
    """Interleaved RGBA bytes are analyzed on their color channels."""
    buffer = bytes([0, 255, 0, 10] * 12)
    image = RasterImage.from_buffer(buffer, width=4, height=3, channels=4)

    result = analyze_ground_cover(image)

    assert result.percentage(CoverClass.VEGETATION) == pytest.approx(100.0)
    assert result.width == 4 and result.height == 3


def test_result_payload_is_serializable() -> None:
    """The result dictionary uses plain keys and values."""
    result = analyze_ground_cover(
        _quadrants(GREEN, BROWN, STRAW, STONE), AnalysisOptions(grid_size=2)
    )

    payload = result.to_dict()

    assert payload["percentages"]["vegetation"] == pytest.approx(25.0)
    assert payload["counts"]["rock"] == 100
    assert payload["grid"]["cells"][3]["dominant_class"] == "rock"
    assert payload["diversity_basis"] == "pixel_proportion"
    assert result.rounded_percentages()[CoverClass.ROCK] == 25.0
