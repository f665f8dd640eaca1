"""Ground cover submodule for pixel classification and coverage statistics.

Re-exports the public API symbols. The PySide6 worker lives in
``ecomeasure.utils.ground_cover.qthread`` and is imported on demand.
"""

from ecomeasure.utils.ground_cover.aggregate import (
    FrameAggregator,
    coverage_percentages,
    coverage_proportions,
    rank_classes,
)
from ecomeasure.utils.ground_cover.classifier import PixelClassifier
from ecomeasure.utils.ground_cover.color import rgb_to_hsv, rgb_to_hsv_array
from ecomeasure.utils.ground_cover.diversity import (
    diversity_indices,
    evenness_index,
    label_frequency_diversity,
    shannon_index,
)
from ecomeasure.utils.ground_cover.grid import (
    GridWindow,
    cell_class_fractions,
    dominant_class_map,
    generate_grid_windows,
)
from ecomeasure.utils.ground_cover.progress import (
    CancellationToken,
    PixelWindow,
    ProgressReporter,
)
from ecomeasure.utils.ground_cover.species import (
    DEFAULT_SPECIES_LIBRARY,
    ColorBucketCounter,
    dominant_species,
)
from ecomeasure.utils.ground_cover.thresholds import (
    CANOPEO_V1,
    GROUNDCOVER_V1,
    THRESHOLD_TABLES,
    ThresholdTable,
    find_rule_overlaps,
    get_threshold_table,
    load_threshold_table,
)
from ecomeasure.utils.ground_cover.tracing import LoguruPixelTracer, NullTracer

__all__ = [
    "CANOPEO_V1",
    "CancellationToken",
    "ColorBucketCounter",
    "DEFAULT_SPECIES_LIBRARY",
    "FrameAggregator",
    "GROUNDCOVER_V1",
    "GridWindow",
    "LoguruPixelTracer",
    "NullTracer",
    "PixelClassifier",
    "PixelWindow",
    "ProgressReporter",
    "THRESHOLD_TABLES",
    "ThresholdTable",
    "cell_class_fractions",
    "coverage_percentages",
    "coverage_proportions",
    "diversity_indices",
    "dominant_class_map",
    "dominant_species",
    "evenness_index",
    "find_rule_overlaps",
    "generate_grid_windows",
    "get_threshold_table",
    "label_frequency_diversity",
    "load_threshold_table",
    "rank_classes",
    "rgb_to_hsv",
    "rgb_to_hsv_array",
    "shannon_index",
]
