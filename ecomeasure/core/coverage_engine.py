"""
Ground Cover Coverage Engine.

Turns one decoded photograph into per-class coverage percentages and
diversity indices, optionally cell by cell over an N x N grid.
"""

from __future__ import annotations

import time

from loguru import logger

from ecomeasure.core.models import (
    AnalysisOptions,
    CellResult,
    ClassCounts,
    CoverClass,
    CoverageResult,
    RasterImage,
)
from ecomeasure.utils.ground_cover.aggregate import (
    FrameAggregator,
    coverage_proportions,
    rank_classes,
)
from ecomeasure.utils.ground_cover.classifier import PixelClassifier
from ecomeasure.utils.ground_cover.diversity import diversity_indices
from ecomeasure.utils.ground_cover.grid import (
    GridWindow,
    build_cell_result,
    generate_grid_windows,
    summarize_grid,
)
from ecomeasure.utils.ground_cover.progress import (
    STAGE_CLASSIFY,
    STAGE_COVERAGE,
    STAGE_DIVERSITY,
    STAGE_PREPARE,
    PixelWindow,
    ProgressReporter,
    chunk_pixels_for,
    iter_checkpointed_chunks,
)
from ecomeasure.utils.ground_cover.species import ColorBucketCounter, dominant_species
from ecomeasure.utils.ground_cover.thresholds import resolve_threshold_table


CLASSIFY_START = 5.0
CLASSIFY_END = 85.0


class CoverageEngine:
    """
    Stateless driver of one ground cover analysis.

    Each call owns its counters; nothing is kept between calls, so one
    engine may serve concurrent analyses.
    """

    def analyze(
        self, image: RasterImage, options: AnalysisOptions | None = None
    ) -> CoverageResult:
        """
        Classify every pixel and derive coverage statistics.

        Parameters
        ----------
        image : RasterImage
            Decoded photograph.
        options : AnalysisOptions, optional
            Analysis configuration; defaults to the canonical rule-set.

        Returns
        -------
        CoverageResult
            Percentages, diversity indices and heuristic labels.

        Raises
        ------
        InvalidOptions
            Configuration problems, detected before any pixel is read.
        NoGroundCoverDetected
            No pixel matched a ground class.
        AnalysisCancelled
            The cancel token was set; checked at progress checkpoints.
        """
        options = options or AnalysisOptions()
        options.validate(image)
        table = resolve_threshold_table(options)
        start_time = time.perf_counter()

        classifier = PixelClassifier(table, tracer=options.tracer)
        reporter = ProgressReporter(
            options.on_progress,
            interval=options.progress_interval,
            cancel_token=options.cancel_token,
        )
        reporter.report(0.0, STAGE_PREPARE)
        logger.debug(
            f"Analyzing {image.width}x{image.height} pixels with {table.identifier}, "
            f"grid={options.grid_size}"
        )

        if options.grid_size:
            windows: list[PixelWindow] = list(
                generate_grid_windows(image.width, image.height, options.grid_size)
            )
        else:
            windows = [PixelWindow(0, 0, image.width, image.height)]

        reporter.begin_pixels(
            image.pixel_count, CLASSIFY_START, CLASSIFY_END, STAGE_CLASSIFY
        )
        frame_counts = FrameAggregator()
        frame_buckets = ColorBucketCounter()
        cells: list[CellResult] = []
        for window in windows:
            counts, buckets = self._classify_window(
                image, window, classifier, reporter, options
            )
            frame_counts.add_counts(counts)
            frame_buckets.merge(buckets)
            if isinstance(window, GridWindow):
                cells.append(
                    build_cell_result(
                        window,
                        counts,
                        buckets,
                        species_library=options.species_library,
                        min_proportion=options.min_proportion,
                    )
                )
        reporter.checkpoint()

        reporter.report(90.0, STAGE_COVERAGE)
        counts = frame_counts.counts()
        proportions = coverage_proportions(counts)
        percentages = {cover: value * 100.0 for cover, value in proportions.items()}

        reporter.report(95.0, STAGE_DIVERSITY)
        diversity = diversity_indices(proportions.values(), options.min_proportion)
        species = dominant_species(frame_buckets, options.species_library)
        grid = summarize_grid(options.grid_size, cells) if options.grid_size else None

        elapsed = time.perf_counter() - start_time
        result = CoverageResult(
            method=table.identifier,
            width=image.width,
            height=image.height,
            counts=counts,
            percentages=percentages,
            shannon_index=diversity.shannon,
            evenness_index=diversity.evenness,
            dominant_classes=rank_classes(percentages),
            dominant_species=species,
            sampling_area_m2=float(options.sampling_area_m2),
            processing_time_s=elapsed,
            diversity_basis=diversity.basis,
            grid=grid,
        )
        reporter.complete()
        logger.info(
            f"Ground cover analysis finished in {elapsed:.2f}s: "
            f"vegetation={percentages[CoverClass.VEGETATION]:.1f}% "
            f"H={diversity.shannon:.3f}"
        )
        return result

    def _classify_window(
        self,
        image: RasterImage,
        window: PixelWindow,
        classifier: PixelClassifier,
        reporter: ProgressReporter,
        options: AnalysisOptions,
    ) -> tuple[ClassCounts, ColorBucketCounter]:
        """Classify one window strip by strip."""
        aggregator = FrameAggregator()
        buckets = ColorBucketCounter()
        strip_pixels = chunk_pixels_for(
            options.chunk_pixels, image.pixel_count, options.progress_interval
        )
        for _, chunk in iter_checkpointed_chunks(
            image.rgb, window, strip_pixels, reporter
        ):
            labels, (hue, saturation, value) = classifier.classify_hsv(chunk)
            aggregator.add_labels(labels)
            buckets.add(
                hue, saturation, value, classifier.color_group_mask(chunk, labels)
            )
        return aggregator.counts(), buckets


def analyze_ground_cover(
    image: RasterImage, options: AnalysisOptions | None = None
) -> CoverageResult:
    """Run one ground cover analysis with a fresh :class:`CoverageEngine`."""
    return CoverageEngine().analyze(image, options)
