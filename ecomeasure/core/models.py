"""Data model shared by the coverage engine and its callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import numbers
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from ecomeasure.core.errors import InvalidImage, InvalidOptions

if TYPE_CHECKING:
    from ecomeasure.utils.ground_cover.progress import CancellationToken
    from ecomeasure.utils.ground_cover.thresholds import ThresholdTable
    from ecomeasure.utils.ground_cover.tracing import PixelTracer


DEFAULT_METHOD = "groundcover-v1"

ProgressCallback = Callable[[float, str], None]


def _is_integer(value: Any) -> bool:
    """True for Python and numpy integers, never for booleans."""
    return isinstance(value, numbers.Integral) and not isinstance(value, (bool, np.bool_))


class CoverClass(str, Enum):
    """Land-cover classes assigned to single pixels."""

    VEGETATION = "vegetation"
    BARE_GROUND = "bare_ground"
    LITTER = "litter"
    ROCK = "rock"
    SHADOW = "shadow"
    UNCLASSIFIED = "unclassified"

    @property
    def code(self) -> int:
        """Integer code used in label arrays."""
        return COVER_CLASSES.index(self)

    @property
    def display_name(self) -> str:
        """Human readable class name."""
        return self.value.replace("_", " ").title()


# Code order of label arrays produced by the classifier.
COVER_CLASSES: tuple[CoverClass, ...] = (
    CoverClass.VEGETATION,
    CoverClass.BARE_GROUND,
    CoverClass.LITTER,
    CoverClass.ROCK,
    CoverClass.SHADOW,
    CoverClass.UNCLASSIFIED,
)

GROUND_CLASSES: tuple[CoverClass, ...] = COVER_CLASSES[:4]


@dataclass(frozen=True)
class RasterImage:
    """Decoded row-major RGB or RGBA raster.

    Parameters
    ----------
    pixels : numpy.ndarray
        ``uint8`` array with shape ``(H, W, 3)`` or ``(H, W, 4)``. The
        stored array is a read-only view; alpha is ignored by analyses.

    Examples
    --------
    >>> image = RasterImage(np.zeros((2, 3, 3), dtype=np.uint8))
    >>> image.width, image.height
    (3, 2)
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        array = np.asarray(self.pixels)
        if array.dtype != np.uint8:
            raise InvalidImage(f"Expected uint8 pixels, got {array.dtype}")
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidImage(f"Expected (H, W, 3|4) pixels, got {array.shape}")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise InvalidImage("Image has no pixels")
        view = array.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @classmethod
    def from_array(cls, array: np.ndarray) -> RasterImage:
        """Wrap an existing ``(H, W, C)`` array."""
        return cls(np.asarray(array))

    @classmethod
    def from_buffer(
        cls,
        buffer: bytes | bytearray | memoryview,
        width: int,
        height: int,
        channels: int = 4,
    ) -> RasterImage:
        """Build an image from row-major interleaved bytes.

        Parameters
        ----------
        buffer : bytes | bytearray | memoryview
            Interleaved channel bytes, ``width * height * channels`` long.
        width, height : int
            Raster dimensions in pixels.
        channels : int, optional
            ``3`` for RGB or ``4`` for RGBA, by default ``4``.

        Returns
        -------
        RasterImage
            Image backed by a copy of ``buffer``.
        """
        if channels not in (3, 4):
            raise InvalidImage(f"Unsupported channel count: {channels}")
        if width <= 0 or height <= 0:
            raise InvalidImage(f"Invalid image size: {width}x{height}")
        flat = np.frombuffer(bytes(buffer), dtype=np.uint8)
        expected = width * height * channels
        if flat.size != expected:
            raise InvalidImage(
                f"Buffer holds {flat.size} bytes, expected {expected} "
                f"for {width}x{height}x{channels}"
            )
        return cls(flat.reshape(height, width, channels))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def rgb(self) -> np.ndarray:
        """RGB view with shape ``(H, W, 3)``."""
        return self.pixels[:, :, :3]


@dataclass(frozen=True)
class ClassCounts:
    """Pixel tally per cover class.

    The six counts always sum to the number of pixels that were
    classified, i.e. ``width * height`` for a full frame.
    """

    vegetation: int = 0
    bare_ground: int = 0
    litter: int = 0
    rock: int = 0
    shadow: int = 0
    unclassified: int = 0

    @classmethod
    def from_array(cls, counts: np.ndarray) -> ClassCounts:
        """Build counts from an array ordered like ``COVER_CLASSES``."""
        values = np.asarray(counts, dtype=np.int64)
        if values.shape != (len(COVER_CLASSES),):
            raise ValueError("counts must have one entry per cover class")
        return cls(
            **{cover.value: int(value) for cover, value in zip(COVER_CLASSES, values)}
        )

    def to_array(self) -> np.ndarray:
        """Return counts ordered like ``COVER_CLASSES``."""
        return np.asarray([self[cover] for cover in COVER_CLASSES], dtype=np.int64)

    def __getitem__(self, cover: CoverClass) -> int:
        return int(getattr(self, CoverClass(cover).value))

    def __add__(self, other: ClassCounts) -> ClassCounts:
        if not isinstance(other, ClassCounts):
            return NotImplemented
        return ClassCounts.from_array(self.to_array() + other.to_array())

    @property
    def total(self) -> int:
        return int(self.to_array().sum())

    @property
    def classified_total(self) -> int:
        """Pixels assigned to a ground class (shadow/unclassified excluded)."""
        return sum(self[cover] for cover in GROUND_CLASSES)

    def as_dict(self) -> dict[str, int]:
        return {cover.value: self[cover] for cover in COVER_CLASSES}


@dataclass(frozen=True)
class DiversityIndices:
    """Shannon diversity and evenness of one proportion vector.

    Parameters
    ----------
    shannon : float
        ``-sum(p * ln p)`` over included proportions.
    evenness : float
        ``shannon / ln(richness)``; ``0`` when ``richness <= 1``.
    richness : int
        Number of included (non-zero) proportions.
    basis : str
        ``"pixel_proportion"`` or ``"cell_label_frequency"``.
    """

    shannon: float
    evenness: float
    richness: int
    basis: str = "pixel_proportion"

    def to_dict(self) -> dict[str, Any]:
        return {
            "shannon": self.shannon,
            "evenness": self.evenness,
            "richness": self.richness,
            "basis": self.basis,
        }


@dataclass(frozen=True)
class CellResult:
    """Classification summary of one grid cell."""

    row: int
    col: int
    x0: int
    y0: int
    x1: int
    y1: int
    counts: ClassCounts
    percentages: dict[CoverClass, float]
    dominant_class: CoverClass | None
    dominant_species: tuple[str, ...]
    diversity: DiversityIndices

    @property
    def has_ground_cover(self) -> bool:
        return self.counts.classified_total > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "col": self.col,
            "bounds": [self.x0, self.y0, self.x1, self.y1],
            "counts": self.counts.as_dict(),
            "percentages": {k.value: v for k, v in self.percentages.items()},
            "dominant_class": (
                None if self.dominant_class is None else self.dominant_class.value
            ),
            "dominant_species": list(self.dominant_species),
            "diversity": self.diversity.to_dict(),
        }


@dataclass(frozen=True)
class GridSummary:
    """Per-cell results of a gridded analysis.

    ``cell_label_diversity`` is computed from how often each class is the
    dominant class of a cell. It is a different quantity from the frame
    level Shannon index, which always uses pixel proportions.
    """

    grid_size: int
    cells: tuple[CellResult, ...]
    cell_label_diversity: DiversityIndices

    def cell(self, row: int, col: int) -> CellResult:
        return self.cells[row * self.grid_size + col]

    def to_dict(self) -> dict[str, Any]:
        return {
            "grid_size": self.grid_size,
            "cells": [cell.to_dict() for cell in self.cells],
            "cell_label_diversity": self.cell_label_diversity.to_dict(),
        }


@dataclass(frozen=True)
class CoverageResult:
    """Outcome of one ground cover analysis.

    ``percentages`` holds unrounded values for the four ground classes;
    they sum to 100 within floating point tolerance. Use
    :meth:`rounded_percentages` for presentation only.
    """

    method: str
    width: int
    height: int
    counts: ClassCounts
    percentages: dict[CoverClass, float]
    shannon_index: float
    evenness_index: float
    dominant_classes: tuple[CoverClass, ...]
    dominant_species: tuple[str, ...]
    sampling_area_m2: float
    processing_time_s: float
    diversity_basis: str = "pixel_proportion"
    grid: GridSummary | None = None

    def percentage(self, cover: CoverClass) -> float:
        return float(self.percentages.get(CoverClass(cover), 0.0))

    def rounded_percentages(self, ndigits: int = 1) -> dict[CoverClass, float]:
        return {cover: round(value, ndigits) for cover, value in self.percentages.items()}

    @property
    def classified_total(self) -> int:
        return self.counts.classified_total

    @property
    def total_coverage(self) -> float:
        return float(sum(self.percentages.values()))

    @property
    def species_diversity(self) -> int:
        """Number of distinct heuristic vegetation labels."""
        return len(self.dominant_species)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable payload for persistence layers."""
        return {
            "method": self.method,
            "width": self.width,
            "height": self.height,
            "counts": self.counts.as_dict(),
            "classified_total": self.classified_total,
            "percentages": {k.value: v for k, v in self.percentages.items()},
            "shannon_index": self.shannon_index,
            "evenness_index": self.evenness_index,
            "diversity_basis": self.diversity_basis,
            "dominant_classes": [cover.value for cover in self.dominant_classes],
            "dominant_species": list(self.dominant_species),
            "species_diversity": self.species_diversity,
            "sampling_area_m2": self.sampling_area_m2,
            "processing_time_s": self.processing_time_s,
            "grid": None if self.grid is None else self.grid.to_dict(),
        }


@dataclass(frozen=True)
class AnalysisOptions:
    """Configuration of one ground cover analysis.

    Parameters
    ----------
    method : str
        Threshold table identifier, e.g. ``"groundcover-v1"``.
    grid_size : int | None
        Split the frame into ``grid_size x grid_size`` cells when set.
    species_library : tuple[str, ...] | None
        Display names allowed for heuristic vegetation labels.
    on_progress : Callable[[float, str], None] | None
        Receives ``(percent, stage)`` at progress checkpoints.
    min_proportion : float
        Proportions below this cutoff are left out of the Shannon index.
    progress_interval : float
        Fraction of pixels between two progress notifications.
    chunk_pixels : int
        Upper bound of pixels classified per checkpoint.
    sampling_area_m2 : float
        Ground area covered by the photograph.
    threshold_table : ThresholdTable | None
        Explicit rule-set; overrides ``method`` when given.
    cancel_token : CancellationToken | None
        Checked at every progress checkpoint.
    tracer : PixelTracer | None
        Receives sampled pixel decisions when enabled.
    """

    method: str = DEFAULT_METHOD
    grid_size: int | None = None
    species_library: tuple[str, ...] | None = None
    on_progress: ProgressCallback | None = None
    min_proportion: float = 0.0
    progress_interval: float = 0.05
    chunk_pixels: int = 262_144
    sampling_area_m2: float = 1.0
    threshold_table: ThresholdTable | None = field(default=None, repr=False)
    cancel_token: CancellationToken | None = field(default=None, repr=False)
    tracer: PixelTracer | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.species_library is not None and not isinstance(
            self.species_library, tuple
        ):
            object.__setattr__(self, "species_library", tuple(self.species_library))
        for name in ("grid_size", "chunk_pixels"):
            value = getattr(self, name)
            if _is_integer(value) and type(value) is not int:
                object.__setattr__(self, name, int(value))

    def validate(self, image: RasterImage | None = None) -> None:
        """Check every field, raising ``InvalidOptions`` on the first problem.

        Parameters
        ----------
        image : RasterImage | None, optional
            When given, the grid size is also checked against the image.
        """
        if not isinstance(self.method, str) or not self.method.strip():
            raise InvalidOptions("method must be a non-empty rule-set identifier")
        if self.grid_size is not None:
            if not _is_integer(self.grid_size):
                raise InvalidOptions(f"grid_size must be an integer, got {self.grid_size!r}")
            if self.grid_size <= 0:
                raise InvalidOptions(f"grid_size must be positive, got {self.grid_size}")
            if image is not None and self.grid_size > min(image.width, image.height):
                raise InvalidOptions(
                    f"grid_size {self.grid_size} exceeds image size "
                    f"{image.width}x{image.height}"
                )
        if self.species_library is not None:
            for name in self.species_library:
                if not isinstance(name, str) or not name.strip():
                    raise InvalidOptions("species_library entries must be non-empty strings")
        if self.on_progress is not None and not callable(self.on_progress):
            raise InvalidOptions("on_progress must be callable")
        if not 0.0 <= self.min_proportion < 1.0:
            raise InvalidOptions(f"min_proportion must be in [0, 1), got {self.min_proportion}")
        if not 0.0 < self.progress_interval <= 1.0:
            raise InvalidOptions(
                f"progress_interval must be in (0, 1], got {self.progress_interval}"
            )
        if not _is_integer(self.chunk_pixels):
            raise InvalidOptions("chunk_pixels must be an integer")
        if self.chunk_pixels <= 0:
            raise InvalidOptions(f"chunk_pixels must be positive, got {self.chunk_pixels}")
        if not self.sampling_area_m2 > 0:
            raise InvalidOptions(
                f"sampling_area_m2 must be positive, got {self.sampling_area_m2}"
            )
