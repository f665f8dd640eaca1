"""Named, versioned threshold tables for pixel classification.

Every class rule is an axis-aligned box in HSV space built from half-open
bands (``lo <= x < hi``). The excess-green vegetation test is not a box,
but it is bounded by one: ``g > r`` and ``g > b`` force the hue into
``(60, 180)`` degrees, and ``ExG > t`` forces ``s > 3t / (2 + 2t)``. That
bound lets overlaps between classes be detected analytically, so a table
whose result would depend on rule order is rejected up front.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
import tomllib
from typing import Any

import numpy as np

from ecomeasure.core.errors import InvalidOptions
from ecomeasure.core.models import DEFAULT_METHOD, AnalysisOptions, CoverClass


@dataclass(frozen=True)
class Band:
    """Half-open interval ``[lo, hi)``."""

    lo: float = 0.0
    hi: float = math.inf

    def contains(self, values: np.ndarray) -> np.ndarray:
        return (values >= self.lo) & (values < self.hi)

    def intersects(self, other: Band) -> bool:
        return max(self.lo, other.lo) < min(self.hi, other.hi)


FULL_HUE = Band(0.0, 360.0)
FULL_UNIT = Band(0.0, math.inf)


@dataclass(frozen=True)
class HsvBox:
    """Named HSV region of one class rule.

    Parameters
    ----------
    label : str
        Rule name inside its class, e.g. ``"light_rock"``.
    hue : Band
        Hue band in degrees; never wraps past 360.
    saturation, value : Band
        Saturation and value bands in ``[0, 1]``.
    """

    label: str
    hue: Band = FULL_HUE
    saturation: Band = FULL_UNIT
    value: Band = FULL_UNIT

    def contains(
        self, hue: np.ndarray, saturation: np.ndarray, value: np.ndarray
    ) -> np.ndarray:
        return (
            self.hue.contains(hue)
            & self.saturation.contains(saturation)
            & self.value.contains(value)
        )

    def intersects(self, other: HsvBox) -> bool:
        return (
            self.hue.intersects(other.hue)
            and self.saturation.intersects(other.saturation)
            and self.value.intersects(other.value)
        )


@dataclass(frozen=True)
class VegetationRule:
    """Dual vegetation test.

    A pixel is vegetation when its hue lies in ``hue`` with saturation and
    value at or above their floors (brightly lit leaves), or when its
    excess green index exceeds ``excess_green_min`` while both ``r/g`` and
    ``b/g`` stay below ``ratio_max`` (shaded leaves).
    """

    hue: Band = Band(60.0, 180.0)
    saturation_min: float = 0.15
    value_min: float = 0.2
    excess_green_min: float = 0.12
    ratio_max: float = 1.0

    def hue_box(self) -> HsvBox:
        return HsvBox(
            "green_hue",
            hue=self.hue,
            saturation=Band(self.saturation_min, math.inf),
            value=Band(self.value_min, math.inf),
        )

    def excess_green_box(self) -> HsvBox:
        """Smallest HSV box containing every pixel of the ratio test."""
        threshold = self.excess_green_min
        sat_from_exg = 3.0 * threshold / (2.0 + 2.0 * threshold) if threshold > 0 else 0.0
        sat_min = max(0.0, sat_from_exg, 1.0 - self.ratio_max)
        return HsvBox(
            "excess_green",
            hue=Band(60.0, 180.0),
            saturation=Band(sat_min, math.inf),
            value=FULL_UNIT,
        )


@dataclass(frozen=True)
class ThresholdTable:
    """Complete rule-set used by :class:`PixelClassifier`.

    Rules are evaluated in the fixed order vegetation, bare ground,
    litter, rock. Pixels matching none of them are shadow when their
    value is below ``shadow_value_max`` and unclassified otherwise.
    """

    name: str
    version: int
    vegetation: VegetationRule
    bare_ground: tuple[HsvBox, ...]
    litter: tuple[HsvBox, ...]
    rock: tuple[HsvBox, ...]
    shadow_value_max: float = 0.25
    description: str = ""

    @property
    def identifier(self) -> str:
        return f"{self.name}-v{self.version}"

    def class_boxes(self) -> dict[CoverClass, tuple[HsvBox, ...]]:
        """HSV boxes bounding each ground class."""
        return {
            CoverClass.VEGETATION: (
                self.vegetation.hue_box(),
                self.vegetation.excess_green_box(),
            ),
            CoverClass.BARE_GROUND: self.bare_ground,
            CoverClass.LITTER: self.litter,
            CoverClass.ROCK: self.rock,
        }

    def validate(self) -> None:
        """Raise ``ValueError`` when parameters or class regions conflict."""
        if not 0.0 < self.shadow_value_max <= 1.0:
            raise ValueError(
                f"shadow_value_max must be in (0, 1], got {self.shadow_value_max}"
            )
        if not 0.0 < self.vegetation.ratio_max <= 1.0:
            raise ValueError(
                f"vegetation ratio_max must be in (0, 1], got {self.vegetation.ratio_max}"
            )
        for cover, boxes in self.class_boxes().items():
            for box in boxes:
                for band_name in ("hue", "saturation", "value"):
                    band = getattr(box, band_name)
                    if not band.lo < band.hi:
                        raise ValueError(
                            f"{cover.value}.{box.label}: empty {band_name} band "
                            f"[{band.lo}, {band.hi})"
                        )
                if box.hue.lo < 0.0 or box.hue.hi > 360.0:
                    raise ValueError(
                        f"{cover.value}.{box.label}: hue band must stay within [0, 360]"
                    )
        overlaps = find_rule_overlaps(self)
        if overlaps:
            described = ", ".join(
                f"{a.value}.{a_label} / {b.value}.{b_label}"
                for a, a_label, b, b_label in overlaps
            )
            raise ValueError(f"{self.identifier}: overlapping class rules: {described}")


def find_rule_overlaps(
    table: ThresholdTable,
) -> list[tuple[CoverClass, str, CoverClass, str]]:
    """List pairs of rules from different classes whose regions intersect.

    Parameters
    ----------
    table : ThresholdTable
        Table to inspect.

    Returns
    -------
    list[tuple[CoverClass, str, CoverClass, str]]
        ``(class_a, rule_a, class_b, rule_b)`` for every intersecting pair.
    """
    boxes = list(table.class_boxes().items())
    overlaps: list[tuple[CoverClass, str, CoverClass, str]] = []
    for idx, (cover_a, boxes_a) in enumerate(boxes):
        for cover_b, boxes_b in boxes[idx + 1 :]:
            for box_a in boxes_a:
                for box_b in boxes_b:
                    if box_a.intersects(box_b):
                        overlaps.append((cover_a, box_a.label, cover_b, box_b.label))
    return overlaps


GROUNDCOVER_V1 = ThresholdTable(
    name="groundcover",
    version=1,
    description="Canonical ground cover rules for nadir quadrat photographs.",
    vegetation=VegetationRule(
        hue=Band(60.0, 180.0),
        saturation_min=0.15,
        value_min=0.2,
        excess_green_min=0.12,
        ratio_max=1.0,
    ),
    bare_ground=(
        HsvBox("brown", Band(0.0, 30.0), Band(0.15, 0.4), Band(0.2, 0.8)),
        HsvBox("gray", FULL_HUE, Band(0.0, 0.15), Band(0.5, 0.7)),
    ),
    litter=(
        HsvBox("dead_vegetation", Band(30.0, 60.0), Band(0.2, math.inf), Band(0.15, 0.6)),
        HsvBox("dark_organic", FULL_HUE, Band(0.0, 0.15), Band(0.15, 0.3)),
    ),
    rock=(
        HsvBox("light_rock", FULL_HUE, Band(0.0, 0.15), Band(0.7, math.inf)),
        HsvBox("dark_rock", FULL_HUE, Band(0.0, 0.15), Band(0.3, 0.5)),
    ),
    shadow_value_max=0.25,
)

CANOPEO_V1 = ThresholdTable(
    name="canopeo",
    version=1,
    description="Canopeo-style rules with a stricter green-ratio vegetation test.",
    vegetation=VegetationRule(
        hue=Band(60.0, 180.0),
        saturation_min=0.2,
        value_min=0.2,
        excess_green_min=0.1,
        ratio_max=0.95,
    ),
    bare_ground=(
        HsvBox("brown", Band(0.0, 30.0), Band(0.12, 0.4), Band(0.2, 0.8)),
        HsvBox("gray", FULL_HUE, Band(0.0, 0.12), Band(0.5, 0.7)),
    ),
    litter=(
        HsvBox("dead_vegetation", Band(30.0, 60.0), Band(0.2, math.inf), Band(0.15, 0.6)),
        HsvBox("dark_organic", FULL_HUE, Band(0.0, 0.12), Band(0.1, 0.3)),
    ),
    rock=(
        HsvBox("light_rock", FULL_HUE, Band(0.0, 0.12), Band(0.7, math.inf)),
        HsvBox("dark_rock", FULL_HUE, Band(0.0, 0.12), Band(0.3, 0.5)),
    ),
    shadow_value_max=0.3,
)

THRESHOLD_TABLES: dict[str, ThresholdTable] = {
    table.identifier: table for table in (GROUNDCOVER_V1, CANOPEO_V1)
}


def get_threshold_table(method: str = DEFAULT_METHOD) -> ThresholdTable:
    """Look up a built-in table by identifier.

    Raises
    ------
    InvalidOptions
        When ``method`` names no registered table.
    """
    table = THRESHOLD_TABLES.get(method)
    if table is None:
        known = ", ".join(sorted(THRESHOLD_TABLES))
        raise InvalidOptions(f"Unknown classification method {method!r}; known: {known}")
    return table


def resolve_threshold_table(options: AnalysisOptions) -> ThresholdTable:
    """Return the validated table selected by ``options``."""
    table = options.threshold_table or get_threshold_table(options.method)
    try:
        table.validate()
    except ValueError as exc:
        raise InvalidOptions(str(exc)) from exc
    return table


def _band_from_toml(raw: Any, default: Band, where: str) -> Band:
    if raw is None:
        return default
    if not isinstance(raw, list) or len(raw) != 2:
        raise InvalidOptions(f"{where} must be a [lo, hi] pair")
    return Band(float(raw[0]), float(raw[1]))


def _boxes_from_toml(raw_list: Any, where: str) -> tuple[HsvBox, ...]:
    if raw_list is None:
        return ()
    if not isinstance(raw_list, list):
        raise InvalidOptions(f"{where} must be an array of tables")
    boxes: list[HsvBox] = []
    for idx, raw in enumerate(raw_list):
        label = str(raw.get("label", f"{where}_{idx}"))
        boxes.append(
            HsvBox(
                label=label,
                hue=_band_from_toml(raw.get("hue"), FULL_HUE, f"{where}.{label}.hue"),
                saturation=_band_from_toml(
                    raw.get("saturation"), FULL_UNIT, f"{where}.{label}.saturation"
                ),
                value=_band_from_toml(
                    raw.get("value"), FULL_UNIT, f"{where}.{label}.value"
                ),
            )
        )
    return tuple(boxes)


def threshold_table_from_dict(data: dict[str, Any]) -> ThresholdTable:
    """Build and validate a table from parsed TOML data."""
    try:
        veg_raw = data.get("vegetation", {})
        vegetation = VegetationRule(
            hue=_band_from_toml(veg_raw.get("hue"), Band(60.0, 180.0), "vegetation.hue"),
            saturation_min=float(veg_raw.get("saturation_min", 0.15)),
            value_min=float(veg_raw.get("value_min", 0.2)),
            excess_green_min=float(veg_raw.get("excess_green_min", 0.12)),
            ratio_max=float(veg_raw.get("ratio_max", 1.0)),
        )
        table = ThresholdTable(
            name=str(data["name"]),
            version=int(data.get("version", 1)),
            description=str(data.get("description", "")),
            vegetation=vegetation,
            bare_ground=_boxes_from_toml(data.get("bare_ground"), "bare_ground"),
            litter=_boxes_from_toml(data.get("litter"), "litter"),
            rock=_boxes_from_toml(data.get("rock"), "rock"),
            shadow_value_max=float(data.get("shadow_value_max", 0.25)),
        )
        table.validate()
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise InvalidOptions(f"Invalid threshold table: {exc}") from exc
    return table


def load_threshold_table(file_path: str | Path) -> ThresholdTable:
    """Load a threshold table from a TOML file.

    Parameters
    ----------
    file_path : str | Path
        TOML document with ``name``, ``version``, ``[vegetation]`` and
        ``[[bare_ground]]`` / ``[[litter]]`` / ``[[rock]]`` boxes.

    Returns
    -------
    ThresholdTable
        Validated, overlap-free table.
    """
    path = Path(file_path)
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise InvalidOptions(f"Cannot read threshold table {path}: {exc}") from exc
    return threshold_table_from_dict(data)
