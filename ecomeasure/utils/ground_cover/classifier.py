"""Threshold based pixel classifier for ground cover photographs."""

from __future__ import annotations

import numpy as np

from ecomeasure.core.models import COVER_CLASSES, CoverClass
from ecomeasure.utils.ground_cover.color import (
    excess_green_array,
    green_ratios_array,
    rgb_to_hsv_array,
)
from ecomeasure.utils.ground_cover.thresholds import (
    GROUNDCOVER_V1,
    HsvBox,
    ThresholdTable,
)
from ecomeasure.utils.ground_cover.tracing import NullTracer, PixelTracer


VEGETATION_CODE = CoverClass.VEGETATION.code
BARE_GROUND_CODE = CoverClass.BARE_GROUND.code
LITTER_CODE = CoverClass.LITTER.code
ROCK_CODE = CoverClass.ROCK.code
SHADOW_CODE = CoverClass.SHADOW.code
UNCLASSIFIED_CODE = CoverClass.UNCLASSIFIED.code
SENESCENT_GREEN_SHARE_MIN = 0.4


def _any_box(
    boxes: tuple[HsvBox, ...],
    hue: np.ndarray,
    saturation: np.ndarray,
    value: np.ndarray,
) -> np.ndarray:
    """Union of box memberships."""
    mask = np.zeros(hue.shape, dtype=bool)
    for box in boxes:
        mask |= box.contains(hue, saturation, value)
    return mask


class PixelClassifier:
    """Assign each pixel one ``CoverClass`` with fixed rule precedence.

    Rules are tried in the order vegetation, bare ground, litter, rock.
    A pixel matching none of them is shadow when its value is below the
    table's shadow threshold, otherwise unclassified. Built-in tables have
    non-overlapping class regions, so the order never decides a label;
    it only documents how a custom table would be disambiguated.

    Parameters
    ----------
    table : ThresholdTable, optional
        Rule-set to apply, by default ``groundcover-v1``.
    tracer : PixelTracer, optional
        Receives sampled decisions when its ``enabled`` flag is set.

    Examples
    --------
    >>> PixelClassifier().classify(0, 255, 0)
    <CoverClass.VEGETATION: 'vegetation'>
    """

    def __init__(
        self,
        table: ThresholdTable = GROUNDCOVER_V1,
        tracer: PixelTracer | None = None,
    ) -> None:
        self.table = table
        self.tracer = tracer if tracer is not None else NullTracer()

    def vegetation_mask(
        self,
        rgb: np.ndarray,
        hue: np.ndarray,
        saturation: np.ndarray,
        value: np.ndarray,
    ) -> np.ndarray:
        """Evaluate the dual vegetation rule."""
        rule = self.table.vegetation
        hue_match = rule.hue_box().contains(hue, saturation, value)
        red_ratio, blue_ratio = green_ratios_array(rgb)
        ratio_match = (
            (excess_green_array(rgb) > rule.excess_green_min)
            & (red_ratio < rule.ratio_max)
            & (blue_ratio < rule.ratio_max)
        )
        return hue_match | ratio_match

    def color_group_mask(self, rgb: np.ndarray, labels: np.ndarray) -> np.ndarray:
        """Pixels counted by the heuristic color-group labels.

        Vegetation pixels plus yellow-green litter that still passes the
        green-excess test (excess green above the rule minimum and a
        chromatic green share above ``SENESCENT_GREEN_SHARE_MIN``). The
        latter feed the "Senescent Vegetation" group; their class stays
        litter.
        """
        rgb = np.asarray(rgb)[..., :3]
        channels = rgb.astype(np.float64)
        green_share = channels[..., 1] / (channels.sum(axis=-1) + 1.0)
        senescent = (
            (labels == LITTER_CODE)
            & (excess_green_array(rgb) > self.table.vegetation.excess_green_min)
            & (green_share > SENESCENT_GREEN_SHARE_MIN)
        )
        return (labels == VEGETATION_CODE) | senescent

    def classify_hsv(
        self, rgb: np.ndarray
    ) -> tuple[np.ndarray, tuple[np.ndarray, np.ndarray, np.ndarray]]:
        """Label an ``(..., 3)`` pixel array and return its HSV planes.

        Parameters
        ----------
        rgb : numpy.ndarray
            ``uint8`` channels with trailing dimension ``3``.

        Returns
        -------
        tuple[numpy.ndarray, tuple[numpy.ndarray, numpy.ndarray, numpy.ndarray]]
            ``uint8`` label codes ordered like ``COVER_CLASSES`` and the
            ``(hue, saturation, value)`` arrays used to derive them.
        """
        rgb = np.asarray(rgb)[..., :3]
        hue, saturation, value = rgb_to_hsv_array(rgb)
        labels = np.full(hue.shape, UNCLASSIFIED_CODE, dtype=np.uint8)
        unassigned = np.ones(hue.shape, dtype=bool)
        ordered_rules = (
            (VEGETATION_CODE, self.vegetation_mask(rgb, hue, saturation, value)),
            (BARE_GROUND_CODE, _any_box(self.table.bare_ground, hue, saturation, value)),
            (LITTER_CODE, _any_box(self.table.litter, hue, saturation, value)),
            (ROCK_CODE, _any_box(self.table.rock, hue, saturation, value)),
            (SHADOW_CODE, value < self.table.shadow_value_max),
        )
        for code, mask in ordered_rules:
            hit = unassigned & mask
            labels[hit] = code
            unassigned &= ~hit
        if self.tracer.enabled:
            self.tracer.trace_pixels(rgb, labels, (hue, saturation, value))
        return labels, (hue, saturation, value)

    def classify_array(self, rgb: np.ndarray) -> np.ndarray:
        """Label an ``(..., 3)`` pixel array with integer class codes."""
        labels, _ = self.classify_hsv(rgb)
        return labels

    def classify(self, r: int, g: int, b: int) -> CoverClass:
        """Classify a single pixel.

        Uses the vectorized path so single pixels and whole frames can
        never disagree.
        """
        pixel = np.asarray([[r, g, b]], dtype=np.uint8)
        return COVER_CLASSES[int(self.classify_array(pixel)[0])]
