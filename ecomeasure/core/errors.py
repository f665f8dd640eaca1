"""Error taxonomy surfaced by EcoMeasure analyses."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecomeasure.core.models import ClassCounts


class EcoMeasureError(Exception):
    """Base class for every error reported to analysis callers."""

    kind = "error"


class InvalidImage(EcoMeasureError):
    """Image failed caller-side validation before analysis."""

    kind = "invalid_image"


class InvalidOptions(EcoMeasureError):
    """Analysis configuration is malformed.

    Raised before the pixel loop starts so that long passes never fail
    partway through because of a bad option.
    """

    kind = "invalid_options"


class NoGroundCoverDetected(EcoMeasureError):
    """No pixel of the frame was assigned to a ground cover class.

    Parameters
    ----------
    counts : ClassCounts
        Final per-class tally of the failed pass.
    """

    kind = "no_ground_cover"

    def __init__(self, counts: ClassCounts) -> None:
        super().__init__(
            f"No ground cover detected in {counts.total} pixels "
            f"(shadow={counts.shadow}, unclassified={counts.unclassified})"
        )
        self.counts = counts


class AnalysisCancelled(EcoMeasureError):
    """Analysis stopped at a progress checkpoint after a cancel request."""

    kind = "cancelled"
