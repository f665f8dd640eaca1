"""QThread worker for ground cover analysis."""

from __future__ import annotations

from dataclasses import dataclass, replace
import traceback

from PySide6.QtCore import QObject, Signal, Slot
from loguru import logger

from ecomeasure.core.coverage_engine import CoverageEngine
from ecomeasure.core.errors import AnalysisCancelled, EcoMeasureError
from ecomeasure.core.models import AnalysisOptions, RasterImage
from ecomeasure.utils.ground_cover.progress import CancellationToken


@dataclass
class CoverageAnalysisInput:
    """Input payload for the coverage analysis worker."""

    image: RasterImage
    options: AnalysisOptions | None = None


class CoverageAnalysisWorker(QObject):
    """Background worker running one ground cover analysis.

    Progress notifications of the engine are forwarded through
    ``sigProgress``; the finished ``CoverageResult`` is the same object a
    synchronous call would return.
    """

    sigProgress = Signal(float, str)
    sigFinished = Signal(object)
    sigFailed = Signal(str, str)
    sigCancelled = Signal()

    def __init__(
        self,
        payload: CoverageAnalysisInput,
        engine: CoverageEngine | None = None,
    ) -> None:
        super().__init__()
        self.payload = payload
        self._engine = engine or CoverageEngine()
        self._cancel_token = CancellationToken()

    @property
    def is_cancel_requested(self) -> bool:
        return self._cancel_token.is_cancelled

    def request_cancel(self) -> None:
        """Request cancellation at the next progress checkpoint."""
        self._cancel_token.cancel()

    @Slot()
    def run(self) -> None:
        """Execute the analysis and emit progress/results."""
        if self.is_cancel_requested:
            self.sigCancelled.emit()
            return
        options = replace(
            self.payload.options or AnalysisOptions(),
            on_progress=self._emit_progress,
            cancel_token=self._cancel_token,
        )
        try:
            result = self._engine.analyze(self.payload.image, options)
        except AnalysisCancelled:
            logger.info("Ground cover analysis cancelled")
            self.sigCancelled.emit()
            return
        except EcoMeasureError as exc:
            logger.warning(f"Ground cover analysis failed: {exc}")
            self.sigFailed.emit(exc.kind, str(exc))
            return
        except Exception as exc:
            message = format_worker_exception(exc)
            logger.error(message)
            self.sigFailed.emit("internal", message)
            return
        self.sigFinished.emit(result)

    def _emit_progress(self, percent: float, stage: str) -> None:
        self.sigProgress.emit(float(percent), stage)


def format_worker_exception(exc: Exception) -> str:
    """Format exception into message with traceback details.

    Parameters
    ----------
    exc : Exception
        The exception to format.

    Returns
    -------
    str
        Formatted message with traceback text.
    """
    trace_text = traceback.format_exc()
    if not trace_text or trace_text == "NoneType: None\n":
        trace_text = "\n".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return f"{type(exc).__name__}: {exc}\n{trace_text.strip()}"
