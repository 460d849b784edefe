"""Progress reporting for scrape runs."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from leadscout.models import Phase, ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """Fire-and-forget wrapper around a progress callback.

    Events are delivered synchronously and in order. A failing sink is logged
    and never interrupts the pipeline. ``done`` can only be
    produced through :meth:`complete`, which the orchestrator calls after the
    final ranking.
    """

    def __init__(self, callback: Optional[ProgressCallback], total: int) -> None:
        self._callback = callback
        self.total = total
        self.finished = False
        self.phase: Optional[Phase] = None

    def emit(
        self,
        phase: Phase,
        message: str,
        *,
        current: int,
        progress: Optional[float] = None,
        business_name: Optional[str] = None,
    ) -> None:
        if phase is Phase.DONE:
            raise ValueError("done is emitted through complete()")
        if self.finished:
            logger.debug("Ignoring progress after completion: %s", message)
            return
        self._deliver(
            ProgressEvent(
                current=current,
                total=self.total,
                message=message,
                phase=phase,
                progress=progress,
                business_name=business_name,
            )
        )

    def complete(self, current: int, message: str) -> None:
        if self.finished:
            return
        self._deliver(
            ProgressEvent(current=current, total=self.total, message=message, phase=Phase.DONE, progress=100.0)
        )
        self.finished = True

    def extraction_progress(self, accepted: int) -> float:
        """Percentage for the per-candidate stages, kept below the save/done band."""
        return min(25 + (accepted / self.total) * 65, 90)

    def _deliver(self, event: ProgressEvent) -> None:
        self.phase = event.phase
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Progress sink failed (%s): %s", event.phase.value, exc)
