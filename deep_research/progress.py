"""Progress event emission and step accounting for a single run."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable

from deep_research.events import ProgressEvent, ProgressKind, ProgressStatus
from deep_research.exceptions import ResearchCancelledError
from deep_research.logging import get_logger

log = get_logger("deep_research.progress")

EventCallback = Callable[[ProgressEvent], Awaitable[None]]

PROGRESS_CARD_ID = "research-progress"


class PipelineState(str, Enum):
    """States of a research run, in the order they can occur."""

    PLANNING = "planning"
    SEARCHING = "searching"
    ANALYZING = "analyzing"
    GAP_ANALYSIS = "gap_analysis"
    DEEP_SEARCHING = "deep_searching"
    SYNTHESIZING = "synthesizing"
    REPORT_GENERATION = "report_generation"
    DONE = "done"


_STATE_MESSAGES: dict[PipelineState, str] = {
    PipelineState.PLANNING: "Creating research plan...",
    PipelineState.SEARCHING: "Searching sources...",
    PipelineState.ANALYZING: "Analyzing search results...",
    PipelineState.GAP_ANALYSIS: "Looking for gaps in the research...",
    PipelineState.DEEP_SEARCHING: "Researching knowledge gaps...",
    PipelineState.SYNTHESIZING: "Synthesizing all findings...",
    PipelineState.REPORT_GENERATION: "Writing research report...",
}


def now_ms() -> int:
    return int(time.time() * 1000)


class ProgressEmitter:
    """Builds ProgressEvents and forwards them, in order, to an async sink.

    Owns the run's step counters. ``total_steps`` grows when a counted phase
    starts and ``completed_steps`` when a counted step terminates, successfully
    or not, so ``completed_steps <= total_steps`` holds for every event.
    """

    def __init__(
        self,
        event_callback: EventCallback | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._callback = event_callback
        self._cancel_event = cancel_event
        self._clock = clock
        self.events: list[ProgressEvent] = []
        self.completed_steps = 0
        self.total_steps = 0
        self.state = PipelineState.PLANNING
        self.closed = False

    # --- accounting ---

    def add_steps(self, count: int) -> None:
        if count < 0:
            raise ValueError("step count must be non-negative")
        self.total_steps += count

    def step_done(self) -> None:
        if self.completed_steps >= self.total_steps:
            raise RuntimeError(f"completed steps would exceed total steps ({self.total_steps})")
        self.completed_steps += 1

    def counts(self) -> dict[str, int]:
        return {"completed_steps": self.completed_steps, "total_steps": self.total_steps}

    # --- cancellation ---

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        """Close the stream and raise once the run has been cancelled."""
        if self.cancelled:
            if not self.closed:
                log.info("progress.cancelled", state=self.state.value, **self.counts())
                self.closed = True
            raise ResearchCancelledError(state=self.state.value)

    # --- emission ---

    async def emit(
        self,
        card_id: str,
        kind: ProgressKind,
        status: ProgressStatus,
        title: str,
        message: str,
        *,
        overwrite: bool = False,
        payload: dict[str, Any] | None = None,
        with_counts: bool = False,
        is_complete: bool | None = None,
        count_step: bool = False,
    ) -> ProgressEvent:
        """Build, record and forward one event.

        ``count_step`` marks the termination of a counted step: the completed
        counter moves first and the event carries the updated counts. Once the
        run is cancelled nothing more is forwarded.

        Raises:
            ResearchCancelledError: When the cancel event is set.
        """
        self.check_cancelled()
        if self.closed:
            raise RuntimeError("progress stream already finished")
        if count_step:
            self.step_done()
            with_counts = True
        event = ProgressEvent(
            id=card_id,
            kind=kind,
            status=status,
            title=title,
            message=message,
            timestamp=self._clock(),
            overwrite=overwrite,
            payload=payload,
            is_complete=is_complete,
            **(self.counts() if with_counts else {}),
        )
        self.events.append(event)
        if self._callback is not None:
            await self._callback(event)
        return event

    async def running(self, card_id: str, kind: ProgressKind, title: str, message: str, **kwargs: Any) -> ProgressEvent:
        return await self.emit(card_id, kind, ProgressStatus.RUNNING, title, message, **kwargs)

    async def completed(
        self, card_id: str, kind: ProgressKind, title: str, message: str, **kwargs: Any
    ) -> ProgressEvent:
        kwargs.setdefault("overwrite", True)
        return await self.emit(card_id, kind, ProgressStatus.COMPLETED, title, message, **kwargs)

    async def transition(self, state: PipelineState) -> ProgressEvent:
        """Enter ``state`` and update the run-level progress card."""
        self.check_cancelled()
        log.info("progress.transition", previous=self.state.value, state=state.value, **self.counts())
        self.state = state
        return await self.running(
            PROGRESS_CARD_ID,
            ProgressKind.PROGRESS,
            "Research Progress",
            _STATE_MESSAGES[state],
            overwrite=True,
            with_counts=True,
            payload={"state": state.value},
        )

    async def finish(self, message: str) -> ProgressEvent:
        """Emit the terminal event of the run. Nothing may be emitted afterwards."""
        self.check_cancelled()
        if self.completed_steps != self.total_steps:
            raise RuntimeError(
                f"run finished with {self.completed_steps}/{self.total_steps} steps accounted for"
            )
        self.state = PipelineState.DONE
        event = await self.completed(
            PROGRESS_CARD_ID,
            ProgressKind.PROGRESS,
            "Research Progress",
            message,
            with_counts=True,
            is_complete=True,
            payload={"state": PipelineState.DONE.value},
        )
        self.closed = True
        return event

    async def fail(self, error: Exception) -> ProgressEvent:
        """Emit a terminal failure event for a run that cannot continue.

        Steps that never ran terminate with the run: they are counted as done
        and reported as ``skipped_steps`` so the final counts stay equal.
        """
        failed_state = self.state
        skipped_steps = self.total_steps - self.completed_steps
        self.completed_steps = self.total_steps
        self.state = PipelineState.DONE
        event = await self.completed(
            PROGRESS_CARD_ID,
            ProgressKind.PROGRESS,
            "Research Progress",
            f"Research failed during {failed_state.value}",
            with_counts=True,
            is_complete=True,
            payload={
                "state": PipelineState.DONE.value,
                "failed_state": failed_state.value,
                "error": str(error),
                "error_type": type(error).__name__,
                "skipped_steps": skipped_steps,
            },
        )
        self.closed = True
        return event
