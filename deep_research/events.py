"""Progress events and their SSE wire encoding."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProgressStatus(str, Enum):
    """Lifecycle of a progress card."""

    RUNNING = "running"
    COMPLETED = "completed"


class ProgressKind(str, Enum):
    """What a progress card describes."""

    PLAN = "plan"
    WEB = "web"
    ACADEMIC = "academic"
    ANALYSIS = "analysis"
    REPORT = "report"
    PROGRESS = "progress"


class ProgressEvent(BaseModel):
    """One immutable update of a progress card.

    Events sharing an ``id`` form a single card. ``overwrite=True`` tells the
    consumer to replace the previous event for that card instead of appending.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(description="Card identifier", examples=["search-web-0"])
    kind: ProgressKind = Field(description="Card kind", examples=["web"])
    status: ProgressStatus = Field(description="running or completed", examples=["running"])
    title: str = Field(description="Short card title", examples=['Searching the web for "avif support"'])
    message: str = Field(description="Human readable status line", examples=["Searching web sources..."])
    timestamp: int = Field(description="Emission time in epoch milliseconds", examples=[1760000000000])
    completed_steps: int | None = Field(default=None, ge=0)
    total_steps: int | None = Field(default=None, ge=0)
    overwrite: bool = False
    is_complete: bool | None = None
    payload: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase field names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class QueryCompletion(BaseModel):
    """Reported once per query of a multi-query search, in completion order."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: str = "query_completion"
    query: str
    index: int = Field(ge=0)
    total: int = Field(ge=1)
    status: ProgressStatus = ProgressStatus.COMPLETED
    results_count: int = Field(ge=0)
    images_count: int = Field(ge=0)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SSEEventType(str, Enum):
    """SSE event types for research streaming."""

    RESEARCH_UPDATE = "research_update"
    HEARTBEAT = "heartbeat"
    COMPLETE = "complete"
    ERROR = "error"


class SSEEvent(BaseModel):
    """Base SSE event model."""

    event: SSEEventType = Field(description="Event type identifier")
    data: dict[str, Any] = Field(description="Event payload data")

    def format(self) -> str:
        """Format as SSE message: 'event: type\\ndata: json\\n\\n'."""
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"


class ResearchUpdateEvent(SSEEvent):
    """Carries one ProgressEvent to the client."""

    event: SSEEventType = SSEEventType.RESEARCH_UPDATE
    data: dict[str, Any] = Field(
        description="ProgressEvent serialized with camelCase keys",
        examples=[
            {
                "id": "search-web-0",
                "kind": "web",
                "status": "completed",
                "title": 'Searched the web for "avif support"',
                "message": "Found 3 results",
                "timestamp": 1760000000000,
                "overwrite": True,
            }
        ],
    )

    @classmethod
    def from_progress(cls, progress: ProgressEvent) -> "ResearchUpdateEvent":
        return cls(data=progress.to_wire())


class HeartbeatEvent(SSEEvent):
    """Heartbeat sent as an SSE comment so clients need no handler for it."""

    event: SSEEventType = SSEEventType.HEARTBEAT
    data: dict[str, Any] = Field(default_factory=dict)

    def format(self) -> str:
        return ": keepalive\n\n"


class CompleteEvent(SSEEvent):
    """Final event carrying the serialized ResearchResult."""

    event: SSEEventType = SSEEventType.COMPLETE
    data: dict[str, Any] = Field(description="Full ResearchResult serialized")


class ErrorEvent(SSEEvent):
    """Event emitted when the run fails or the stream times out."""

    event: SSEEventType = SSEEventType.ERROR
    data: dict[str, str] = Field(
        description="Error details",
        examples=[
            {
                "error": "Unable to create research plan. Please try a different topic.",
                "error_type": "PlanGenerationError",
                "state": "planning",
            }
        ],
    )
