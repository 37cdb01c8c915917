"""Typed events emitted to whoever drives a research run.

Transport is the caller's business: the CLI prints them, an HTTP layer could
turn `model_dump()` into server-sent events.
"""
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from .models import ResearchReport


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    step: str
    status: str
    message: str = ""
    percentage: float | None = None


class MessageEvent(BaseModel):
    """Incremental report text."""

    type: Literal["message"] = "message"
    content: str


class ReasoningEvent(BaseModel):
    """Model "thinking" text, kept apart from the report."""

    type: Literal["reasoning"] = "reasoning"
    content: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    report: ResearchReport
    cached: bool = False


ResearchEvent = ProgressEvent | MessageEvent | ReasoningEvent | ErrorEvent | CompleteEvent

EventHandler = Callable[[ResearchEvent], None]


# Batch events
#
# Per-entity `complete` and `error` reuse the plain `type` names of the final
# batch `complete` and of pipeline errors; route on `entity` to tell them apart.

EntityStatus = Literal["pending", "processing", "completed", "error"]


class EntityResult(BaseModel):
    entity: str
    status: EntityStatus = "pending"
    report: ResearchReport | None = None
    error: str | None = None
    started_at: str | None = None
    completed_at: str | None = None


class BatchStatusEvent(BaseModel):
    type: Literal["status"] = "status"
    batch_id: str
    total: int
    entities: list[EntityResult]


class EntityStartEvent(BaseModel):
    type: Literal["start"] = "start"
    entity: str


class EntityUpdateEvent(BaseModel):
    """A pipeline event from one entity's run, tagged with the entity."""

    type: Literal["update"] = "update"
    entity: str
    event: ResearchEvent


class EntityCompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    entity: str
    report: ResearchReport


class EntityErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    entity: str
    message: str


class BatchProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    completed: int
    errors: int
    total: int
    percentage: int


class BatchCompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    batch_id: str
    total: int
    results: list[EntityResult]
    summary: dict[str, Any] = Field(default_factory=dict)


BatchEvent = (
    BatchStatusEvent
    | EntityStartEvent
    | EntityUpdateEvent
    | EntityCompleteEvent
    | EntityErrorEvent
    | BatchProgressEvent
    | BatchCompleteEvent
)
