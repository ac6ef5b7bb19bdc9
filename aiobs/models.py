"""Core data models — no internal dependencies, only Pydantic + stdlib."""

from __future__ import annotations

import os
import time
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
    model_validator,
)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class SessionMeta(BaseModel):
    pid: int = Field(default_factory=os.getpid)
    cwd: str = Field(default_factory=os.getcwd)


class Session(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    started_at: float = Field(default_factory=time.time)
    ended_at: float | None = None
    meta: SessionMeta = Field(default_factory=SessionMeta)
    labels: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Events (tagged union on ``event_type``)
# ---------------------------------------------------------------------------

class Callsite(BaseModel):
    file: str | None = None
    line: int | None = None
    function: str | None = None


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    api: str
    error: str | None = None
    started_at: float
    ended_at: float
    duration_ms: float
    callsite: Callsite | None = None
    span_id: str | None = None
    parent_span_id: str | None = None
    # Stamped by the collector when the event is exported.
    session_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_duration(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("duration_ms") is None:
            started, ended = data.get("started_at"), data.get("ended_at")
            if started is not None and ended is not None:
                data = {**data, "duration_ms": round((ended - started) * 1000, 3)}
        return data

    @model_validator(mode="after")
    def _check_span_and_timing(self) -> _EventBase:
        if self.span_id is not None and self.parent_span_id == self.span_id:
            raise ValueError(f"span {self.span_id!r} cannot be its own parent")
        if self.ended_at < self.started_at:
            raise ValueError("ended_at must not precede started_at")
        return self


class ProviderEvent(_EventBase):
    """A call made to an external AI-model provider."""

    event_type: Literal["provider"] = "provider"
    request: Any = None
    response: Any = None


class FunctionEvent(_EventBase):
    """A call to a function instrumented with ``@observe``."""

    event_type: Literal["function"] = "function"
    provider: str = "function"
    name: str
    module: str | None = None
    args: list[Any] | None = None
    kwargs: dict[str, Any] | None = None
    result: Any = None
    enh_prompt: bool = False
    enh_prompt_id: str | None = None
    auto_enhance_after: int | None = None


AnyEvent = Annotated[Union[ProviderEvent, FunctionEvent], Field(discriminator="event_type")]


# ---------------------------------------------------------------------------
# Trace tree
# ---------------------------------------------------------------------------

class TraceNode(BaseModel):
    """An event plus its ordered children. Serializes flat: event fields + ``children``."""

    event: AnyEvent
    children: list[TraceNode] = Field(default_factory=list)

    @property
    def span_id(self) -> str | None:
        return self.event.span_id

    @property
    def started_at(self) -> float:
        return self.event.started_at

    @property
    def event_type(self) -> str:
        return self.event.event_type

    @model_serializer(mode="wrap")
    def _flatten(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        flat = dict(data["event"])
        flat["children"] = data["children"]
        return flat


TraceNode.model_rebuild()


# ---------------------------------------------------------------------------
# Export payload
# ---------------------------------------------------------------------------

class ObservabilityExport(BaseModel):
    sessions: list[Session] = Field(default_factory=list)
    events: list[ProviderEvent] = Field(default_factory=list)
    function_events: list[FunctionEvent] = Field(default_factory=list)
    trace_tree: list[TraceNode] | None = None
    enh_prompt_traces: list[str] | None = None
    generated_at: float = Field(default_factory=time.time)
    version: int = 1

    @property
    def trace_count(self) -> int:
        return len(self.events) + len(self.function_events)


# ---------------------------------------------------------------------------
# Usage service envelopes
# ---------------------------------------------------------------------------

class UsageInfo(BaseModel):
    tier: str = "unknown"
    traces_used: int = 0
    traces_limit: int = 0
    traces_remaining: int | None = None
    is_rate_limited: bool = False


class UsageEnvelope(BaseModel):
    success: bool = False
    usage: UsageInfo | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Exporter result
# ---------------------------------------------------------------------------

class ExportResult(BaseModel):
    """The one result shape every exporter returns."""

    success: bool
    destination: str | None = None
    bytes_written: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
