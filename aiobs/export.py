"""Export pipeline — payload assembly, local artifact, remote trace transmission."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

import httpx

from aiobs.config import TRACES_TIMEOUT
from aiobs.errors import InvalidApiKey
from aiobs.models import AnyEvent, FunctionEvent, ObservabilityExport, ProviderEvent, Session
from aiobs.trace_tree import build_trace_tree, extract_enh_prompt_traces

logger = logging.getLogger(__name__)

TRACES_PATH = "/v1/traces"
FALLBACK_FILENAME = "llm_observability.json"


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def partition_events(
    events_by_session: Mapping[str, Sequence[AnyEvent]],
) -> tuple[list[ProviderEvent], list[FunctionEvent]]:
    """Split events by variant, stamping each with the session it belongs to."""
    provider_events: list[ProviderEvent] = []
    function_events: list[FunctionEvent] = []
    for session_id, events in events_by_session.items():
        for ev in events:
            stamped = ev.model_copy(update={"session_id": session_id})
            if isinstance(stamped, FunctionEvent):
                function_events.append(stamped)
            else:
                provider_events.append(stamped)
    return provider_events, function_events


def build_export(
    sessions: Sequence[Session],
    events_by_session: Mapping[str, Sequence[AnyEvent]],
    *,
    include_trace_tree: bool = True,
) -> ObservabilityExport:
    provider_events, function_events = partition_events(events_by_session)

    trace_tree = None
    enh_prompt_traces = None
    if include_trace_tree:
        trace_tree = build_trace_tree([*provider_events, *function_events])
        enh_prompt_traces = extract_enh_prompt_traces(trace_tree) or None

    return ObservabilityExport(
        sessions=[s.model_copy(deep=True) for s in sessions],
        events=provider_events,
        function_events=function_events,
        trace_tree=trace_tree,
        enh_prompt_traces=enh_prompt_traces,
    )


def payload_to_json(payload: ObservabilityExport, indent: int | None = 2) -> str:
    # Request/response bodies are arbitrary objects; fall back to str().
    return json.dumps(payload.model_dump(), default=str, indent=indent)


# ---------------------------------------------------------------------------
# Local artifact
# ---------------------------------------------------------------------------

def resolve_output_path(
    path: str | Path | None,
    env_default: str | None,
    session_id: str | None,
) -> Path:
    """Explicit path, then the environment default, then ``<session_id>.json``."""
    if path:
        return Path(path)
    if env_default:
        return Path(env_default)
    return Path(f"{session_id}.json" if session_id else FALLBACK_FILENAME)


def write_export(payload: ObservabilityExport, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload_to_json(payload), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Remote transmission
# ---------------------------------------------------------------------------

class TraceTransmitter:
    """Best-effort POST of the payload to the flush server.

    Only an unauthorized response is raised; every other failure is logged.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = TRACES_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def send(self, api_key: str, payload: ObservabilityExport) -> bool:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    TRACES_PATH,
                    content=payload_to_json(payload, indent=None),
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning("Failed to connect to flush server: %r", exc)
            return False

        if response.status_code == 401:
            raise InvalidApiKey(response.status_code)
        if not response.is_success:
            logger.warning("Failed to flush traces to server: HTTP %d", response.status_code)
            return False

        try:
            message = response.json().get("message", "success")
        except (ValueError, AttributeError):
            message = "success"
        logger.debug("Traces flushed to server: %s", message)
        return True
