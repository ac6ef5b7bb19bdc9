"""In-memory session registry and event store."""

from __future__ import annotations

from aiobs.models import AnyEvent, Session


class InMemorySessionStore:
    """Dict-backed store — sessions and their event batches share one key.

    Data lives only until the collector flushes and clears it.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._events: dict[str, list[AnyEvent]] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session
        self._events[session.id] = []

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def append_event(self, session_id: str, event: AnyEvent) -> bool:
        batch = self._events.get(session_id)
        if batch is None:
            return False
        batch.append(event)
        return True

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def events(self) -> dict[str, list[AnyEvent]]:
        return {session_id: list(batch) for session_id, batch in self._events.items()}

    def event_count(self) -> int:
        return sum(len(batch) for batch in self._events.values())

    def first_session_id(self) -> str | None:
        return next(iter(self._sessions), None)

    def clear(self) -> None:
        self._sessions.clear()
        self._events.clear()
