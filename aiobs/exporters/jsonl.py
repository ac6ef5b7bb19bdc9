"""JSONL file exporter."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from aiobs.exporters.base import BaseExporter
from aiobs.models import ExportResult, ObservabilityExport


class JSONLExporter(BaseExporter):
    """Appends one JSON line per event to ``{trace_dir}/{session_id}.jsonl``.

    Lines are ordered by ``started_at`` within each session file, which suits
    log aggregation systems better than the single nested export document.
    """

    name = "jsonl"

    def __init__(self, trace_dir: str = "./traces") -> None:
        self._dir = Path(trace_dir)

    async def export(
        self,
        data: ObservabilityExport,
        options: dict[str, Any] | None = None,
    ) -> ExportResult:
        self.validate(data)

        buffers: dict[str, list[dict[str, Any]]] = {}
        for ev in sorted([*data.events, *data.function_events], key=lambda e: e.started_at):
            session_id = ev.session_id or "unassigned"
            entry = {
                "ts": ev.started_at,
                "session_id": session_id,
                "event": ev.event_type,
                **ev.model_dump(exclude={"session_id", "event_type"}),
            }
            buffers.setdefault(session_id, []).append(entry)

        if not buffers:
            return ExportResult(success=True, destination=str(self._dir), bytes_written=0, metadata={"files": []})

        self._dir.mkdir(parents=True, exist_ok=True)
        written = 0
        files: list[str] = []
        for session_id, entries in buffers.items():
            path = self._dir / f"{session_id}.jsonl"
            with open(path, "a", encoding="utf-8") as f:
                for entry in entries:
                    line = json.dumps(entry, default=str) + "\n"
                    f.write(line)
                    written += len(line.encode("utf-8"))
            files.append(str(path))

        return ExportResult(
            success=True,
            destination=str(self._dir),
            bytes_written=written,
            metadata={"files": files, "events": data.trace_count},
        )
