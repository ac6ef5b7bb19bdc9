"""Exporter ABC — a pluggable destination for the export payload."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from aiobs.models import ExportResult, ObservabilityExport


class BaseExporter(ABC):
    """Ships an :class:`ObservabilityExport` somewhere and reports an :class:`ExportResult`.

    Implement ``export`` to add a destination (object store, database, queue).
    """

    name: str = "base"

    @abstractmethod
    async def export(
        self,
        data: ObservabilityExport,
        options: dict[str, Any] | None = None,
    ) -> ExportResult: ...

    def validate(self, data: ObservabilityExport) -> bool:
        """Reject anything that is not an export payload. Empty payloads are valid."""
        if not isinstance(data, ObservabilityExport):
            raise TypeError(f"{self.name} exporter expects ObservabilityExport, got {type(data).__name__}")
        return True
