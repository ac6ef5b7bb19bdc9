"""Callback-backed and fan-out exporters."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from aiobs.errors import ExportHandlerFailed
from aiobs.exporters.base import BaseExporter
from aiobs.models import ExportResult, ObservabilityExport

logger = logging.getLogger(__name__)

ExportHandler = Callable[
    [ObservabilityExport, dict[str, Any]],
    Union[ExportResult, None, Awaitable[Union[ExportResult, None]]],
]


class CustomExporter(BaseExporter):
    """Runs a user callback (sync or async) as the export step.

    The callback returns an :class:`ExportResult`, or ``None`` for a plain
    success. Anything it raises is wrapped in :class:`ExportHandlerFailed`.
    """

    name = "custom"

    def __init__(
        self,
        handler: ExportHandler,
        *,
        name: str | None = None,
        default_options: dict[str, Any] | None = None,
    ) -> None:
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handler = handler
        if name:
            self.name = name
        self._default_options = dict(default_options or {})

    async def export(
        self,
        data: ObservabilityExport,
        options: dict[str, Any] | None = None,
    ) -> ExportResult:
        self.validate(data)
        merged = {**self._default_options, **(options or {})}

        try:
            result = self._handler(data, merged)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            raise ExportHandlerFailed(f"Custom export handler failed: {exc}", exc) from exc

        if result is None:
            return ExportResult(success=True, metadata={"handler": self.name})
        if not isinstance(result, ExportResult):
            raise ExportHandlerFailed(
                f"Custom export handler returned {type(result).__name__}; expected ExportResult or None"
            )
        return result


class CompositeExporter(BaseExporter):
    """Runs several exporters in order and aggregates their results."""

    name = "composite"

    def __init__(self, exporters: list[BaseExporter], *, stop_on_error: bool = False) -> None:
        if not exporters:
            raise ValueError("At least one exporter is required")
        self._exporters = list(exporters)
        self._stop_on_error = stop_on_error

    @property
    def exporters(self) -> list[BaseExporter]:
        return list(self._exporters)

    def add(self, exporter: BaseExporter) -> CompositeExporter:
        self._exporters.append(exporter)
        return self

    async def export(
        self,
        data: ObservabilityExport,
        options: dict[str, Any] | None = None,
    ) -> ExportResult:
        self.validate(data)

        results: list[dict[str, Any]] = []
        errors: list[str] = []
        all_success = True

        for exporter in self._exporters:
            try:
                result = await exporter.export(data, options)
            except Exception as exc:
                all_success = False
                errors.append(f"{exporter.name}: {exc}")
                results.append({"exporter": exporter.name, "success": False, "error": str(exc)})
                logger.warning("exporter=%s failed: %s", exporter.name, exc)
                if self._stop_on_error:
                    raise
                continue

            results.append({"exporter": exporter.name, **result.model_dump()})
            if not result.success:
                all_success = False
                if result.error:
                    errors.append(f"{exporter.name}: {result.error}")

        return ExportResult(
            success=all_success,
            metadata={"exporters_count": len(self._exporters), "results": results},
            error="; ".join(errors) if errors else None,
        )
