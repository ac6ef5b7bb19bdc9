from aiobs.errors import ExportHandlerFailed
from aiobs.exporters.base import BaseExporter
from aiobs.exporters.custom import CompositeExporter, CustomExporter, ExportHandler
from aiobs.exporters.jsonl import JSONLExporter
from aiobs.models import ExportResult

__all__ = [
    "BaseExporter",
    "CompositeExporter",
    "CustomExporter",
    "ExportHandler",
    "ExportHandlerFailed",
    "ExportResult",
    "JSONLExporter",
]
