"""aiobs — session/event collector for AI provider calls and instrumented functions.

Usage::

    from aiobs import observer, observe

    @observe
    async def answer(question: str) -> str:
        ...

    await observer.observe("nightly-eval", api_key="...")
    await answer("hi")
    observer.end()
    await observer.flush()

Environment variables (all optional):
  AIOBS_API_KEY          — credential for usage reporting and remote flush
  AIOBS_FLUSH_SERVER_URL — trace transmission endpoint base URL
  LLM_OBS_OUT            — default path of the local JSON export
  AIOBS_LABEL_<NAME>     — extra session labels
  AIOBS_DEBUG            — set to ``1`` for debug logging
"""

from __future__ import annotations

import logging

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from aiobs.collector import Collector
from aiobs.config import CollectorSettings, configure_logging
from aiobs.context import get_current_span_id, set_current_span_id, span_scope
from aiobs.decorators import observe, set_observer
from aiobs.errors import (
    AiobsError,
    ExportHandlerFailed,
    InvalidApiKey,
    InvalidLabelKey,
    LabelValueTooLong,
    MissingCredential,
    NoActiveSession,
    QuotaServiceUnreachable,
    RateLimitExceeded,
    ReservedLabelKey,
    TooManyLabels,
    UsageReportFailed,
)
from aiobs.exporters import BaseExporter, CompositeExporter, CustomExporter, JSONLExporter
from aiobs.models import (
    Callsite,
    ExportResult,
    FunctionEvent,
    ObservabilityExport,
    ProviderEvent,
    Session,
    SessionMeta,
    TraceNode,
    UsageInfo,
)
from aiobs.providers import BaseProvider, OpenAIChatProvider, wrap_openai_client
from aiobs.trace_tree import build_trace_tree, extract_enh_prompt_traces

logging.getLogger("aiobs").addHandler(logging.NullHandler())
configure_logging()

# Global collector singleton; ``@observe`` records into it.
observer = Collector()
set_observer(observer)

__all__ = [
    "AiobsError",
    "BaseExporter",
    "BaseProvider",
    "Callsite",
    "Collector",
    "CollectorSettings",
    "CompositeExporter",
    "CustomExporter",
    "ExportHandlerFailed",
    "ExportResult",
    "FunctionEvent",
    "InvalidApiKey",
    "InvalidLabelKey",
    "JSONLExporter",
    "LabelValueTooLong",
    "MissingCredential",
    "NoActiveSession",
    "ObservabilityExport",
    "OpenAIChatProvider",
    "ProviderEvent",
    "QuotaServiceUnreachable",
    "RateLimitExceeded",
    "ReservedLabelKey",
    "Session",
    "SessionMeta",
    "TooManyLabels",
    "TraceNode",
    "UsageInfo",
    "UsageReportFailed",
    "build_trace_tree",
    "extract_enh_prompt_traces",
    "get_current_span_id",
    "observe",
    "observer",
    "set_current_span_id",
    "span_scope",
    "wrap_openai_client",
]
