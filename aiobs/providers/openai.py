"""OpenAI chat-completions adapter."""

from __future__ import annotations

import functools
import inspect
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from aiobs.context import get_current_span_id, new_span_id, span_scope
from aiobs.decorators import safe_repr
from aiobs.models import ProviderEvent
from aiobs.providers.base import BaseProvider

if TYPE_CHECKING:
    from aiobs.collector import Collector

logger = logging.getLogger(__name__)


def _response_payload(response: Any) -> Any:
    if hasattr(response, "model_dump"):
        try:
            return response.model_dump()
        except Exception:
            logger.debug("model_dump failed on %s", type(response).__name__, exc_info=True)
    return safe_repr(response)


class OpenAIChatProvider(BaseProvider):
    """Records ``client.chat.completions.create`` calls on one OpenAI client.

    Works with both ``OpenAI`` and ``AsyncOpenAI``. The recorded span's
    parent is whatever span is current when the call starts, so completions
    issued inside an ``@observe`` function nest under it.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def create(cls, api_key: str | None = None, **client_kwargs: Any) -> OpenAIChatProvider:
        """Build an ``AsyncOpenAI`` client (``base_url``, ``http_client``, ... pass through)."""
        # Late import so the rest of the package works without openai installed
        from openai import AsyncOpenAI

        return cls(AsyncOpenAI(api_key=api_key, **client_kwargs))

    @property
    def name(self) -> str:
        return "openai"

    @property
    def client(self) -> Any:
        return self._client

    def is_available(self) -> bool:
        completions = getattr(getattr(self._client, "chat", None), "completions", None)
        return callable(getattr(completions, "create", None))

    def install(self, collector: Collector) -> Callable[[], None] | None:
        completions = self._client.chat.completions
        original = completions.create

        def record(started: float, span_id: str, parent: str | None, kwargs: dict[str, Any],
                   response: Any, error: str | None) -> None:
            try:
                collector.record_event(ProviderEvent(
                    provider="openai",
                    api="chat.completions.create",
                    request=safe_repr(kwargs),
                    response=_response_payload(response) if error is None else None,
                    error=error,
                    started_at=started,
                    ended_at=max(time.time(), started),
                    duration_ms=None,
                    span_id=span_id,
                    parent_span_id=parent,
                ))
            except Exception:
                logger.warning("Failed to record openai event", exc_info=True)

        async def complete(pending: Awaitable[Any], started: float, span_id: str,
                           parent: str | None, kwargs: dict[str, Any]) -> Any:
            response: Any = None
            error: str | None = None
            with span_scope(span_id):
                try:
                    response = await pending
                    return response
                except Exception as exc:
                    error = f"{type(exc).__name__}: {exc}"
                    raise
                finally:
                    record(started, span_id, parent, kwargs, response, error)

        # AsyncOpenAI wraps create in a plain function that returns a coroutine.
        @functools.wraps(original)
        def create(*args: Any, **kwargs: Any) -> Any:
            parent, span_id, started = get_current_span_id(), new_span_id(), time.time()
            with span_scope(span_id):
                try:
                    result = original(*args, **kwargs)
                except Exception as exc:
                    record(started, span_id, parent, kwargs, None, f"{type(exc).__name__}: {exc}")
                    raise
            if inspect.isawaitable(result):
                return complete(result, started, span_id, parent, kwargs)
            record(started, span_id, parent, kwargs, result, None)
            return result

        completions.create = create
        logger.info("Installed openai chat.completions instrumentation")

        def uninstall() -> None:
            completions.create = original

        return uninstall


def wrap_openai_client(client: Any, collector: Collector) -> Any:
    """Instrument ``client`` in place and return it."""
    collector.register_provider(OpenAIChatProvider(client))
    collector.install_providers()
    return client
