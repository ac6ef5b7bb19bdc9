"""``@observe`` — record instrumented function calls as ``FunctionEvent``s."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, TypeVar, overload

from aiobs.context import get_current_span_id, new_span_id, span_scope
from aiobs.models import Callsite, FunctionEvent

if TYPE_CHECKING:
    from aiobs.collector import Collector

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__)) + os.sep
_MAX_REPR = 500
_MAX_DEPTH = 3

_observer: Collector | None = None


def set_observer(collector: Collector | None) -> None:
    """Bind the collector that ``@observe`` records into."""
    global _observer
    _observer = collector


def get_observer() -> Collector | None:
    return _observer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _callsite() -> Callsite | None:
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = os.path.abspath(frame.f_code.co_filename)
            if not filename.startswith(_PACKAGE_DIR):
                return Callsite(file=filename, line=frame.f_lineno, function=frame.f_code.co_name)
            frame = frame.f_back
        return None
    finally:
        del frame


def safe_repr(obj: Any, depth: int = 0) -> Any:
    """JSON-friendly, size-bounded copy of ``obj`` for event payloads."""
    if depth > _MAX_DEPTH:
        return "<nested>"
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return obj if len(obj) <= _MAX_REPR else obj[:_MAX_REPR] + "..."
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [safe_repr(item, depth + 1) for item in list(obj)[:10]]
    if isinstance(obj, dict):
        return {str(k)[:100]: safe_repr(v, depth + 1) for k, v in list(obj.items())[:20]}
    if callable(obj):
        return f"<function {getattr(obj, '__name__', 'anonymous')}>"
    try:
        text = repr(obj)
    except Exception:
        return f"<{type(obj).__name__}>"
    return text if len(text) <= _MAX_REPR else text[:_MAX_REPR] + "..."


# ---------------------------------------------------------------------------
# Decorator
# ---------------------------------------------------------------------------

@overload
def observe(func: F) -> F: ...


@overload
def observe(
    func: None = None,
    *,
    name: str | None = None,
    capture_args: bool = True,
    capture_result: bool = True,
    enh_prompt: bool = False,
    auto_enhance_after: int | None = None,
) -> Callable[[F], F]: ...


def observe(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    capture_args: bool = True,
    capture_result: bool = True,
    enh_prompt: bool = False,
    auto_enhance_after: int | None = None,
) -> Any:
    """Trace a sync or async function. Usable bare (``@observe``) or with options.

    The call runs inside a span scope, so nested ``@observe`` functions and
    provider calls link to it as their parent.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or fn.__name__
        module = getattr(fn, "__module__", None)

        def start(args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
            return {
                "span_id": new_span_id(),
                "parent_span_id": get_current_span_id(),
                "callsite": _callsite(),
                "args": [safe_repr(a) for a in args] if capture_args else None,
                "kwargs": {k: safe_repr(v) for k, v in kwargs.items()} if capture_args else None,
                "started_at": time.time(),
            }

        def finish(collector: Collector, call: dict[str, Any], result: Any, error: str | None) -> None:
            try:
                event = FunctionEvent(
                    api=span_name,
                    name=span_name,
                    module=module,
                    result=safe_repr(result) if capture_result and error is None else None,
                    error=error,
                    ended_at=max(time.time(), call["started_at"]),
                    duration_ms=None,
                    enh_prompt=enh_prompt,
                    enh_prompt_id=str(uuid.uuid4()) if enh_prompt else None,
                    auto_enhance_after=auto_enhance_after,
                    **call,
                )
                collector.record_event(event)
            except Exception:
                logger.warning("Failed to record function event for %s", span_name, exc_info=True)

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            collector = _observer
            if collector is None:
                return await fn(*args, **kwargs)
            call = start(args, kwargs)
            result: Any = None
            error: str | None = None
            with span_scope(call["span_id"]):
                try:
                    result = await fn(*args, **kwargs)
                    return result
                except BaseException as exc:
                    error = f"{type(exc).__name__}: {exc}"
                    raise
                finally:
                    finish(collector, call, result, error)

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            collector = _observer
            if collector is None:
                return fn(*args, **kwargs)
            call = start(args, kwargs)
            result: Any = None
            error: str | None = None
            with span_scope(call["span_id"]):
                try:
                    result = fn(*args, **kwargs)
                    return result
                except BaseException as exc:
                    error = f"{type(exc).__name__}: {exc}"
                    raise
                finally:
                    finish(collector, call, result, error)

        return async_wrapper if inspect.iscoroutinefunction(fn) else sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator
