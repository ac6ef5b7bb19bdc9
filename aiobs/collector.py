"""Collector — owns sessions, events, the active-session pointer and the credential."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable

import httpx

from aiobs import context
from aiobs.config import CollectorSettings, configure_logging
from aiobs.errors import (
    ExportHandlerFailed,
    InvalidApiKey,
    MissingCredential,
    NoActiveSession,
    ReservedLabelKey,
    TooManyLabels,
)
from aiobs.export import TraceTransmitter, build_export, resolve_output_path, write_export
from aiobs.exporters.base import BaseExporter
from aiobs.labels import (
    LABEL_MAX_COUNT,
    LABEL_RESERVED_PREFIX,
    check_label_cap,
    environment_labels,
    is_reserved,
    merge_labels,
    system_labels,
    user_label_count,
    validate_key,
    validate_labels,
    validate_value,
)
from aiobs.models import AnyEvent, ExportResult, ObservabilityExport, Session
from aiobs.providers.base import BaseProvider
from aiobs.store import InMemorySessionStore
from aiobs.usage import UsageClient

logger = logging.getLogger(__name__)


class Collector:
    """Public API::

        session_id = await collector.observe("my-run", api_key="...")
        ...  # instrumented calls record events
        collector.end()
        await collector.flush()
    """

    def __init__(
        self,
        settings: CollectorSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Without explicit settings the environment is read at each observe()/flush().
        self._settings = settings
        self._transport = transport
        self._store = InMemorySessionStore()
        self._active_session: str | None = None
        self._api_key: str | None = None
        self._providers: list[BaseProvider] = []
        self._uninstallers: dict[int, Callable[[], None]] = {}

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def settings(self) -> CollectorSettings:
        return self._settings or CollectorSettings.from_env()

    @property
    def active_session_id(self) -> str | None:
        return self._active_session

    @property
    def pending_event_count(self) -> int:
        return self._store.event_count()

    def _usage_client(self, settings: CollectorSettings) -> UsageClient:
        return UsageClient(settings.shepherd_url, timeout=settings.quota_timeout, transport=self._transport)

    def _transmitter(self, settings: CollectorSettings) -> TraceTransmitter:
        return TraceTransmitter(settings.flush_server_url, timeout=settings.traces_timeout, transport=self._transport)

    def register_provider(self, provider: BaseProvider) -> None:
        self._providers.append(provider)
        logger.info("Registered provider %s", provider.name)

    def install_providers(self) -> None:
        """Install every registered provider that is not installed yet."""
        for provider in self._providers:
            if id(provider) in self._uninstallers or not provider.is_available():
                continue
            uninstall = provider.install(self)
            if uninstall is not None:
                self._uninstallers[id(provider)] = uninstall

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def observe(
        self,
        session_name: str | None = None,
        *,
        api_key: str | None = None,
        labels: Mapping[str, str] | None = None,
        local_only: bool = False,
    ) -> str:
        """Start a new session and make it active. Returns the session id.

        Labels and the credential are checked before anything is registered,
        so a failure leaves the collector untouched.
        """
        settings = self.settings
        configure_logging(settings.debug)

        if labels:
            validate_labels(labels)
        merged = merge_labels(system_labels(), environment_labels(), labels)
        check_label_cap(merged)

        key: str | None = None
        if not local_only:
            key = api_key or settings.api_key
            if not key:
                raise MissingCredential()
            await self._usage_client(settings).validate(key)

        if self._active_session is not None:
            logger.debug("Replacing active session %s without ending it", self._active_session)

        session_id = str(uuid.uuid4())
        self._store.add(Session(
            id=session_id,
            name=session_name or session_id,
            labels=merged or None,
        ))
        self._active_session = session_id
        # A local-only session must not drop the credential of sessions still queued.
        if key is not None:
            self._api_key = key
        self.install_providers()
        return session_id

    def end(self) -> None:
        """Close the active session. A no-op when nothing is active."""
        if self._active_session is None:
            return
        session = self._store.get(self._active_session)
        if session is not None:
            session.ended_at = max(time.time(), session.started_at)
        self._active_session = None

    async def flush(
        self,
        path: str | Path | None = None,
        *,
        include_trace_tree: bool = True,
        persist: bool = True,
        exporter: BaseExporter | None = None,
        exporter_options: dict[str, Any] | None = None,
    ) -> str | ExportResult | None:
        """Export everything collected so far, then clear it.

        Returns the exporter's result when ``exporter`` is given, otherwise
        the written file path, or ``None`` when ``persist`` is false.
        Remote trace transmission is best-effort; usage reporting errors
        propagate even though the local file has already been written.
        """
        settings = self.settings
        payload = build_export(
            self._store.sessions(),
            self._store.events(),
            include_trace_tree=include_trace_tree,
        )
        api_key = self._api_key
        result: str | ExportResult | None = None

        try:
            if exporter is not None:
                result = await self._run_exporter(exporter, payload, exporter_options)
            elif persist:
                target = resolve_output_path(
                    path,
                    settings.output_path,
                    self._active_session or self._store.first_session_id(),
                )
                result = str(write_export(payload, target))
        finally:
            try:
                if api_key:
                    await self._ship(api_key, payload, settings)
            finally:
                self._clear()

        return result

    async def _run_exporter(
        self,
        exporter: BaseExporter,
        payload: ObservabilityExport,
        options: dict[str, Any] | None,
    ) -> ExportResult:
        try:
            return await exporter.export(payload, options)
        except ExportHandlerFailed:
            raise
        except Exception as exc:
            raise ExportHandlerFailed(f"Exporter '{exporter.name}' failed: {exc}", exc) from exc

    async def _ship(self, api_key: str, payload: ObservabilityExport, settings: CollectorSettings) -> None:
        """Remote flush (soft, except 401) followed by the usage report (hard)."""
        unauthorized: InvalidApiKey | None = None
        try:
            await self._transmitter(settings).send(api_key, payload)
        except InvalidApiKey as exc:
            unauthorized = exc

        await self._usage_client(settings).report_usage(api_key, payload.trace_count)
        if unauthorized is not None:
            raise unauthorized

    def _clear(self) -> None:
        self._store.clear()
        self._active_session = None
        self._api_key = None

    def reset(self) -> None:
        """Drop all state, the credential and the current span (tests/dev)."""
        for key, uninstall in list(self._uninstallers.items()):
            uninstall()
            del self._uninstallers[key]
        self._providers.clear()
        self._clear()
        context.set_current_span_id(None)

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def _require_active(self) -> Session:
        session = self._store.get(self._active_session) if self._active_session else None
        if session is None:
            raise NoActiveSession()
        return session

    def set_labels(self, labels: Mapping[str, str], merge: bool = True) -> None:
        """Merge ``labels`` in, or replace every user label when ``merge`` is false.

        Reserved (system) labels always survive.
        """
        session = self._require_active()
        validate_labels(labels)

        current = dict(session.labels or {})
        if merge:
            updated = {**current, **labels}
        else:
            updated = {k: v for k, v in current.items() if is_reserved(k)}
            updated.update(labels)

        check_label_cap(updated)
        session.labels = updated or None

    def add_label(self, key: str, value: str) -> None:
        session = self._require_active()
        validate_key(key)
        validate_value(value, key)

        current = dict(session.labels or {})
        if key not in current and user_label_count(current) >= LABEL_MAX_COUNT:
            raise TooManyLabels(f"Cannot add label. Maximum of {LABEL_MAX_COUNT} labels already reached.")
        current[key] = value
        session.labels = current

    def remove_label(self, key: str) -> None:
        session = self._require_active()
        if is_reserved(key):
            raise ReservedLabelKey(f"Cannot remove system label '{key}' (prefix '{LABEL_RESERVED_PREFIX}')")
        if session.labels and key in session.labels:
            current = dict(session.labels)
            del current[key]
            session.labels = current or None

    def get_labels(self) -> dict[str, str]:
        return dict(self._require_active().labels or {})

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def record_event(self, event: AnyEvent) -> bool:
        """Attach ``event`` to the active session; dropped (never raised) without one."""
        session_id = self._active_session
        if session_id is None:
            logger.debug("No active session; dropping %s event %s", event.event_type, event.api)
            return False
        return self._store.append_event(session_id, event)

    def get_current_span_id(self) -> str | None:
        return context.get_current_span_id()

    def set_current_span_id(self, span_id: str | None) -> str | None:
        return context.set_current_span_id(span_id)
