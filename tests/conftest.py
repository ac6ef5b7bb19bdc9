"""Shared fixtures for aiobs tests."""

from __future__ import annotations

import os

import httpx
import pytest

from aiobs.collector import Collector
from aiobs.config import CollectorSettings
from aiobs.context import set_current_span_id
from aiobs.decorators import get_observer, set_observer
from aiobs.exporters import CustomExporter
from aiobs.models import ObservabilityExport

from fake_server import FLUSH_URL, SHEPHERD_URL, FakeServiceState, create_fake_service


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No ambient credentials/labels, and a scratch cwd for default export files."""
    for name in list(os.environ):
        if name.startswith("AIOBS_") or name == "LLM_OBS_OUT":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    set_current_span_id(None)


@pytest.fixture
def service_state():
    return FakeServiceState()


@pytest.fixture
def transport(service_state):
    return httpx.ASGITransport(app=create_fake_service(service_state))


@pytest.fixture
def settings():
    return CollectorSettings(shepherd_url=SHEPHERD_URL, flush_server_url=FLUSH_URL)


@pytest.fixture
def collector(settings, transport):
    c = Collector(settings, transport=transport)
    yield c
    c.reset()


@pytest.fixture
async def active_collector(collector):
    await collector.observe("test-session", api_key="aiobs_sk_valid")
    return collector


@pytest.fixture
def bound_collector(collector):
    """``collector`` bound as the target of ``@observe``."""
    previous = get_observer()
    set_observer(collector)
    yield collector
    set_observer(previous)


class Capture:
    def __init__(self) -> None:
        self.payloads: list[ObservabilityExport] = []

    def handler(self, data: ObservabilityExport, options: dict) -> None:
        self.payloads.append(data)

    @property
    def last(self) -> ObservabilityExport:
        return self.payloads[-1]


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def capturing_exporter(capture):
    return CustomExporter(capture.handler, name="capture")
