"""Tests for CustomExporter, CompositeExporter and JSONLExporter."""

from __future__ import annotations

import json

import pytest

from aiobs.errors import ExportHandlerFailed
from aiobs.exporters import CompositeExporter, CustomExporter, JSONLExporter
from aiobs.models import ExportResult, FunctionEvent, ObservabilityExport, ProviderEvent


@pytest.fixture
def payload():
    return ObservabilityExport(
        events=[
            ProviderEvent(
                provider="openai", api="chat.completions.create",
                started_at=2.0, ended_at=3.0, duration_ms=None,
                span_id="p1", parent_span_id="f1", session_id="s1",
            ),
        ],
        function_events=[
            FunctionEvent(
                api="plan", name="plan",
                started_at=1.0, ended_at=4.0, duration_ms=None,
                span_id="f1", session_id="s1",
            ),
            FunctionEvent(
                api="other", name="other",
                started_at=5.0, ended_at=6.0, duration_ms=None,
                span_id="f2", session_id="s2",
            ),
        ],
    )


class TestCustomExporter:
    async def test_sync_handler_returning_none(self, payload):
        seen = []
        exporter = CustomExporter(lambda data, options: seen.append((data, options)), name="mine")

        result = await exporter.export(payload, {"x": 1})

        assert result.success is True
        assert result.metadata == {"handler": "mine"}
        assert seen == [(payload, {"x": 1})]

    async def test_async_handler_and_option_merge(self, payload):
        async def handler(data, options):
            return ExportResult(success=True, destination=options["bucket"], metadata=dict(options))

        exporter = CustomExporter(handler, default_options={"bucket": "default", "region": "eu"})
        result = await exporter.export(payload, {"bucket": "override"})

        assert result.destination == "override"
        assert result.metadata == {"bucket": "override", "region": "eu"}

    async def test_handler_error_is_wrapped(self, payload):
        def handler(data, options):
            raise ConnectionError("bucket unreachable")

        with pytest.raises(ExportHandlerFailed, match="bucket unreachable") as info:
            await CustomExporter(handler).export(payload)
        assert isinstance(info.value.cause, ConnectionError)
        assert info.value.__cause__ is info.value.cause

    async def test_wrong_return_type(self, payload):
        with pytest.raises(ExportHandlerFailed, match="expected ExportResult"):
            await CustomExporter(lambda data, options: {"success": True}).export(payload)

    async def test_rejects_non_payload(self):
        with pytest.raises(TypeError):
            await CustomExporter(lambda data, options: None).export({"events": []})  # type: ignore[arg-type]

    def test_handler_must_be_callable(self):
        with pytest.raises(TypeError):
            CustomExporter("not callable")  # type: ignore[arg-type]


class TestCompositeExporter:
    async def test_runs_all_in_order(self, payload):
        order = []
        composite = CompositeExporter([
            CustomExporter(lambda d, o: order.append("a"), name="a"),
        ]).add(CustomExporter(lambda d, o: order.append("b"), name="b"))

        result = await composite.export(payload)

        assert order == ["a", "b"]
        assert [e.name for e in composite.exporters] == ["a", "b"]
        assert result.success is True
        assert result.error is None
        assert result.metadata["exporters_count"] == 2
        assert [r["exporter"] for r in result.metadata["results"]] == ["a", "b"]

    async def test_collects_failures(self, payload):
        def boom(data, options):
            raise RuntimeError("down")

        composite = CompositeExporter([
            CustomExporter(boom, name="bad"),
            CustomExporter(lambda d, o: ExportResult(success=False, error="partial"), name="soft"),
            CustomExporter(lambda d, o: None, name="good"),
        ])
        result = await composite.export(payload)

        assert result.success is False
        assert result.error.startswith("bad: ")
        assert result.error.endswith("; soft: partial")
        assert [r["success"] for r in result.metadata["results"]] == [False, False, True]

    async def test_stop_on_error(self, payload):
        ran = []

        def boom(data, options):
            raise RuntimeError("down")

        composite = CompositeExporter(
            [CustomExporter(boom), CustomExporter(lambda d, o: ran.append(1))],
            stop_on_error=True,
        )
        with pytest.raises(ExportHandlerFailed):
            await composite.export(payload)
        assert ran == []

    def test_requires_exporters(self):
        with pytest.raises(ValueError):
            CompositeExporter([])


class TestJSONLExporter:
    async def test_writes_one_file_per_session(self, payload, tmp_path):
        exporter = JSONLExporter(str(tmp_path / "traces"))
        result = await exporter.export(payload)

        s1 = (tmp_path / "traces" / "s1.jsonl").read_text().splitlines()
        s2 = (tmp_path / "traces" / "s2.jsonl").read_text().splitlines()
        assert [json.loads(line)["span_id"] for line in s1] == ["f1", "p1"]
        assert json.loads(s2[0])["event"] == "function"
        assert result.success is True
        assert result.metadata["events"] == 3
        assert result.bytes_written == sum(len(line) + 1 for line in s1 + s2)

    async def test_empty_payload(self, tmp_path):
        exporter = JSONLExporter(str(tmp_path / "traces"))
        result = await exporter.export(ObservabilityExport())

        assert result.bytes_written == 0
        assert result.metadata == {"files": []}
        assert not (tmp_path / "traces").exists()
