"""Tests for the OpenAI chat-completions adapter, using a stand-in client."""

from __future__ import annotations

import asyncio
import json

import httpx
import openai
import pytest
from pydantic import BaseModel

from aiobs.context import get_current_span_id
from aiobs.decorators import observe
from aiobs.providers import OpenAIChatProvider, wrap_openai_client


class FakeCompletion(BaseModel):
    id: str = "chatcmpl-1"
    model: str
    content: str


class _AsyncCompletions:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail: Exception | None = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail is not None:
            raise self.fail
        return FakeCompletion(model=kwargs["model"], content="hello")


class _SyncCompletions:
    def create(self, **kwargs):
        return FakeCompletion(model=kwargs["model"], content="sync hello")


class _Chat:
    def __init__(self, completions) -> None:
        self.completions = completions


class FakeOpenAI:
    def __init__(self, completions=None) -> None:
        self.chat = _Chat(completions or _AsyncCompletions())


MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.fixture
async def session(bound_collector):
    await bound_collector.observe("provider", local_only=True)
    return bound_collector


class TestOpenAIChatProvider:
    def test_availability(self):
        assert OpenAIChatProvider(FakeOpenAI()).is_available() is True
        assert OpenAIChatProvider(object()).is_available() is False
        assert OpenAIChatProvider(FakeOpenAI()).name == "openai"

    async def test_records_provider_event(self, session, capturing_exporter, capture):
        client = wrap_openai_client(FakeOpenAI(), session)

        response = await client.chat.completions.create(model="gpt-4o-mini", messages=MESSAGES)
        assert response.content == "hello"

        await session.flush(exporter=capturing_exporter)
        (event,) = capture.last.events
        assert event.event_type == "provider"
        assert event.provider == "openai"
        assert event.api == "chat.completions.create"
        assert event.request == {"model": "gpt-4o-mini", "messages": MESSAGES}
        assert event.response["content"] == "hello"
        assert event.error is None
        assert event.span_id

    async def test_nests_under_observed_function(self, session, capturing_exporter, capture):
        client = wrap_openai_client(FakeOpenAI(), session)

        @observe
        async def answer(question):
            response = await client.chat.completions.create(
                model="gpt-4o-mini", messages=[{"role": "user", "content": question}],
            )
            return response.content

        assert await answer("hi") == "hello"

        await session.flush(exporter=capturing_exporter)
        (fn_event,) = capture.last.function_events
        (provider_event,) = capture.last.events
        assert provider_event.parent_span_id == fn_event.span_id
        (root,) = capture.last.trace_tree
        assert root.event_type == "function"
        assert [c.event_type for c in root.children] == ["provider"]

    async def test_error_is_recorded(self, session, capturing_exporter, capture):
        fake = FakeOpenAI()
        fake.chat.completions.fail = TimeoutError("upstream timeout")
        client = wrap_openai_client(fake, session)

        with pytest.raises(TimeoutError):
            await client.chat.completions.create(model="gpt-4o-mini", messages=MESSAGES)

        await session.flush(exporter=capturing_exporter)
        (event,) = capture.last.events
        assert event.error == "TimeoutError: upstream timeout"
        assert event.response is None

    async def test_sync_client(self, session, capturing_exporter, capture):
        client = wrap_openai_client(FakeOpenAI(_SyncCompletions()), session)

        assert client.chat.completions.create(model="m", messages=MESSAGES).content == "sync hello"

        await session.flush(exporter=capturing_exporter)
        assert capture.last.events[0].response["model"] == "m"

    async def test_registered_provider_installs_at_observe(self, bound_collector):
        fake = FakeOpenAI()
        original = fake.chat.completions.create
        bound_collector.register_provider(OpenAIChatProvider(fake))
        assert fake.chat.completions.create == original

        await bound_collector.observe("run", local_only=True)
        assert fake.chat.completions.create != original

        await fake.chat.completions.create(model="m", messages=MESSAGES)
        assert bound_collector.pending_event_count == 1

    async def test_installed_once_across_sessions(self, bound_collector):
        fake = FakeOpenAI()
        bound_collector.register_provider(OpenAIChatProvider(fake))
        await bound_collector.observe("one", local_only=True)
        await bound_collector.observe("two", local_only=True)

        await fake.chat.completions.create(model="m", messages=MESSAGES)
        assert bound_collector.pending_event_count == 1
        assert len(fake.chat.completions.calls) == 1

    async def test_reset_uninstalls(self, session):
        fake = FakeOpenAI()
        original = fake.chat.completions.create
        wrap_openai_client(fake, session)

        session.reset()

        assert fake.chat.completions.create == original


class FakeOpenAIAPI:
    """Answers ``/chat/completions`` for a real ``AsyncOpenAI`` client."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.spans_seen: list[str | None] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.spans_seen.append(get_current_span_id())
        await asyncio.sleep(0.01)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"message": "upstream failure"}})
        body = json.loads(request.content)
        return httpx.Response(200, json={
            "id": "chatcmpl-123",
            "object": "chat.completion",
            "created": 1700000000,
            "model": body["model"],
            "choices": [{
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": "hello from openai"},
            }],
            "usage": {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7},
        })


@pytest.fixture
def openai_api():
    return FakeOpenAIAPI()


@pytest.fixture
def openai_provider(openai_api):
    return OpenAIChatProvider.create(
        api_key="sk-test",
        base_url="https://openai.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(openai_api)),
        max_retries=0,
    )


class TestAsyncOpenAIClient:
    async def test_create_builds_async_client(self, openai_provider):
        assert isinstance(openai_provider.client, openai.AsyncOpenAI)
        assert openai_provider.is_available() is True

    async def test_records_awaited_response(self, session, openai_provider, openai_api,
                                            capturing_exporter, capture):
        session.register_provider(openai_provider)
        session.install_providers()

        response = await openai_provider.client.chat.completions.create(
            model="gpt-4o-mini", messages=MESSAGES,
        )
        assert response.choices[0].message.content == "hello from openai"

        await session.flush(exporter=capturing_exporter)
        (event,) = capture.last.events
        assert isinstance(event.response, dict)
        assert event.response["choices"][0]["message"]["content"] == "hello from openai"
        assert event.error is None
        assert event.duration_ms >= 5
        assert openai_api.spans_seen == [event.span_id]

    async def test_nests_under_observed_function(self, session, openai_provider,
                                                 capturing_exporter, capture):
        client = wrap_openai_client(openai_provider.client, session)

        @observe
        async def answer():
            response = await client.chat.completions.create(model="gpt-4o-mini", messages=MESSAGES)
            return response.choices[0].message.content

        assert await answer() == "hello from openai"

        await session.flush(exporter=capturing_exporter)
        (fn_event,) = capture.last.function_events
        (provider_event,) = capture.last.events
        assert provider_event.parent_span_id == fn_event.span_id

    async def test_api_error_is_recorded(self, session, openai_provider, openai_api,
                                         capturing_exporter, capture):
        openai_api.status_code = 500
        client = wrap_openai_client(openai_provider.client, session)

        with pytest.raises(openai.InternalServerError):
            await client.chat.completions.create(model="gpt-4o-mini", messages=MESSAGES)

        await session.flush(exporter=capturing_exporter)
        (event,) = capture.last.events
        assert event.error.startswith("InternalServerError: ")
        assert event.response is None
