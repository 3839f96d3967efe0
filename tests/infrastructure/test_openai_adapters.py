"""OpenAI chat and embedding adapters against a fake ``openai`` module."""

import asyncio
import sys
import types

import pytest

from study_qa.application.ports.llm_port import ChatMessage
from study_qa.domain.errors import EmbeddingError, LLMError
from study_qa.infrastructure.embeddings.openai_embedding_adapter import OpenAIEmbeddingAdapter
from study_qa.infrastructure.llm.openai_chat_adapter import OpenAIChatAdapter

MESSAGES = [ChatMessage("system", "Be brief."), ChatMessage("user", "Capital of France?")]


def _chunk(content):
    delta = types.SimpleNamespace(content=content)
    return types.SimpleNamespace(choices=[types.SimpleNamespace(delta=delta)])


class FakeStream:
    def __init__(self, events, error: Exception | None = None):
        self.events = list(events)
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for e in self.events:
            yield e
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, owner):
        self.owner = owner

    async def create(self, **kwargs):
        self.owner.requests.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        if kwargs.get("stream"):
            return self.owner.stream
        message = types.SimpleNamespace(content=self.owner.reply)
        return types.SimpleNamespace(
            choices=[types.SimpleNamespace(message=message, finish_reason="stop")],
            usage=types.SimpleNamespace(total_tokens=42),
        )


class FakeEmbeddings:
    def __init__(self, owner):
        self.owner = owner

    async def create(self, model, input):
        self.owner.requests.append({"model": model, "input": input})
        if self.owner.error is not None:
            raise self.owner.error
        # deliberately out of order
        data = [
            types.SimpleNamespace(index=i, embedding=[float(i), 1.0])
            for i in range(len(input))
        ]
        return types.SimpleNamespace(data=list(reversed(data)))


class FakeAsyncOpenAI:
    instances: list["FakeAsyncOpenAI"] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.requests: list[dict] = []
        self.error: Exception | None = None
        self.reply = '{"use_documents": true}'
        self.stream = FakeStream([_chunk("Paris"), _chunk(None), _chunk(" is the capital.")])
        self.chat = types.SimpleNamespace(completions=FakeCompletions(self))
        self.embeddings = FakeEmbeddings(self)
        FakeAsyncOpenAI.instances.append(self)


@pytest.fixture
def fake_openai(monkeypatch):
    FakeAsyncOpenAI.instances = []
    module = types.ModuleType("openai")
    module.AsyncOpenAI = FakeAsyncOpenAI
    monkeypatch.setitem(sys.modules, "openai", module)
    return FakeAsyncOpenAI


def test_chat_json_mode_sets_response_format(fake_openai):
    adapter = OpenAIChatAdapter(api_key="sk-test", model="gpt-4o-mini", base_url="http://vllm:8000/v1")
    resp = asyncio.run(adapter.chat(MESSAGES, temperature=0.1, max_tokens=200, json_mode=True))

    client = fake_openai.instances[0]
    assert client.kwargs["base_url"] == "http://vllm:8000/v1"
    req = client.requests[0]
    assert req["response_format"] == {"type": "json_object"}
    assert req["messages"][1] == {"role": "user", "content": "Capital of France?"}
    assert req["max_tokens"] == 200
    assert resp.text == '{"use_documents": true}'
    assert resp.usage_tokens == 42


def test_chat_without_json_mode_sends_no_response_format(fake_openai):
    adapter = OpenAIChatAdapter()
    asyncio.run(adapter.chat(MESSAGES))
    assert "response_format" not in fake_openai.instances[0].requests[0]


def test_chat_error_is_mapped(fake_openai):
    adapter = OpenAIChatAdapter()
    adapter._ensure_client().error = RuntimeError("503 Service Unavailable")
    with pytest.raises(LLMError, match="503"):
        asyncio.run(adapter.chat(MESSAGES))


def test_stream_yields_non_empty_deltas_and_closes(fake_openai):
    adapter = OpenAIChatAdapter()

    async def scenario():
        return [d async for d in adapter.stream_chat(MESSAGES)]

    deltas = asyncio.run(scenario())
    client = fake_openai.instances[0]
    assert deltas == ["Paris", " is the capital."]
    assert client.requests[0]["stream"] is True
    assert client.stream.closed


def test_stream_closed_when_consumer_stops_early(fake_openai):
    adapter = OpenAIChatAdapter()

    async def scenario():
        it = adapter.stream_chat(MESSAGES)
        first = await anext(it)
        await it.aclose()
        return first

    assert asyncio.run(scenario()) == "Paris"
    assert fake_openai.instances[0].stream.closed


def test_stream_failure_mid_way_is_mapped(fake_openai):
    adapter = OpenAIChatAdapter()
    client = adapter._ensure_client()
    client.stream = FakeStream([_chunk("Par")], error=ConnectionError("reset by peer"))

    async def scenario():
        got = []
        with pytest.raises(LLMError, match="reset by peer"):
            async for d in adapter.stream_chat(MESSAGES):
                got.append(d)
        return got

    assert asyncio.run(scenario()) == ["Par"]
    assert client.stream.closed


def test_stream_open_failure_is_mapped(fake_openai):
    adapter = OpenAIChatAdapter()
    adapter._ensure_client().error = RuntimeError("connection refused")

    async def scenario():
        async for _ in adapter.stream_chat(MESSAGES):
            pass

    with pytest.raises(LLMError, match="could not be opened"):
        asyncio.run(scenario())


def test_embeddings_are_reordered_by_index_and_newlines_flattened(fake_openai):
    adapter = OpenAIEmbeddingAdapter(api_key="sk-test", model="text-embedding-3-small")
    vectors = asyncio.run(adapter.embed_texts(["first\nline", "second", "third"]))

    assert vectors == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]
    assert fake_openai.instances[0].requests[0]["input"][0] == "first line"


def test_embed_query_and_empty_batch(fake_openai):
    adapter = OpenAIEmbeddingAdapter(api_key="sk-test")
    assert asyncio.run(adapter.embed_texts([])) == []
    assert asyncio.run(adapter.embed_query("photosynthesis")) == [0.0, 1.0]


def test_embedding_error_is_mapped(fake_openai):
    adapter = OpenAIEmbeddingAdapter(api_key="sk-test")
    adapter._ensure_client().error = RuntimeError("401 Unauthorized")
    with pytest.raises(EmbeddingError, match="401"):
        asyncio.run(adapter.embed_query("x"))


def test_missing_openai_package_is_mapped(monkeypatch):
    monkeypatch.setitem(sys.modules, "openai", None)
    with pytest.raises(LLMError):
        OpenAIChatAdapter()._ensure_client()
    with pytest.raises(EmbeddingError):
        OpenAIEmbeddingAdapter(api_key="k")._ensure_client()
