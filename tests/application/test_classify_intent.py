"""Tests for IntentClassifier (routing between corpus and general knowledge)."""

import asyncio
from collections.abc import Sequence

import pytest

from study_qa.application.dto.qa_dto import ClassifierParams
from study_qa.application.ports.llm_port import ChatMessage, LLMResponse
from study_qa.application.use_cases.classify_intent import IntentClassifier, parse_decision
from study_qa.domain.errors import LLMError, MalformedModelOutput
from study_qa.domain.models import AvailableContext, DocumentSummary, VectorStatus


class FakeLLM:
    """Fake LLM adapter returning canned classifier replies."""

    def __init__(self, reply: str = "", error: Exception | None = None, delay: float = 0.0) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.1,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append(
            {"messages": list(messages), "temperature": temperature, "json_mode": json_mode}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.reply)

    def stream_chat(self, messages, temperature=0.0, max_tokens=512):  # pragma: no cover
        raise AssertionError("classifier must not stream")


def biology_context() -> AvailableContext:
    return AvailableContext(
        documents=(
            DocumentSummary(
                "bio-1",
                "biology.md",
                short_summary="Biology notes on cellular respiration and photosynthesis",
                vector_status=VectorStatus.COMPLETED,
            ),
        )
    )


def classify(llm: FakeLLM, question: str, ctx: AvailableContext, **params):
    clf = IntentClassifier(llm, ClassifierParams(**params))
    return asyncio.run(clf.classify(question, ctx))


class TestParseDecision:
    def test_direct_json(self):
        d = parse_decision('{"use_documents": true, "reasoning": "asks about the notes"}')
        assert d.use_corpus is True
        assert d.reasoning == "asks about the notes"
        assert d.fallback is False

    def test_fenced_json_with_string_bool(self):
        d = parse_decision('```json\n{"use_documents": "false", "reasoning": "trivia"}\n```')
        assert d.use_corpus is False

    def test_list_takes_first_object(self):
        d = parse_decision('[{"use_documents": true}]')
        assert d.use_corpus is True
        assert d.reasoning == "Classification completed"

    @pytest.mark.parametrize(
        "raw",
        [
            "absolutely not json",
            '{"reasoning": "forgot the flag"}',
            '{"use_documents": "maybe"}',
            "[1, 2, 3]",
            '"just a string"',
        ],
    )
    def test_unusable_output_raises(self, raw):
        with pytest.raises(MalformedModelOutput):
            parse_decision(raw)


def test_routes_to_corpus_on_model_verdict():
    llm = FakeLLM('Sure: {"use_documents": true, "reasoning": "about photosynthesis"}')
    d = classify(llm, "What does this document say about photosynthesis?", biology_context())
    assert d.use_corpus is True
    assert len(llm.calls) == 1
    assert llm.calls[0]["json_mode"] is True
    assert llm.calls[0]["temperature"] == 0.1
    assert "Biology notes on cellular respiration" in llm.calls[0]["messages"][1].content


@pytest.mark.parametrize("garbage", ["", "I'd rather not say.", "{{{", "```\nnope\n```"])
def test_garbage_output_falls_back_to_general_knowledge(garbage):
    d = classify(FakeLLM(garbage), "Anything?", biology_context())
    assert d.use_corpus is False
    assert d.fallback is True


@pytest.mark.parametrize("raw", ["[" * 3000, "[" * 3000 + "]" * 3000])
def test_deeply_nested_output_falls_back(raw):
    d = classify(FakeLLM(raw), "Anything?", biology_context())
    assert d.use_corpus is False
    assert d.fallback is True


def test_llm_error_falls_back():
    d = classify(FakeLLM(error=LLMError("503")), "Anything?", biology_context())
    assert d.use_corpus is False
    assert d.fallback is True
    assert "unavailable" in d.reasoning


def test_timeout_falls_back():
    llm = FakeLLM('{"use_documents": true}', delay=1.0)
    d = classify(llm, "Anything?", biology_context(), timeout_s=0.01)
    assert d.use_corpus is False
    assert d.fallback is True
    assert "timed out" in d.reasoning


def test_no_documents_and_no_inline_content_skips_the_model():
    llm = FakeLLM('{"use_documents": true}')
    d = classify(llm, "What is in my notes?", AvailableContext(documents=()))
    assert d.use_corpus is False
    assert d.fallback is False
    assert llm.calls == []


def test_inline_content_alone_still_asks_the_model():
    llm = FakeLLM('{"use_documents": true, "reasoning": "summarize my note"}')
    d = classify(llm, "Summarize my notes", AvailableContext(documents=(), has_inline_content=True))
    assert d.use_corpus is True
    assert len(llm.calls) == 1
    assert "Note has content: Yes" in llm.calls[0]["messages"][1].content


def test_request_decision_raises_instead_of_falling_back():
    clf = IntentClassifier(FakeLLM("garbage"))
    with pytest.raises(MalformedModelOutput):
        asyncio.run(clf.request_decision("q", biology_context()))
