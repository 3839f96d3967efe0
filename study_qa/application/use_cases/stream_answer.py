# study_qa/application/use_cases/stream_answer.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from study_qa.application.dto.qa_dto import GenerationParams
from study_qa.application.ports.llm_port import ChatMessage, LLMPort
from study_qa.domain.errors import GenerationInterrupted
from study_qa.domain.models import (
    Completion,
    Fragment,
    PipelineMode,
    RetrievedContext,
    StreamEvent,
)
from study_qa.domain.services.prompts import (
    EXTERNAL_KNOWLEDGE_SYSTEM_PROMPT,
    RAG_SYSTEM_PROMPT,
    build_external_prompt,
    build_rag_prompt,
)

logger = logging.getLogger(__name__)


class AnswerStreamer:
    """
    Drives one streaming generation call and re-emits it as an ordered
    sequence of ``Fragment`` events closed by exactly one ``Completion``.

    Fragments are forwarded as they arrive and never retracted. A backend
    failure ends the sequence with ``Completion(success=False)`` carrying the
    partial answer; it is not retried, since the caller already holds the
    partial output.
    """

    def __init__(self, llm: LLMPort, params: GenerationParams | None = None) -> None:
        self.llm = llm
        self.params = params or GenerationParams()

    def build_messages(
        self,
        question: str,
        mode: PipelineMode,
        context: RetrievedContext | None = None,
    ) -> list[ChatMessage]:
        if mode is PipelineMode.RAG:
            ctx = context if context is not None else RetrievedContext.empty()
            return [
                ChatMessage(role="system", content=RAG_SYSTEM_PROMPT),
                ChatMessage(role="user", content=build_rag_prompt(question, ctx)),
            ]
        return [
            ChatMessage(role="system", content=EXTERNAL_KNOWLEDGE_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_external_prompt(question)),
        ]

    def _next_wait(self, deadline: float | None) -> float | None:
        idle = self.params.idle_timeout_s
        if deadline is None:
            return idle
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TimeoutError("generation deadline exceeded")
        return remaining if idle is None else min(idle, remaining)

    async def stream(
        self,
        question: str,
        mode: PipelineMode,
        context: RetrievedContext | None = None,
    ) -> AsyncIterator[StreamEvent]:
        messages = self.build_messages(question, mode, context)
        parts: list[str] = []
        deadline = (
            asyncio.get_running_loop().time() + self.params.timeout_s
            if self.params.timeout_s is not None
            else None
        )

        backend = self.llm.stream_chat(
            messages,
            temperature=self.params.temperature,
            max_tokens=self.params.max_tokens,
        )
        try:
            while True:
                try:
                    delta = await asyncio.wait_for(anext(backend), timeout=self._next_wait(deadline))
                except StopAsyncIteration:
                    break
                if not delta:
                    continue
                parts.append(delta)
                yield Fragment(delta)
        except Exception as ex:  # noqa: BLE001
            partial = "".join(parts)
            reason = "timed out" if isinstance(ex, TimeoutError) else str(ex)
            err = GenerationInterrupted(f"generation interrupted: {reason}", partial_answer=partial)
            logger.error(
                "%s generation failed after %d chars: %s", mode.value, len(partial), reason
            )
            yield Completion(full_answer=partial, pipeline_used=mode, success=False, error=str(err))
            return
        finally:
            aclose = getattr(backend, "aclose", None)
            if aclose is not None:
                await aclose()

        answer = "".join(parts)
        logger.info("%s generation completed (%d chars)", mode.value, len(answer))
        yield Completion(full_answer=answer, pipeline_used=mode, success=True)
