# study_qa/application/use_cases/answer_question.py
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable
from enum import Enum
from typing import TypeVar

from study_qa.application.ports.document_store_port import DocumentScope, DocumentStorePort
from study_qa.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from study_qa.application.use_cases.classify_intent import IntentClassifier
from study_qa.application.use_cases.retrieve_context import ContextRetriever
from study_qa.application.use_cases.stream_answer import AnswerStreamer
from study_qa.domain.errors import DocumentNotFound, RetrievalUnavailable
from study_qa.domain.models import (
    AvailableContext,
    Completion,
    Fragment,
    PipelineMode,
    Question,
    RetrievedContext,
    SearchFilter,
    StreamEvent,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionState(str, Enum):
    RECEIVED = "received"
    CLASSIFYING = "classifying"
    RETRIEVING_CONTEXT = "retrieving_context"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}


class _SessionCancelled(Exception):
    """Raised inside ``run`` when ``cancel()`` aborted the in-flight call."""


async def _next_event(stream: AsyncIterator[StreamEvent]) -> StreamEvent:
    return await anext(stream)


class SessionController:
    """
    Owns one question end to end:

    RECEIVED -> CLASSIFYING -> [RETRIEVING_CONTEXT] -> GENERATING -> COMPLETED | FAILED

    Classification and retrieval failures degrade (general knowledge, empty
    context); generation failure, or any unexpected error, is delivered as a
    failed terminal event. ``cancel()`` or closing the iterator returned by
    ``run`` aborts whichever remote call is in flight, after which nothing
    more is yielded.

    One instance serves exactly one question.
    """

    def __init__(
        self,
        documents: DocumentStorePort,
        classifier: IntentClassifier,
        retriever: ContextRetriever,
        streamer: AnswerStreamer,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.documents = documents
        self.classifier = classifier
        self.retriever = retriever
        self.streamer = streamer
        self.telemetry = telemetry or NullTelemetry()
        self.state = SessionState.RECEIVED
        self.history: list[SessionState] = [SessionState.RECEIVED]
        self._started = False
        self._cancelled = False
        self._inflight: asyncio.Future | None = None

    # ===== State =====

    def _enter(self, state: SessionState) -> None:
        logger.debug("session %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Abort the session from outside (e.g. the caller went away)."""
        if self.state in _TERMINAL:
            return
        self._cancelled = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

    # ===== Remote-call wrapper =====

    async def _call(self, aw: Awaitable[T]) -> T:
        """Await one remote call as a child task so ``cancel()`` can abort just it."""
        if self._cancelled:
            raise _SessionCancelled()
        task = asyncio.ensure_future(aw)
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cancelled and (current is None or not current.cancelling()):
                raise _SessionCancelled() from None
            raise
        finally:
            self._inflight = None

    # ===== Stages =====

    async def _load_context(self, question: Question) -> tuple[AvailableContext, DocumentScope | None]:
        try:
            scope = await self._call(
                self.documents.list_scope(question.source_document_id, question.user_id)
            )
        except DocumentNotFound as ex:
            logger.warning("no readable scope for question: %s", ex)
            return AvailableContext(documents=()), None
        available = AvailableContext(
            documents=scope.documents,
            has_inline_content=scope.primary.has_inline_content,
        )
        return available, scope

    async def _retrieve(self, question: Question, scope: DocumentScope | None) -> RetrievedContext:
        flt = SearchFilter(
            owner_id=question.user_id,
            document_ids=scope.document_ids if scope is not None else None,
        )
        try:
            context = await self._call(self.retriever.retrieve(question.text, flt))
        except RetrievalUnavailable as ex:
            logger.warning("retrieval unavailable, answering with empty context: %s", ex)
            self.telemetry.incr("qa.retrieval.degraded")
            return RetrievedContext.empty()
        self.telemetry.observe("qa.retrieval.passages", float(len(context)))
        return context

    # ===== Entry point =====

    async def run(self, question: Question) -> AsyncIterator[StreamEvent]:
        if self._started:
            raise RuntimeError("a SessionController handles exactly one question")
        self._started = True
        started_at = time.perf_counter()
        mode = PipelineMode.EXTERNAL
        stream: AsyncIterator[StreamEvent] | None = None
        delivered: list[str] = []

        try:
            self._enter(SessionState.CLASSIFYING)
            available, scope = await self._load_context(question)
            decision = await self._call(self.classifier.classify(question.text, available))
            if decision.fallback:
                self.telemetry.incr("qa.classification.fallback")

            context: RetrievedContext | None = None
            if decision.use_corpus:
                mode = PipelineMode.RAG
                self._enter(SessionState.RETRIEVING_CONTEXT)
                context = await self._retrieve(question, scope)

            self._enter(SessionState.GENERATING)
            logger.info("answering with %s pipeline", mode.value)
            stream = self.streamer.stream(question.text, mode, context)
            while True:
                try:
                    event = await self._call(_next_event(stream))
                except StopAsyncIteration:
                    break
                if isinstance(event, Fragment):
                    delivered.append(event.text)
                if isinstance(event, Completion):
                    self._enter(SessionState.COMPLETED if event.success else SessionState.FAILED)
                    self._record(event, started_at)
                yield event
                if self._cancelled:
                    raise _SessionCancelled()
        except _SessionCancelled:
            self._mark_cancelled(mode)
        except asyncio.CancelledError:
            # the task consuming this session was cancelled
            if self.state not in _TERMINAL:
                self._cancelled = True
                self._mark_cancelled(mode)
            raise
        except GeneratorExit:
            # consumer closed the iterator (e.g. client disconnected)
            if self.state not in _TERMINAL:
                self._cancelled = True
                self._mark_cancelled(mode)
            raise
        except Exception as ex:
            if self.state in _TERMINAL:
                logger.exception("session error after its terminal event")
                return
            logger.error("session failed while %s", self.state.value, exc_info=True)
            self._enter(SessionState.FAILED)
            failed = Completion(
                full_answer="".join(delivered),
                pipeline_used=mode,
                success=False,
                error=f"internal error: {type(ex).__name__}",
            )
            self._record(failed, started_at)
            yield failed
        finally:
            if stream is not None:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

    def _mark_cancelled(self, mode: PipelineMode) -> None:
        self._enter(SessionState.CANCELLED)
        logger.info("session cancelled during %s pipeline", mode.value)
        self.telemetry.incr("qa.sessions.total", {"pipeline": mode.value, "status": "cancelled"})

    def _record(self, event: Completion, started_at: float) -> None:
        status = "success" if event.success else "failed"
        self.telemetry.incr(
            "qa.sessions.total", {"pipeline": event.pipeline_used.value, "status": status}
        )
        self.telemetry.observe("qa.answer.chars", float(len(event.full_answer)))
        self.telemetry.observe(
            "qa.session.latency_ms", (time.perf_counter() - started_at) * 1000.0
        )
        if not event.success:
            logger.error("answer stream failed: %s", event.error)
