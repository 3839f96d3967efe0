"""Background vectorization: enqueue on request, process from the work queue.

The request path only flips the document to PENDING and enqueues; the worker
drains the queue, runs the vectorizer and re-enqueues transient failures with
exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from study_qa.application.dto.vectorize_dto import VectorizeTask
from study_qa.application.ports.document_store_port import DocumentStorePort
from study_qa.application.ports.work_queue_port import WorkQueuePort
from study_qa.application.use_cases.vectorize_document import CorpusVectorizer
from study_qa.domain.errors import DocumentNotFound, DomainError, WorkQueueError
from study_qa.domain.models import VectorStatus
from study_qa.domain.types import Result

logger = logging.getLogger(__name__)

VECTORIZE_TOPIC = "vectorize"


class VectorizationScheduler:
    """Accepts vectorization requests without doing the work inline."""

    def __init__(
        self,
        documents: DocumentStorePort,
        queue: WorkQueuePort,
        topic: str = VECTORIZE_TOPIC,
    ) -> None:
        self.documents = documents
        self.queue = queue
        self.topic = topic

    async def schedule(self, document_id: str) -> Result[str, DomainError]:
        """Mark the document PENDING and enqueue it. Returns the queue task id."""
        try:
            await self.documents.set_vector_status(document_id, VectorStatus.PENDING)
        except DocumentNotFound as ex:
            return Result.failure(ex)
        r = await self.queue.enqueue(self.topic, VectorizeTask(document_id).to_payload())
        if r.ok:
            logger.info("scheduled vectorization of %s (task %s)", document_id, r.value)
        else:
            logger.error("could not enqueue vectorization of %s: %s", document_id, r.error)
        return r


class VectorizationWorker:
    """Consumes vectorization tasks from the work queue.

    A task is acked once it has been handled, whether it succeeded, failed
    permanently, or was handed back to the queue as a new attempt.
    """

    def __init__(
        self,
        queue: WorkQueuePort,
        vectorizer: CorpusVectorizer,
        topic: str = VECTORIZE_TOPIC,
        max_attempts: int = 3,
        backoff_base_s: float = 1.0,
        batch_size: int = 8,
    ) -> None:
        self.queue = queue
        self.vectorizer = vectorizer
        self.topic = topic
        self.max_attempts = max_attempts
        self.backoff_base_s = backoff_base_s
        self.batch_size = batch_size
        self._retries: set[asyncio.Task[Any]] = set()

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_base_s * (2**attempt)

    async def _requeue_later(self, task: VectorizeTask, delay: float) -> None:
        await asyncio.sleep(delay)
        r = await self.queue.enqueue(self.topic, task.to_payload())
        if not r.ok:
            logger.error("retry of %s could not be enqueued: %s", task.document_id, r.error)

    def _schedule_retry(self, task: VectorizeTask) -> None:
        nxt = VectorizeTask(task.document_id, attempt=task.attempt + 1)
        delay = self.backoff_for(task.attempt)
        logger.info(
            "retrying %s in %.1fs (attempt %d/%d)",
            task.document_id,
            delay,
            nxt.attempt + 1,
            self.max_attempts,
        )
        t = asyncio.create_task(self._requeue_later(nxt, delay))
        self._retries.add(t)
        t.add_done_callback(self._retries.discard)

    async def handle(self, task: VectorizeTask) -> Result[int, DomainError]:
        r = await self.vectorizer.vectorize(task.document_id)
        if r.ok:
            return r
        if isinstance(r.error, DocumentNotFound):
            logger.warning("dropping task for missing document %s", task.document_id)
        elif task.attempt + 1 < self.max_attempts:
            self._schedule_retry(task)
        else:
            logger.error(
                "giving up on %s after %d attempt(s): %s",
                task.document_id,
                task.attempt + 1,
                r.error,
            )
        return r

    async def run_once(self, block_ms: int = 0) -> Result[int, DomainError]:
        """Process one batch. Returns the number of tasks handled."""
        r_batch = await self.queue.dequeue_batch(self.topic, self.batch_size, block_ms=block_ms)
        if not r_batch.ok:
            assert r_batch.error is not None
            return Result.failure(r_batch.error)

        items = r_batch.value or []
        handled: list[str] = []
        for item in items:
            try:
                task = VectorizeTask.from_payload(item["payload"])
            except (KeyError, TypeError, ValueError) as ex:
                logger.error("discarding malformed vectorization task %r: %s", item, ex)
            else:
                await self.handle(task)
            handled.append(item["ack_id"])

        if handled:
            r_ack = await self.queue.ack(self.topic, handled)
            if not r_ack.ok:
                assert r_ack.error is not None
                return Result.failure(r_ack.error)
        return Result.success(len(items))

    async def run(self, stop: asyncio.Event, block_ms: int = 1000, idle_sleep_s: float = 1.0) -> None:
        """Loop until ``stop`` is set. Queue errors are logged and retried."""
        logger.info("vectorization worker started on topic %r", self.topic)
        while not stop.is_set():
            r = await self.run_once(block_ms=block_ms)
            if not r.ok:
                logger.error("work queue error: %s", r.error)
                if isinstance(r.error, WorkQueueError):
                    await asyncio.sleep(idle_sleep_s)
        logger.info("vectorization worker stopped")

    async def drain_retries(self) -> None:
        """Wait for pending delayed re-enqueues (shutdown, tests)."""
        if self._retries:
            await asyncio.gather(*list(self._retries))
