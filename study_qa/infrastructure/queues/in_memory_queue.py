"""In-process work queue with at-least-once semantics (dev and tests)."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

from study_qa.application.ports.work_queue_port import WorkQueuePort
from study_qa.domain.errors import DomainError, WorkQueueError
from study_qa.domain.types import Result


class InMemoryWorkQueue(WorkQueuePort):
    """Per-topic FIFO. Dequeued tasks stay pending until acked."""

    def __init__(self) -> None:
        self._ready: dict[str, list[tuple[str, dict[str, Any]]]] = {}
        self._pending: dict[str, dict[str, dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._cond = asyncio.Condition()

    async def enqueue(self, topic: str, payload: dict[str, Any]) -> Result[str, DomainError]:
        task_id = f"{next(self._ids)}-0"
        async with self._cond:
            self._ready.setdefault(topic, []).append((task_id, dict(payload)))
            self._cond.notify_all()
        return Result.success(task_id)

    async def dequeue_batch(
        self, topic: str, max_n: int, block_ms: int = 0
    ) -> Result[list[dict[str, Any]], DomainError]:
        if max_n <= 0:
            return Result.failure(WorkQueueError("max_n must be > 0"))
        async with self._cond:
            if block_ms > 0 and not self._ready.get(topic):
                try:
                    await asyncio.wait_for(
                        self._cond.wait_for(lambda: bool(self._ready.get(topic))),
                        timeout=block_ms / 1000,
                    )
                except TimeoutError:
                    return Result.success([])
            queue = self._ready.get(topic, [])
            taken, self._ready[topic] = queue[:max_n], queue[max_n:]
            pending = self._pending.setdefault(topic, {})
            for task_id, payload in taken:
                pending[task_id] = payload
        return Result.success([{"ack_id": tid, "payload": p} for tid, p in taken])

    async def ack(self, topic: str, ack_ids: list[str]) -> Result[None, DomainError]:
        pending = self._pending.get(topic, {})
        for task_id in ack_ids:
            pending.pop(task_id, None)
        return Result.success(None)

    def pending_count(self, topic: str) -> int:
        return len(self._pending.get(topic, {}))

    def ready_count(self, topic: str) -> int:
        return len(self._ready.get(topic, []))
