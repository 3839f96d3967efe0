"""Work queue port for background vectorization tasks."""

from typing import Any, Protocol

from study_qa.domain.errors import DomainError
from study_qa.domain.types import Result


class WorkQueuePort(Protocol):
    """Port for async work queue operations.

    Dequeued tasks are dicts ``{"ack_id": str, "payload": dict}``.
    """

    async def enqueue(self, topic: str, payload: dict[str, Any]) -> Result[str, DomainError]:
        """Enqueue a task to topic. Returns task ID."""
        ...

    async def dequeue_batch(
        self, topic: str, max_n: int, block_ms: int = 0
    ) -> Result[list[dict[str, Any]], DomainError]:
        """Dequeue up to max_n tasks from topic, waiting up to block_ms for the first."""
        ...

    async def ack(self, topic: str, ack_ids: list[str]) -> Result[None, DomainError]:
        """Acknowledge completion of tasks."""
        ...
