"""Redis Streams work queue adapter (redis.asyncio).

One stream per topic, one consumer group per topic; tasks stay in the
group's pending list until acked, which gives at-least-once delivery.
"""

from __future__ import annotations

import json
import logging
import socket
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any

from study_qa.application.ports.work_queue_port import WorkQueuePort
from study_qa.domain.errors import DomainError, WorkQueueError
from study_qa.domain.types import Result

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Configuration for Redis connection."""

    url: str = "redis://localhost:6379/0"
    consumer_name: str = field(default_factory=socket.gethostname)
    maxlen: int = 100_000  # keep the stream bounded


class RedisStreamsWorkQueue(WorkQueuePort):
    """Redis Streams adapter for the vectorization work queue."""

    def __init__(self, cfg: RedisConfig, client: Any | None = None) -> None:
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)
        self._groups: set[str] = set()

    def _init_client(self, cfg: RedisConfig) -> Any:
        try:
            redis_asyncio = import_module("redis.asyncio")
            return redis_asyncio.from_url(cfg.url, decode_responses=True)
        except Exception as ex:
            raise WorkQueueError(f"Redis init failed: {ex}") from ex

    @staticmethod
    def _group(topic: str) -> str:
        return f"{topic}-workers"

    async def _ensure_group(self, topic: str) -> None:
        if topic in self._groups:
            return
        try:
            await self._client.xgroup_create(topic, self._group(topic), id="0", mkstream=True)
        except Exception as ex:  # noqa: BLE001
            # BUSYGROUP: group already exists
            if "BUSYGROUP" not in str(ex):
                raise
        self._groups.add(topic)

    async def enqueue(self, topic: str, payload: dict[str, Any]) -> Result[str, DomainError]:
        try:
            msg_id = await self._client.xadd(
                topic,
                {"payload": json.dumps(payload)},
                maxlen=self._cfg.maxlen,
                approximate=True,
            )
            return Result.success(str(msg_id))
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"enqueue failed: {ex}"))

    async def dequeue_batch(
        self, topic: str, max_n: int, block_ms: int = 0
    ) -> Result[list[dict[str, Any]], DomainError]:
        try:
            await self._ensure_group(topic)
            messages = await self._client.xreadgroup(
                self._group(topic),
                self._cfg.consumer_name,
                {topic: ">"},
                count=max_n,
                block=block_ms or None,
            )
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"dequeue failed: {ex}"))

        tasks: list[dict[str, Any]] = []
        for _stream, stream_messages in messages or []:
            for msg_id, fields in stream_messages:
                try:
                    payload = json.loads(fields.get("payload", "{}"))
                except json.JSONDecodeError:
                    logger.error("undecodable payload in %s message %s", topic, msg_id)
                    payload = {}
                tasks.append({"ack_id": str(msg_id), "payload": payload})
        return Result.success(tasks)

    async def ack(self, topic: str, ack_ids: list[str]) -> Result[None, DomainError]:
        try:
            if ack_ids:
                await self._client.xack(topic, self._group(topic), *ack_ids)
            return Result.success(None)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(WorkQueueError(f"ack failed: {ex}"))

    async def close(self) -> None:
        await self._client.aclose()
