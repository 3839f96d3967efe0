"""Qdrant vector index adapter (async client).

Adapter encapsulates all qdrant-client types and raises only domain errors.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from study_qa.application.ports.vector_index_port import VectorIndexPort
from study_qa.domain.errors import VectorStoreError
from study_qa.domain.models import Chunk, RankedPassage, SearchFilter

logger = logging.getLogger(__name__)

# Payload keys written for every point
DOCUMENT_ID = "document_id"
OWNER_ID = "owner_id"
SEQUENCE_INDEX = "sequence_index"
TEXT = "text"

_RESERVED = {DOCUMENT_ID, OWNER_ID, SEQUENCE_INDEX, TEXT}


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection."""

    url: str = "http://localhost:6333"
    api_key: str | None = None
    collection: str = "study_chunks"
    prefer_grpc: bool = False
    timeout_s: int = 30
    upsert_batch_size: int = 100


class QdrantVectorIndex(VectorIndexPort):
    """Qdrant-backed implementation of ``VectorIndexPort``.

    The collection is created on first write, sized from the first chunk's
    embedding, with keyword payload indexes on ``document_id`` and ``owner_id``.
    ``replace_document`` sends the delete-by-document and the upserts as one
    ordered ``batch_update_points`` request, so the old chunk set is gone
    before any new chunk is visible.
    """

    def __init__(self, cfg: QdrantConfig, client: Any | None = None) -> None:
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)
        self._ready = False
        self._init_lock = asyncio.Lock()

    def _init_client(self, cfg: QdrantConfig) -> Any:
        try:
            qdrant_client = import_module("qdrant_client")
            return qdrant_client.AsyncQdrantClient(
                url=cfg.url,
                api_key=cfg.api_key,
                timeout=cfg.timeout_s,
                prefer_grpc=cfg.prefer_grpc,
            )
        except Exception as ex:
            raise VectorStoreError(f"Qdrant init failed: {ex}") from ex

    @staticmethod
    def _models() -> Any:
        try:
            return import_module("qdrant_client.models")
        except Exception as ex:  # pragma: no cover
            raise VectorStoreError("qdrant-client models not available; install runtime deps") from ex

    # ----- collection management -----

    async def ensure_collection(self, dim: int) -> None:
        if self._ready:
            return
        async with self._init_lock:
            if self._ready:
                return
            models = self._models()
            name = self._cfg.collection
            try:
                if await self._client.collection_exists(name):
                    info = await self._client.get_collection(name)
                    size = info.config.params.vectors.size
                    if size != dim:
                        raise VectorStoreError(
                            f"Collection '{name}' exists with wrong dimension: {size} != {dim}"
                        )
                else:
                    logger.info("creating qdrant collection %r (dim=%d)", name, dim)
                    await self._client.create_collection(
                        collection_name=name,
                        vectors_config=models.VectorParams(size=dim, distance=models.Distance.COSINE),
                    )
                    for field_name in (DOCUMENT_ID, OWNER_ID):
                        await self._client.create_payload_index(
                            collection_name=name,
                            field_name=field_name,
                            field_schema=models.PayloadSchemaType.KEYWORD,
                        )
            except VectorStoreError:
                raise
            except Exception as ex:  # noqa: BLE001
                raise VectorStoreError(f"ensure_collection: {ex}") from ex
            self._ready = True

    async def _collection_missing(self) -> bool:
        if self._ready:
            return False
        try:
            return not await self._client.collection_exists(self._cfg.collection)
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"collection_exists: {ex}") from ex

    # ----- payload / filter mapping -----

    @staticmethod
    def _payload(chunk: Chunk) -> dict[str, Any]:
        payload = {k: v for k, v in chunk.metadata.items() if k not in _RESERVED}
        payload.update(
            {
                DOCUMENT_ID: chunk.source_document_id,
                OWNER_ID: chunk.owner_id,
                SEQUENCE_INDEX: chunk.sequence_index,
                TEXT: chunk.text,
            }
        )
        return payload

    def _points(self, chunks: Sequence[Chunk]) -> list[Any]:
        models = self._models()
        return [
            models.PointStruct(id=c.id, vector=list(c.embedding), payload=self._payload(c))
            for c in chunks
        ]

    def _upsert_ops(self, chunks: Sequence[Chunk]) -> list[Any]:
        models = self._models()
        points = self._points(chunks)
        size = self._cfg.upsert_batch_size
        return [
            models.UpsertOperation(upsert=models.PointsList(points=points[i : i + size]))
            for i in range(0, len(points), size)
        ]

    def _document_filter(self, document_id: str) -> Any:
        models = self._models()
        return models.Filter(
            must=[models.FieldCondition(key=DOCUMENT_ID, match=models.MatchValue(value=document_id))]
        )

    def _search_filter(self, flt: SearchFilter) -> Any:
        models = self._models()
        must = [models.FieldCondition(key=OWNER_ID, match=models.MatchValue(value=flt.owner_id))]
        if flt.document_ids is not None:
            must.append(
                models.FieldCondition(
                    key=DOCUMENT_ID, match=models.MatchAny(any=list(flt.document_ids))
                )
            )
        return models.Filter(must=must)

    # ----- VectorIndexPort -----

    async def upsert(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            return
        await self.ensure_collection(len(chunks[0].embedding))
        try:
            await self._client.batch_update_points(
                collection_name=self._cfg.collection,
                update_operations=self._upsert_ops(chunks),
                wait=True,
            )
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"Upsert failed: {ex}") from ex

    async def delete(self, document_id: str) -> None:
        if await self._collection_missing():
            return
        models = self._models()
        try:
            await self._client.delete(
                collection_name=self._cfg.collection,
                points_selector=models.FilterSelector(filter=self._document_filter(document_id)),
                wait=True,
            )
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"Delete failed: {ex}") from ex

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            await self.delete(document_id)
            return
        if any(c.source_document_id != document_id for c in chunks):
            raise VectorStoreError(f"replace_document: chunks must all belong to '{document_id}'")
        await self.ensure_collection(len(chunks[0].embedding))
        models = self._models()
        ops = [
            models.DeleteOperation(
                delete=models.FilterSelector(filter=self._document_filter(document_id))
            ),
            *self._upsert_ops(chunks),
        ]
        try:
            await self._client.batch_update_points(
                collection_name=self._cfg.collection,
                update_operations=ops,
                wait=True,
            )
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"Replace failed for '{document_id}': {ex}") from ex

    async def search(
        self, query_vector: Sequence[float], flt: SearchFilter, k: int = 5
    ) -> list[RankedPassage]:
        if flt.document_ids is not None and not flt.document_ids:
            return []
        if await self._collection_missing():
            return []
        try:
            rs: Any = await self._client.query_points(
                collection_name=self._cfg.collection,
                query=list(query_vector),
                query_filter=self._search_filter(flt),
                limit=k,
                with_payload=True,
            )
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"Search failed: {ex}") from ex

        out: list[RankedPassage] = []
        for p in rs.points:
            payload = dict(p.payload or {})
            payload.pop(OWNER_ID, None)
            out.append(
                RankedPassage(
                    chunk_id=str(p.id),
                    source_document_id=str(payload.pop(DOCUMENT_ID, "")),
                    sequence_index=int(payload.pop(SEQUENCE_INDEX, 0)),
                    text=str(payload.pop(TEXT, "")),
                    score=float(p.score),
                    metadata=payload,
                )
            )
        return out

    async def close(self) -> None:
        try:
            await self._client.close()
        except Exception as ex:  # noqa: BLE001
            logger.warning("closing qdrant client failed: %s", ex)
