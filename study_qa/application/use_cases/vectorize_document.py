"""Document vectorization use case.

Turns one document's text into an embedded chunk set, swaps it into the
vector index in place of the previous set, and writes back a short routing
summary. Strictly Result-based: callers (worker, HTTP) never see raw exceptions.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

from study_qa.application.dto.vectorize_dto import VectorizationParams
from study_qa.application.ports.document_store_port import DocumentStorePort, SourceDocument
from study_qa.application.ports.embedding_port import EmbeddingPort
from study_qa.application.ports.llm_port import ChatMessage, LLMPort
from study_qa.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from study_qa.application.ports.vector_index_port import VectorIndexPort
from study_qa.domain.errors import (
    DocumentNotFound,
    DomainError,
    EmbeddingError,
    LLMError,
    VectorizationFailed,
)
from study_qa.domain.models import Chunk, VectorStatus
from study_qa.domain.services.chunking import (
    TextChunk,
    extract_title,
    leading_sentences,
    split_with_overlap,
)
from study_qa.domain.services.prompts import SUMMARY_SYSTEM_PROMPT, build_summary_prompt
from study_qa.domain.types import Result

logger = logging.getLogger(__name__)

# Stable namespace so chunk ids are reproducible from (document, generation, index)
CHUNK_NAMESPACE = uuid.UUID("6f1c2a9e-4b7d-5e83-9a10-3c5d7e2f8b41")

EMPTY_DOCUMENT_SUMMARY = "(empty document)"


def chunk_id(document_id: str, generation: str, index: int) -> str:
    return str(uuid.uuid5(CHUNK_NAMESPACE, f"{document_id}:{generation}:{index}"))


class CorpusVectorizer:
    """Vectorizes documents one at a time per document id.

    Two runs for the same document never interleave: a per-document lock
    serialises them, so the later request always wins the index swap.
    """

    def __init__(
        self,
        documents: DocumentStorePort,
        embedding: EmbeddingPort,
        index: VectorIndexPort,
        llm: LLMPort | None = None,
        params: VectorizationParams | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.documents = documents
        self.embedding = embedding
        self.index = index
        self.llm = llm
        self.params = params or VectorizationParams()
        self.telemetry = telemetry or NullTelemetry()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _document_lock(self, document_id: str) -> AsyncIterator[None]:
        # lock entries live only while some run holds or waits for them
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if not self._lock_users[document_id]:
                del self._lock_users[document_id]
                del self._locks[document_id]

    @property
    def active_documents(self) -> int:
        return len(self._locks)

    async def _embed(self, pieces: Sequence[TextChunk]) -> list[list[float]]:
        vectors: list[list[float]] = []
        size = self.params.embed_batch_size
        for i in range(0, len(pieces), size):
            batch = [p.text for p in pieces[i : i + size]]
            out = await self.embedding.embed_texts(batch)
            if len(out) != len(batch):
                raise EmbeddingError(
                    f"embedding backend returned {len(out)} vectors for {len(batch)} texts"
                )
            vectors.extend(out)
        return vectors

    def _build_chunks(
        self,
        doc: SourceDocument,
        pieces: Sequence[TextChunk],
        vectors: Sequence[Sequence[float]],
    ) -> list[Chunk]:
        generation = uuid.uuid4().hex
        title = extract_title(doc.name, doc.text)
        out: list[Chunk] = []
        for piece, vec in zip(pieces, vectors, strict=True):
            meta: dict[str, Any] = {
                "title": title,
                "document_name": doc.name,
                "generation": generation,
                "char_start": piece.start,
                "char_end": piece.end,
            }
            out.append(
                Chunk(
                    id=chunk_id(doc.document_id, generation, piece.index),
                    source_document_id=doc.document_id,
                    owner_id=doc.owner_id,
                    sequence_index=piece.index,
                    text=piece.text,
                    embedding=tuple(float(x) for x in vec),
                    metadata=meta,
                )
            )
        return out

    async def summarize(self, pieces: Sequence[TextChunk]) -> str:
        """Short routing summary from the first chunks; extractive when the model fails."""
        p = self.params
        sample = "\n\n".join(c.text for c in pieces[: p.summary_sample_chunks])[
            : p.summary_sample_chars
        ]
        if not sample.strip():
            return EMPTY_DOCUMENT_SUMMARY
        fallback = leading_sentences(sample, max_chars=p.fallback_summary_chars)
        if self.llm is None:
            return fallback

        messages = [
            ChatMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_summary_prompt(sample)),
        ]
        try:
            response = await asyncio.wait_for(
                self.llm.chat(
                    messages,
                    temperature=p.summary_temperature,
                    max_tokens=p.summary_max_tokens,
                ),
                timeout=p.summary_timeout_s,
            )
        except (LLMError, TimeoutError) as ex:
            logger.warning("summary generation failed, using leading sentences: %s", ex)
            return fallback

        text = " ".join(response.text.split())
        return text or fallback

    async def _run(self, document_id: str) -> int:
        doc = await self.documents.get_source_text(document_id)
        await self.documents.set_vector_status(document_id, VectorStatus.PROCESSING)

        pieces = split_with_overlap(doc.text, self.params.chunking)
        if not pieces:
            logger.info("document %s is empty, clearing its chunks", document_id)
            await self.index.delete(document_id)
            await self.documents.set_short_summary(document_id, EMPTY_DOCUMENT_SUMMARY)
            return 0

        vectors = await self._embed(pieces)
        chunks = self._build_chunks(doc, pieces, vectors)
        await self.index.replace_document(document_id, chunks)
        logger.info("indexed %d chunk(s) for document %s", len(chunks), document_id)

        summary = await self.summarize(pieces)
        await self.documents.set_short_summary(document_id, summary)
        return len(chunks)

    async def vectorize(self, document_id: str) -> Result[int, DomainError]:
        """Vectorize one document.

        Returns:
            Result with the number of chunks indexed, or ``DocumentNotFound`` /
            ``VectorizationFailed``. On failure the document is marked FAILED
            and whatever chunk set was searchable before stays searchable.
        """
        async with self._document_lock(document_id):
            try:
                count = await self._run(document_id)
            except asyncio.CancelledError:
                # a cancelled run must not leave the document in PROCESSING
                logger.warning("vectorization of %s cancelled", document_id)
                await asyncio.shield(self._mark_failed(document_id))
                self.telemetry.incr("vectorize.total", {"status": "cancelled"})
                raise
            except DocumentNotFound as ex:
                logger.warning("cannot vectorize %s: %s", document_id, ex)
                self.telemetry.incr("vectorize.total", {"status": "not_found"})
                return Result.failure(ex)
            except Exception as ex:
                logger.exception("vectorization of %s failed", document_id)
                await self._mark_failed(document_id)
                self.telemetry.incr("vectorize.total", {"status": "failed"})
                return Result.failure(VectorizationFailed(document_id, str(ex)))

        self.telemetry.incr("vectorize.total", {"status": "success"})
        self.telemetry.observe("vectorize.chunks", float(count))
        return Result.success(count)

    async def _mark_failed(self, document_id: str) -> None:
        try:
            await self.documents.set_vector_status(document_id, VectorStatus.FAILED)
        except DomainError as ex:
            logger.error("could not mark %s as failed: %s", document_id, ex)
