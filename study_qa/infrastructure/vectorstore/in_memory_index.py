"""In-process vector index for development and tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from study_qa.application.ports.vector_index_port import VectorIndexPort
from study_qa.domain.errors import VectorStoreError
from study_qa.domain.models import Chunk, RankedPassage, SearchFilter
from study_qa.domain.similarity import cosine


class InMemoryVectorIndex(VectorIndexPort):
    """Brute-force cosine index keyed by document.

    A document's chunk list is replaced by a single dict assignment, so a
    concurrent search sees either the old set or the new one, never both.
    """

    def __init__(self) -> None:
        self._by_doc: dict[str, tuple[Chunk, ...]] = {}
        self._lock = asyncio.Lock()
        self._dim: int | None = None

    def _check_dim(self, chunks: Sequence[Chunk]) -> None:
        for c in chunks:
            if self._dim is None:
                self._dim = len(c.embedding)
            elif len(c.embedding) != self._dim:
                raise VectorStoreError(
                    f"dimension mismatch for chunk {c.id}: {len(c.embedding)} != {self._dim}"
                )

    async def upsert(self, chunks: Sequence[Chunk]) -> None:
        async with self._lock:
            self._check_dim(chunks)
            grouped: dict[str, dict[str, Chunk]] = {}
            for c in chunks:
                grouped.setdefault(c.source_document_id, {}).update({c.id: c})
            for doc_id, new in grouped.items():
                merged = {c.id: c for c in self._by_doc.get(doc_id, ())}
                merged.update(new)
                self._by_doc[doc_id] = tuple(merged.values())

    async def delete(self, document_id: str) -> None:
        async with self._lock:
            self._by_doc.pop(document_id, None)

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> None:
        if any(c.source_document_id != document_id for c in chunks):
            raise VectorStoreError(f"replace_document: chunks must all belong to '{document_id}'")
        async with self._lock:
            self._check_dim(chunks)
            if chunks:
                self._by_doc[document_id] = tuple(chunks)
            else:
                self._by_doc.pop(document_id, None)

    async def search(
        self, query_vector: Sequence[float], flt: SearchFilter, k: int = 5
    ) -> list[RankedPassage]:
        if flt.document_ids is not None:
            doc_ids = [d for d in flt.document_ids if d in self._by_doc]
        else:
            doc_ids = list(self._by_doc)

        hits: list[RankedPassage] = []
        for doc_id in doc_ids:
            for c in self._by_doc.get(doc_id, ()):
                if c.owner_id != flt.owner_id:
                    continue
                try:
                    score = cosine(query_vector, c.embedding)
                except ValueError as ex:
                    raise VectorStoreError(f"search failed: {ex}") from ex
                hits.append(
                    RankedPassage(
                        chunk_id=c.id,
                        source_document_id=c.source_document_id,
                        sequence_index=c.sequence_index,
                        text=c.text,
                        score=score,
                        metadata=dict(c.metadata),
                    )
                )
        hits.sort(key=lambda h: (-h.score, h.sequence_index, h.chunk_id))
        return hits[:k]

    def chunk_ids(self, document_id: str) -> list[str]:
        return [c.id for c in self._by_doc.get(document_id, ())]
