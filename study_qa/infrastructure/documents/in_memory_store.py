"""In-process document store (notes + attachments) for development and tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from study_qa.application.ports.document_store_port import (
    DocumentScope,
    DocumentStorePort,
    SourceDocument,
)
from study_qa.domain.errors import DocumentNotFound
from study_qa.domain.models import DocumentSummary, VectorStatus


@dataclass
class _Record:
    document_id: str
    owner_id: str
    name: str
    text: str
    status: VectorStatus = VectorStatus.PENDING
    summary: str | None = None
    attached: list[str] = field(default_factory=list)

    def to_summary(self) -> DocumentSummary:
        return DocumentSummary(
            document_id=self.document_id,
            name=self.name,
            short_summary=self.summary if self.status is VectorStatus.COMPLETED else None,
            vector_status=self.status,
            has_inline_content=bool(self.text.strip()),
        )


class InMemoryDocumentStore(DocumentStorePort):
    """Dict-backed ``DocumentStorePort``.

    Moving a document out of COMPLETED drops its summary, so a summary is
    never reported for content that is being re-indexed.
    """

    def __init__(self) -> None:
        self._docs: dict[str, _Record] = {}
        self._lock = asyncio.Lock()

    # ----- seeding / mutation helpers (not part of the port) -----

    def add_document(
        self,
        document_id: str,
        owner_id: str,
        name: str,
        text: str = "",
        attached: list[str] | None = None,
    ) -> None:
        self._docs[document_id] = _Record(
            document_id=document_id,
            owner_id=owner_id,
            name=name,
            text=text,
            attached=list(attached or []),
        )

    def attach(self, document_id: str, attached_id: str) -> None:
        rec = self._require(document_id)
        if attached_id not in rec.attached:
            rec.attached.append(attached_id)

    def detach(self, document_id: str, attached_id: str) -> None:
        rec = self._require(document_id)
        if attached_id in rec.attached:
            rec.attached.remove(attached_id)

    def update_text(self, document_id: str, text: str) -> None:
        self._require(document_id).text = text

    def remove(self, document_id: str) -> None:
        self._docs.pop(document_id, None)

    def summary_of(self, document_id: str) -> DocumentSummary:
        return self._require(document_id).to_summary()

    def _require(self, document_id: str) -> _Record:
        rec = self._docs.get(document_id)
        if rec is None:
            raise DocumentNotFound(f"document '{document_id}' does not exist")
        return rec

    # ----- DocumentStorePort -----

    async def list_scope(self, document_id: str, user_id: str) -> DocumentScope:
        rec = self._docs.get(document_id)
        if rec is None or rec.owner_id != user_id:
            raise DocumentNotFound(f"document '{document_id}' not found for this user")
        attached = tuple(
            self._docs[a].to_summary()
            for a in rec.attached
            if a in self._docs and self._docs[a].owner_id == user_id
        )
        return DocumentScope(primary=rec.to_summary(), attached=attached)

    async def get_source_text(self, document_id: str) -> SourceDocument:
        rec = self._require(document_id)
        return SourceDocument(
            document_id=rec.document_id,
            owner_id=rec.owner_id,
            name=rec.name,
            text=rec.text,
        )

    async def set_vector_status(self, document_id: str, status: VectorStatus) -> None:
        async with self._lock:
            rec = self._require(document_id)
            rec.status = status
            if status is not VectorStatus.COMPLETED:
                rec.summary = None

    async def set_short_summary(self, document_id: str, summary: str) -> None:
        async with self._lock:
            rec = self._require(document_id)
            rec.summary = summary
            rec.status = VectorStatus.COMPLETED
