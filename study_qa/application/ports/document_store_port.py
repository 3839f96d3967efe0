from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from study_qa.domain.models import DocumentSummary, VectorStatus


@dataclass(frozen=True)
class SourceDocument:
    """Raw text of a document plus the identity it is indexed under."""

    document_id: str
    owner_id: str
    name: str
    text: str


@dataclass(frozen=True)
class DocumentScope:
    """The documents a question may draw on: the primary one and its attachments."""

    primary: DocumentSummary
    attached: tuple[DocumentSummary, ...] = ()

    @property
    def documents(self) -> tuple[DocumentSummary, ...]:
        return (self.primary, *self.attached)

    @property
    def document_ids(self) -> tuple[str, ...]:
        return tuple(d.document_id for d in self.documents)


@runtime_checkable
class DocumentStorePort(Protocol):
    """Read access to notes/library items plus write-back of vectorization state.

    ``list_scope`` and ``get_source_text`` raise ``DocumentNotFound`` when the
    document does not exist or is not owned by ``user_id``.
    """

    async def list_scope(self, document_id: str, user_id: str) -> DocumentScope: ...

    async def get_source_text(self, document_id: str) -> SourceDocument: ...

    async def set_vector_status(self, document_id: str, status: VectorStatus) -> None: ...

    async def set_short_summary(self, document_id: str, summary: str) -> None:
        """Store the routing summary and mark the document completed in one write."""
        ...
