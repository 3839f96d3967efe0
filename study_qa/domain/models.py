# study_qa/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from study_qa.domain.errors import ValidationError


class VectorStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineMode(str, Enum):
    """Which generation pipeline answered a question."""

    RAG = "rag"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Question:
    """
    A question submitted by an authenticated user.

    - text:               the natural-language question
    - source_document_id: document the question was asked from (primary context)
    - user_id:            already-validated identity of the asking user
    """

    text: str
    source_document_id: str
    user_id: str

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValidationError("question must not be empty")
        if not self.user_id:
            raise ValidationError("user_id must not be empty")


@dataclass(frozen=True)
class DocumentSummary:
    """Routing-level description of a document, produced by vectorization."""

    document_id: str
    name: str
    short_summary: str | None = None
    vector_status: VectorStatus = VectorStatus.PENDING
    has_inline_content: bool = False

    def __post_init__(self) -> None:
        if self.short_summary is not None and self.vector_status != VectorStatus.COMPLETED:
            raise ValidationError(
                f"document '{self.document_id}' has a summary but status "
                f"'{self.vector_status.value}'"
            )


@dataclass(frozen=True)
class Chunk:
    """One embedded slice of a document, as written to the vector index."""

    id: str
    source_document_id: str
    owner_id: str
    sequence_index: int
    text: str
    embedding: tuple[float, ...]
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedPassage:
    """A search hit returned by the vector index."""

    chunk_id: str
    source_document_id: str
    sequence_index: int
    text: str
    score: float
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchFilter:
    """Restricts a search to one owner and, optionally, a set of documents."""

    owner_id: str
    document_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class AvailableContext:
    """What the classifier may know about the user's corpus for one question."""

    documents: tuple[DocumentSummary, ...]
    has_inline_content: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.documents and not self.has_inline_content


@dataclass(frozen=True)
class ClassificationDecision:
    use_corpus: bool
    reasoning: str
    # True when the decision is the general-knowledge fallback, not a model verdict
    fallback: bool = False


@dataclass(frozen=True)
class RetrievedPassage:
    chunk_id: str
    text: str
    relevance_score: float
    sequence_index: int


@dataclass(frozen=True)
class RetrievedContext:
    """Ordered, budget-bounded passages handed to the answer streamer."""

    passages: tuple[RetrievedPassage, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.passages

    def __len__(self) -> int:
        return len(self.passages)

    def as_prompt_block(self, separator: str = "\n\n---\n\n") -> str:
        return separator.join(p.text for p in self.passages)

    @classmethod
    def empty(cls) -> RetrievedContext:
        return cls(passages=())

    @classmethod
    def of(cls, passages: Sequence[RetrievedPassage]) -> RetrievedContext:
        return cls(passages=tuple(passages))


@dataclass(frozen=True)
class Fragment:
    """An incremental piece of answer text."""

    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"fragment": self.text}


@dataclass(frozen=True)
class Completion:
    """Terminal event of an answer stream."""

    full_answer: str
    pipeline_used: PipelineMode
    success: bool
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "done": True,
            "answer": self.full_answer,
            "pipelineUsed": self.pipeline_used.value,
            "success": self.success,
        }
        if self.error:
            payload["error"] = self.error
        return payload


StreamEvent = Fragment | Completion
