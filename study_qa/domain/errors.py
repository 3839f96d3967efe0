"""Domain errors (typed) for the question-answering pipeline.

Adapters translate third-party exceptions into this family so the
application layer never sees SDK-specific types.
"""

from dataclasses import dataclass


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


class DocumentNotFound(DomainError):
    """Document does not exist or is not visible to the requesting user."""


class MalformedModelOutput(DomainError):
    """Language model returned content that could not be parsed."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class RetrievalUnavailable(DomainError):
    """Vector search (or the query embedding before it) failed or timed out."""


class GenerationInterrupted(DomainError):
    """Streaming generation failed after it had started."""

    def __init__(self, message: str, partial_answer: str = "") -> None:
        super().__init__(message)
        self.partial_answer = partial_answer


@dataclass(frozen=True)
class VectorizationFailed(DomainError):
    """A document could not be chunked, embedded or indexed."""

    document_id: str
    detail: str = ""

    def __str__(self) -> str:
        return f"vectorization of '{self.document_id}' failed: {self.detail}"


# Infrastructure-mapped errors
class EmbeddingError(DomainError):
    """Embedding backend failed or is misconfigured."""


class VectorStoreError(DomainError):
    """Vector store backend failed or is misconfigured."""


class LLMError(DomainError):
    """LLM backend failed or is misconfigured."""


class WorkQueueError(DomainError):
    """Work queue backend failed or is misconfigured."""
