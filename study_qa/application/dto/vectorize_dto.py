from __future__ import annotations

from dataclasses import dataclass, field

from study_qa.domain.services.chunking import ChunkingParams


@dataclass(frozen=True)
class VectorizationParams:
    chunking: ChunkingParams = field(default_factory=ChunkingParams)
    embed_batch_size: int = 64
    # summary is built from the first chunks only
    summary_sample_chunks: int = 5
    summary_sample_chars: int = 8000
    summary_max_tokens: int = 100
    summary_temperature: float = 0.3
    summary_timeout_s: float | None = 30.0
    fallback_summary_chars: int = 200

    def __post_init__(self) -> None:
        if self.embed_batch_size <= 0:
            raise ValueError("embed_batch_size must be > 0")


@dataclass(frozen=True)
class VectorizeTask:
    """Payload of one queued vectorization task."""

    document_id: str
    attempt: int = 0

    def to_payload(self) -> dict[str, object]:
        return {"document_id": self.document_id, "attempt": self.attempt}

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> VectorizeTask:
        return cls(
            document_id=str(payload["document_id"]),
            attempt=int(payload.get("attempt", 0)),  # type: ignore[arg-type]
        )
