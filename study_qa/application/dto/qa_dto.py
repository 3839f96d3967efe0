# study_qa/application/dto/qa_dto.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ClassifierParams:
    """
    Tuning for the routing call.

    - temperature: sampling temperature of the classification call
    - max_tokens:  cap on the JSON answer
    - timeout_s:   deadline for the call; None disables it
    """

    temperature: float = 0.1
    max_tokens: int = 200
    timeout_s: float | None = 15.0


@dataclass(frozen=True)
class RetrievalParams:
    """
    - top_k:             passages requested from the vector index
    - max_context_chars: budget of the assembled context block (~4 chars/token)
    - timeout_s:         deadline for query embedding + search together
    """

    top_k: int = 5
    max_context_chars: int = 6000
    timeout_s: float | None = 10.0

    def __post_init__(self) -> None:
        if self.top_k <= 0:
            raise ValueError("top_k must be > 0")
        if self.max_context_chars <= 0:
            raise ValueError("max_context_chars must be > 0")


@dataclass(frozen=True)
class GenerationParams:
    """
    - timeout_s:      overall deadline of one streamed answer
    - idle_timeout_s: longest wait for the next fragment
    """

    temperature: float = 0.0
    max_tokens: int = 512
    timeout_s: float | None = 120.0
    idle_timeout_s: float | None = 30.0
