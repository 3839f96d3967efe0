from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True)
class LLMResponse:
    text: str
    finish_reason: str = "stop"
    usage_tokens: int | None = None


@runtime_checkable
class LLMPort(Protocol):
    async def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.1,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Single non-streaming completion.

        Args:
            messages: Conversation, system message first
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Ask the backend to constrain output to a JSON object

        Raises:
            LLMError: If the backend call fails
        """
        ...

    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> AsyncIterator[str]:
        """Streaming completion yielding text deltas in arrival order.

        The returned iterator is an async generator; closing it (``aclose``)
        must release the underlying connection.

        Raises:
            LLMError: While iterating, if the backend fails mid-stream
        """
        ...
