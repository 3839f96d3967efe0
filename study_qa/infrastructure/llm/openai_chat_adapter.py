from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any, cast

from study_qa.application.ports.llm_port import ChatMessage, LLMPort, LLMResponse
from study_qa.domain.errors import LLMError


@dataclass
class OpenAIChatAdapter(LLMPort):
    """Chat completions against OpenAI or any OpenAI-compatible server (vLLM, ...)."""

    api_key: str = "EMPTY"
    model: str = "gpt-4o-mini"
    base_url: str | None = None  # e.g. "http://localhost:8000/v1" for vLLM
    timeout_s: float = 120.0
    _client: Any | None = field(default=None, init=False, repr=False)

    def _ensure_client(self) -> Any:
        # Defer import of OpenAI to first use to avoid hard dependency in tests
        if self._client is None:
            try:
                module = import_module("openai")
                self._client = module.AsyncOpenAI(
                    base_url=self.base_url, api_key=self.api_key, timeout=self.timeout_s
                )
            except Exception as ex:  # noqa: BLE001
                raise LLMError(f"LLM client init failed: {ex}") from ex
        return self._client

    @staticmethod
    def _payload(messages: Sequence[ChatMessage]) -> Any:
        return [{"role": m.role, "content": m.content} for m in messages]

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.1,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> LLMResponse:
        client = self._ensure_client()
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp: Any = await client.chat.completions.create(
                model=self.model,
                messages=cast(Any, self._payload(messages)),
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
            choice = resp.choices[0]
            usage = getattr(resp, "usage", None)
            return LLMResponse(
                text=choice.message.content or "",
                finish_reason=choice.finish_reason or "stop",
                usage_tokens=getattr(usage, "total_tokens", None),
            )
        except Exception as ex:  # noqa: BLE001
            # Translate external errors to domain-specific errors
            raise LLMError(f"LLM communication failed: {ex}") from ex

    async def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> AsyncIterator[str]:
        client = self._ensure_client()
        try:
            stream: Any = await client.chat.completions.create(
                model=self.model,
                messages=cast(Any, self._payload(messages)),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
        except Exception as ex:  # noqa: BLE001
            raise LLMError(f"LLM stream could not be opened: {ex}") from ex

        try:
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as ex:  # noqa: BLE001
            raise LLMError(f"LLM stream failed: {ex}") from ex
        finally:
            # releases the HTTP connection when the consumer stops early
            await stream.close()
