from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any

from study_qa.application.ports.embedding_port import EmbeddingPort
from study_qa.domain.errors import EmbeddingError


@dataclass
class OpenAIEmbeddingAdapter(EmbeddingPort):
    """Hosted embeddings through any OpenAI-compatible ``/v1/embeddings`` endpoint."""

    api_key: str
    model: str = "text-embedding-3-small"
    base_url: str | None = None
    timeout_s: float = 30.0
    _client: Any | None = field(default=None, init=False, repr=False)

    def _ensure_client(self) -> Any:
        if self._client is None:
            try:
                module = import_module("openai")
                self._client = module.AsyncOpenAI(
                    api_key=self.api_key, base_url=self.base_url, timeout=self.timeout_s
                )
            except Exception as ex:  # noqa: BLE001
                raise EmbeddingError(f"OpenAI client init failed: {ex}") from ex
        return self._client

    async def _embed(self, inputs: list[str]) -> list[list[float]]:
        client = self._ensure_client()
        # newlines degrade embedding quality on these models
        cleaned = [t.replace("\n", " ") for t in inputs]
        try:
            resp: Any = await client.embeddings.create(model=self.model, input=cleaned)
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding request failed: {ex}") from ex
        data = sorted(resp.data, key=lambda d: d.index)
        return [[float(x) for x in d.embedding] for d in data]

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        return await self._embed(list(texts))

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self._embed([text])
        if not vectors:
            raise EmbeddingError("Embedding response was empty")
        return vectors[0]
