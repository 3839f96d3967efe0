from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any

from study_qa.application.ports.embedding_port import EmbeddingPort
from study_qa.domain.errors import EmbeddingError


def _e5_query_prefix(query: str) -> str:
    return f"Instruct: Retrieve relevant passages for the query.\nQuery: {query}"


def _e5_passage_prefix(passage: str) -> str:
    return f"Passage: {passage}"


@dataclass
class SentenceTransformersEmbeddingAdapter(EmbeddingPort):
    """Local Sentence-Transformers embeddings (multilingual E5 by default).

    ``encode`` is CPU/GPU bound, so it runs in a worker thread to keep the
    event loop serving streams.
    """

    model_name: str = "intfloat/multilingual-e5-large-instruct"
    device: str = "cpu"  # switch to "cuda" when available
    local_files_only: bool = False  # support offline deployments
    use_e5_prefixes: bool = True
    batch_size: int = 32
    _model: Any | None = field(default=None, init=False, repr=False)

    def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model
        try:
            st_module = import_module("sentence_transformers")
            self._model = st_module.SentenceTransformer(
                self.model_name,
                device=self.device,
                local_files_only=self.local_files_only,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(
                f"Failed to load embedding model '{self.model_name}': {ex}"
            ) from ex
        return self._model

    def _encode(self, inputs: str | list[str]) -> Any:
        model = self._ensure_model()
        try:
            return model.encode(
                inputs,
                batch_size=self.batch_size,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding failed: {ex}") from ex

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        inputs = [_e5_passage_prefix(t) if self.use_e5_prefixes else t for t in texts]
        raw = await asyncio.to_thread(self._encode, inputs)
        return [[float(x) for x in vec] for vec in raw]

    async def embed_query(self, text: str) -> list[float]:
        query = _e5_query_prefix(text) if self.use_e5_prefixes else text
        raw = await asyncio.to_thread(self._encode, query)
        return [float(x) for x in raw]
