# study_qa/application/use_cases/retrieve_context.py
from __future__ import annotations

import asyncio
import logging

from study_qa.application.dto.qa_dto import RetrievalParams
from study_qa.application.ports.embedding_port import EmbeddingPort
from study_qa.application.ports.vector_index_port import VectorIndexPort
from study_qa.domain.errors import EmbeddingError, RetrievalUnavailable, VectorStoreError
from study_qa.domain.models import RankedPassage, RetrievedContext, SearchFilter
from study_qa.domain.services.ranking import pack_context

logger = logging.getLogger(__name__)


class ContextRetriever:
    """
    Application use case: question -> bounded, relevance-ordered context.
    Uses only ports; an empty result is a valid outcome, a backend failure is
    reported as RetrievalUnavailable for the caller to degrade on.
    """

    def __init__(
        self,
        embedding: EmbeddingPort,
        index: VectorIndexPort,
        params: RetrievalParams | None = None,
    ) -> None:
        self.embedding = embedding
        self.index = index
        self.params = params or RetrievalParams()

    async def _search(self, question: str, scope: SearchFilter) -> list[RankedPassage]:
        q_vec = await self.embedding.embed_query(question)
        return list(await self.index.search(q_vec, scope, k=self.params.top_k))

    async def retrieve(self, question: str, scope: SearchFilter) -> RetrievedContext:
        if scope.document_ids is not None and not scope.document_ids:
            return RetrievedContext.empty()

        try:
            hits = await asyncio.wait_for(
                self._search(question, scope), timeout=self.params.timeout_s
            )
        except TimeoutError as ex:
            raise RetrievalUnavailable(
                f"retrieval timed out after {self.params.timeout_s}s"
            ) from ex
        except (EmbeddingError, VectorStoreError) as ex:
            raise RetrievalUnavailable(f"retrieval failed: {ex}") from ex

        # drop anything outside the requested scope, e.g. a detached document
        allowed = set(scope.document_ids) if scope.document_ids is not None else None
        in_scope = [
            h for h in hits if allowed is None or h.source_document_id in allowed
        ]
        if len(in_scope) != len(hits):
            logger.info("search results: %d -> %d (in scope only)", len(hits), len(in_scope))

        context = pack_context(in_scope, max_chars=self.params.max_context_chars)
        logger.info(
            "retrieved %d passage(s), %d kept within %d chars",
            len(in_scope),
            len(context),
            self.params.max_context_chars,
        )
        return context
