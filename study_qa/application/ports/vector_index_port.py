from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from study_qa.domain.models import Chunk, RankedPassage, SearchFilter

__all__ = ["VectorIndexPort"]


@runtime_checkable
class VectorIndexPort(Protocol):
    """Gateway to the external vector store.

    Implementations raise ``VectorStoreError`` on backend failure.
    """

    async def upsert(self, chunks: Sequence[Chunk]) -> None: ...

    async def delete(self, document_id: str) -> None: ...

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> None:
        """Swap a document's chunk set.

        Old chunks must stop being searchable no later than the new ones become
        searchable. A window in which neither set is visible is acceptable.
        """
        ...

    async def search(
        self, query_vector: Sequence[float], flt: SearchFilter, k: int = 5
    ) -> list[RankedPassage]: ...
