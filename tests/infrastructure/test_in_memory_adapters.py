"""In-process document store, vector index and work queue."""

import asyncio

import pytest

from study_qa.domain.errors import DocumentNotFound, VectorStoreError
from study_qa.domain.models import Chunk, SearchFilter, VectorStatus
from study_qa.infrastructure.documents.in_memory_store import InMemoryDocumentStore
from study_qa.infrastructure.queues.in_memory_queue import InMemoryWorkQueue
from study_qa.infrastructure.vectorstore.in_memory_index import InMemoryVectorIndex


def chunk(cid: str, doc: str, vec=(1.0, 0.0), owner: str = "u1", seq: int = 0) -> Chunk:
    return Chunk(cid, doc, owner, seq, f"text {cid}", tuple(vec))


# ---------- document store ----------


def make_store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.add_document("note-1", "u1", "lecture.md", "Inline note text", attached=["bio-1", "other"])
    store.add_document("bio-1", "u1", "biology.md", "Biology")
    store.add_document("other", "u2", "secret.md", "Not yours")
    return store


def test_scope_lists_primary_and_own_attachments():
    scope = asyncio.run(make_store().list_scope("note-1", "u1"))
    assert scope.primary.document_id == "note-1"
    assert scope.primary.has_inline_content
    assert scope.document_ids == ("note-1", "bio-1")


@pytest.mark.parametrize("doc,user", [("missing", "u1"), ("note-1", "u2")])
def test_scope_of_missing_or_foreign_document_is_not_found(doc, user):
    with pytest.raises(DocumentNotFound):
        asyncio.run(make_store().list_scope(doc, user))


def test_summary_lifecycle():
    store = make_store()

    async def scenario():
        await store.set_short_summary("bio-1", "Biology notes")
        done = store.summary_of("bio-1")
        await store.set_vector_status("bio-1", VectorStatus.PROCESSING)
        return done, store.summary_of("bio-1")

    done, reprocessing = asyncio.run(scenario())
    assert done.vector_status is VectorStatus.COMPLETED
    assert done.short_summary == "Biology notes"
    assert reprocessing.vector_status is VectorStatus.PROCESSING
    assert reprocessing.short_summary is None


def test_source_text_and_missing_document():
    store = make_store()
    doc = asyncio.run(store.get_source_text("bio-1"))
    assert (doc.owner_id, doc.name, doc.text) == ("u1", "biology.md", "Biology")
    with pytest.raises(DocumentNotFound):
        asyncio.run(store.get_source_text("ghost"))


# ---------- vector index ----------


def test_search_is_scoped_by_owner_and_document():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.upsert([chunk("a", "d1"), chunk("b", "d2"), chunk("c", "d1", owner="u2")])
        mine = await index.search([1.0, 0.0], SearchFilter("u1"), k=10)
        only_d2 = await index.search([1.0, 0.0], SearchFilter("u1", ("d2",)), k=10)
        return mine, only_d2

    mine, only_d2 = asyncio.run(scenario())
    assert sorted(h.chunk_id for h in mine) == ["a", "b"]
    assert [h.chunk_id for h in only_d2] == ["b"]


def test_search_orders_by_score_then_sequence():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.upsert(
            [
                chunk("far", "d1", (0.0, 1.0), seq=0),
                chunk("tie-late", "d1", (1.0, 0.0), seq=5),
                chunk("tie-early", "d1", (1.0, 0.0), seq=1),
            ]
        )
        return await index.search([1.0, 0.0], SearchFilter("u1"), k=2)

    hits = asyncio.run(scenario())
    assert [h.chunk_id for h in hits] == ["tie-early", "tie-late"]


def test_replace_document_swaps_whole_set():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.upsert([chunk("old-1", "d1"), chunk("old-2", "d1"), chunk("keep", "d2")])
        await index.replace_document("d1", [chunk("new-1", "d1")])
        await index.replace_document("d2", [])

    asyncio.run(scenario())
    assert index.chunk_ids("d1") == ["new-1"]
    assert index.chunk_ids("d2") == []


def test_replace_rejects_foreign_chunks_and_dimension_changes():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.upsert([chunk("a", "d1")])
        with pytest.raises(VectorStoreError):
            await index.replace_document("d1", [chunk("b", "d2")])
        with pytest.raises(VectorStoreError, match="dimension"):
            await index.upsert([chunk("c", "d1", (1.0, 0.0, 0.0))])

    asyncio.run(scenario())
    assert index.chunk_ids("d1") == ["a"]


# ---------- work queue ----------


def test_queue_is_fifo_and_at_least_once():
    queue = InMemoryWorkQueue()

    async def scenario():
        for doc in ("a", "b", "c"):
            await queue.enqueue("t", {"document_id": doc})
        batch = await queue.dequeue_batch("t", 2)
        pending = queue.pending_count("t")
        await queue.ack("t", [batch.value[0]["ack_id"]])
        return batch, pending

    batch, pending = asyncio.run(scenario())
    assert [t["payload"]["document_id"] for t in batch.value] == ["a", "b"]
    assert pending == 2
    assert queue.pending_count("t") == 1
    assert queue.ready_count("t") == 1


def test_blocking_dequeue_wakes_on_enqueue():
    queue = InMemoryWorkQueue()

    async def scenario():
        waiter = asyncio.create_task(queue.dequeue_batch("t", 5, block_ms=1000))
        await asyncio.sleep(0.01)
        await queue.enqueue("t", {"document_id": "late"})
        return await waiter

    r = asyncio.run(scenario())
    assert [t["payload"]["document_id"] for t in r.value] == ["late"]


def test_blocking_dequeue_times_out_empty():
    r = asyncio.run(InMemoryWorkQueue().dequeue_batch("t", 5, block_ms=10))
    assert r.ok and r.value == []


def test_non_positive_batch_size_is_rejected():
    r = asyncio.run(InMemoryWorkQueue().dequeue_batch("t", 0))
    assert not r.ok
