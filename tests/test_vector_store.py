"""Tests for the Qdrant vector store adapter (in-memory Qdrant)."""

import math

import pytest
from qdrant_client.models import Distance, VectorParams

from rag_core.models.vector import VectorRecord
from rag_core.services.vector_store import QdrantVectorStore, build_filter, make_point_id
from rag_core.utils.errors import ValidationError, VectorStoreError
from tests.conftest import TEST_DIMENSION, fake_vector


@pytest.fixture
def store(settings, qdrant_client):
    return QdrantVectorStore(settings, client=qdrant_client)


def record(document_id: str, index: int, text: str, thread_id: str = "t1", **metadata) -> VectorRecord:
    return VectorRecord(
        id=make_point_id(document_id, index),
        vector=fake_vector(text),
        content=text,
        metadata={
            "thread_id": thread_id,
            "document_id": document_id,
            "file_name": metadata.pop("file_name", f"{document_id}.txt"),
            "chunk_index": index,
            **metadata,
        },
    )


class TestCollection:
    """Collection lifecycle."""

    async def test_ensure_collection_is_idempotent(self, store, qdrant_client):
        await store.ensure_collection()
        await store.ensure_collection()
        info = qdrant_client.get_collection(store.collection_name)
        assert info.config.params.vectors.size == TEST_DIMENSION

    async def test_existing_collection_with_other_size_is_rejected(self, settings, qdrant_client):
        qdrant_client.create_collection(
            collection_name=settings.qdrant.collection_name,
            vectors_config=VectorParams(size=8, distance=Distance.COSINE),
        )
        store = QdrantVectorStore(settings, client=qdrant_client)
        with pytest.raises(VectorStoreError) as exc_info:
            await store.ensure_collection()
        assert exc_info.value.details["actual"] == 8


class TestUpsert:
    """Writes are all-or-nothing."""

    async def test_upsert_returns_count(self, store):
        written = await store.upsert([record("d1", 0, "alpha"), record("d1", 1, "beta")])
        assert written == 2
        assert await store.count({"thread_id": "t1"}) == 2

    async def test_upsert_same_ids_overwrites(self, store):
        await store.upsert([record("d1", 0, "alpha")])
        await store.upsert([record("d1", 0, "alpha again")])
        assert await store.count({"document_id": "d1"}) == 1

    async def test_wrong_dimension_rejects_whole_batch(self, store):
        bad = record("d1", 1, "beta")
        bad.vector = bad.vector[:-1]
        with pytest.raises(VectorStoreError):
            await store.upsert([record("d1", 0, "alpha"), bad])
        assert await store.count() == 0

    async def test_missing_vector_rejects_whole_batch(self, store):
        bad = record("d1", 1, "beta")
        bad.vector = []
        with pytest.raises(VectorStoreError):
            await store.upsert([record("d1", 0, "alpha"), bad])
        assert await store.count() == 0

    async def test_non_finite_vector_is_rejected(self, store):
        bad = record("d1", 0, "alpha")
        bad.vector[0] = math.inf
        with pytest.raises(VectorStoreError):
            await store.upsert([bad])

    async def test_empty_batch_is_noop(self, store):
        assert await store.upsert([]) == 0


class TestSearch:
    """Similarity search with payload filters."""

    async def test_results_match_every_filter_key(self, store):
        await store.upsert(
            [
                record("d1", 0, "paris is the capital of france", thread_id="t1"),
                record("d2", 0, "paris is the capital of france", thread_id="t2"),
                record("d3", 0, "paris is the capital of france", thread_id="t1", source_type="link"),
            ]
        )
        results = await store.search_similar(
            fake_vector("capital of france"),
            k=10,
            metadata_filter={"thread_id": "t1", "document_id": "d1"},
        )
        assert [r.metadata["document_id"] for r in results] == ["d1"]
        assert results[0].content == "paris is the capital of france"
        assert results[0].source == "d1.txt"

    async def test_results_are_ordered_and_limited(self, store):
        await store.upsert(
            [
                record("d1", 0, "apples and oranges"),
                record("d2", 0, "apples"),
                record("d3", 0, "bananas and cherries"),
            ]
        )
        results = await store.search_similar(fake_vector("apples"), k=2, metadata_filter={"thread_id": "t1"})
        assert len(results) == 2
        assert results[0].metadata["document_id"] == "d2"
        assert results[0].score >= results[1].score

    async def test_ties_are_ordered_by_id(self, store):
        await store.upsert([record(f"d{i}", 0, "identical text") for i in range(4)])
        results = await store.search_similar(fake_vector("identical text"), k=4)
        ids = [r.id for r in results]
        assert ids == sorted(ids)
        again = await store.search_similar(fake_vector("identical text"), k=4)
        assert [r.id for r in again] == ids

    async def test_score_threshold_filters_weak_matches(self, store):
        await store.upsert([record("d1", 0, "apples"), record("d2", 0, "zebra xylophone quartz")])
        results = await store.search_similar(fake_vector("apples"), k=5, score_threshold=0.9)
        assert [r.metadata["document_id"] for r in results] == ["d1"]

    async def test_query_dimension_mismatch(self, store):
        with pytest.raises(VectorStoreError):
            await store.search_similar([0.1, 0.2], k=5)

    async def test_search_on_empty_collection(self, store):
        assert await store.search_similar(fake_vector("anything"), k=5, metadata_filter={"thread_id": "t1"}) == []


class TestDelete:
    """Filtered deletion."""

    async def test_delete_by_filter_returns_count(self, store):
        await store.upsert(
            [
                record("d1", 0, "one", file_name="a.txt"),
                record("d1", 1, "two", file_name="a.txt"),
                record("d2", 0, "three", file_name="b.txt"),
            ]
        )
        assert await store.delete_by_filter({"thread_id": "t1", "file_name": "a.txt"}) == 2
        assert await store.count({"thread_id": "t1"}) == 1

    async def test_delete_is_idempotent(self, store):
        await store.upsert([record("d1", 0, "one", file_name="a.txt")])
        assert await store.delete_by_filter({"file_name": "a.txt"}) == 1
        assert await store.delete_by_filter({"file_name": "a.txt"}) == 0

    async def test_empty_filter_is_refused(self, store):
        await store.upsert([record("d1", 0, "one")])
        with pytest.raises(ValidationError):
            await store.delete_by_filter({})
        assert await store.count() == 1


async def test_scroll_payloads(store):
    await store.upsert([record(f"d{i}", 0, f"text {i}") for i in range(5)])
    payloads = await store.scroll_payloads({"thread_id": "t1"}, batch_size=2)
    assert sorted(p["document_id"] for p in payloads) == [f"d{i}" for i in range(5)]
    assert all("content" in p for p in payloads)


def test_build_filter():
    assert build_filter({}) is None
    qdrant_filter = build_filter({"thread_id": "t1", "file_name": "a.txt"})
    assert [c.key for c in qdrant_filter.must] == ["file_name", "thread_id"]


def test_point_ids_are_stable():
    assert make_point_id("doc", 3) == make_point_id("doc", 3)
    assert make_point_id("doc", 3) != make_point_id("doc", 4)
