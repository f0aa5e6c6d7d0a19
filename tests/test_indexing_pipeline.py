"""Tests for the indexing pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from rag_core.database.session import session_scope
from rag_core.models.document import DocumentStatus, SourceFile
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.utils.errors import MetadataStoreError, VectorStoreError


def text_file(name: str = "notes.txt", text: str = "The sky is blue. Grass is green.") -> SourceFile:
    return SourceFile(name=name, content=text.encode("utf-8"), mime_type="text/plain")


@pytest.fixture
def pipeline(rag_service):
    return rag_service.pipeline


async def rows_for(session_factory, thread_id):
    async with session_scope(session_factory) as session:
        return await DocumentRepository(session).get_by_thread(thread_id)


class TestIndexing:
    """Successful batches."""

    async def test_index_single_file(self, pipeline, session_factory, thread_id):
        result = await pipeline.index([text_file()], thread_id)

        assert result.success is True
        assert result.documents_indexed == 1
        assert result.chunks_created == 1
        assert await pipeline.vector_store.count({"thread_id": thread_id}) == 1

        rows = await rows_for(session_factory, thread_id)
        assert len(rows) == 1
        assert rows[0].id == result.document_ids[0]
        assert rows[0].status == DocumentStatus.READY.value
        assert rows[0].chunk_count == 1

    async def test_chunks_are_tagged(self, pipeline, thread_id):
        result = await pipeline.index([text_file()], thread_id)

        payloads = await pipeline.vector_store.scroll_payloads({"thread_id": thread_id})
        payload = payloads[0]
        assert payload["file_name"] == "notes.txt"
        assert payload["document_id"] == result.document_ids[0]
        assert payload["chunk_index"] == 0
        assert payload["total_chunks"] == 1
        assert payload["content_type"] == "text/plain"
        assert payload["source_type"] == "document"
        assert payload["uploaded_at"]

    async def test_whole_batch_embedded_in_one_call(self, pipeline, embeddings_client, thread_id):
        files = [text_file(f"file{i}.txt", f"Fact number {i}.") for i in range(3)]
        result = await pipeline.index(files, thread_id)

        assert result.success is True
        assert result.documents_indexed == 3
        assert len(embeddings_client.calls) == 1
        assert len(embeddings_client.calls[0]) == 3

    async def test_image_gets_placeholder_chunk(self, pipeline, thread_id):
        image = SourceFile(name="photo.png", content=b"\x89PNG\r\n\x1a\nrest", mime_type="image/png")
        result = await pipeline.index([image], thread_id)

        assert result.success is True
        assert result.chunks_created == 1
        payloads = await pipeline.vector_store.scroll_payloads({"thread_id": thread_id})
        assert payloads[0]["content"] == "[PNG file: photo.png]"

    async def test_existing_rows_move_to_ready(self, pipeline, session_factory, thread_id):
        async with session_scope(session_factory) as session:
            document = await DocumentRepository(session).create_document(
                thread_id=thread_id, filename="notes.txt", mime_type="text/plain"
            )

        result = await pipeline.index([text_file()], thread_id, document_ids=[document.id])

        assert result.success is True
        rows = await rows_for(session_factory, thread_id)
        assert [(r.id, r.status) for r in rows] == [(document.id, DocumentStatus.READY.value)]


class TestBatchFailures:
    """A failing stage fails the whole batch."""

    async def test_empty_file(self, pipeline, embeddings_client, thread_id):
        result = await pipeline.index([text_file(text="")], thread_id)

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
        assert embeddings_client.calls == []

    async def test_one_bad_file_fails_batch(self, pipeline, session_factory, embeddings_client, thread_id):
        bad = SourceFile(name="tool.exe", content=b"MZ\x90\x00", mime_type="application/octet-stream")
        result = await pipeline.index([text_file(), bad], thread_id)

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
        assert embeddings_client.calls == []
        assert await pipeline.vector_store.count({"thread_id": thread_id}) == 0
        assert await rows_for(session_factory, thread_id) == []

    async def test_upsert_failure_writes_no_rows(self, pipeline, session_factory, thread_id):
        with patch.object(
            pipeline.vector_store, "upsert", AsyncMock(side_effect=VectorStoreError("qdrant down"))
        ):
            result = await pipeline.index([text_file()], thread_id)

        assert result.success is False
        assert result.error_code == "VECTOR_STORE_ERROR"
        assert await rows_for(session_factory, thread_id) == []

    async def test_metadata_failure_rolls_back_vectors(self, pipeline, session_factory, thread_id):
        with patch.object(
            DocumentRepository,
            "create_document",
            AsyncMock(side_effect=MetadataStoreError("database down")),
        ):
            result = await pipeline.index([text_file()], thread_id)

        assert result.success is False
        assert result.error_code == "METADATA_STORE_ERROR"
        assert result.details["orphaned_document_ids"] == []
        assert await pipeline.vector_store.count({"thread_id": thread_id}) == 0
        assert await rows_for(session_factory, thread_id) == []

    async def test_unexpected_metadata_exception_rolls_back_vectors(self, pipeline, session_factory, thread_id):
        with patch.object(
            DocumentRepository,
            "create_document",
            AsyncMock(side_effect=RuntimeError("driver crashed")),
        ):
            result = await pipeline.index([text_file()], thread_id)

        assert result.success is False
        assert result.error_code == "METADATA_STORE_ERROR"
        assert result.details["cause"] == "RuntimeError"
        assert result.details["orphaned_document_ids"] == []
        assert await pipeline.vector_store.count({"thread_id": thread_id}) == 0
        assert await rows_for(session_factory, thread_id) == []

    async def test_failed_rollback_reports_orphans(self, pipeline, thread_id):
        with patch.object(
            DocumentRepository,
            "create_document",
            AsyncMock(side_effect=MetadataStoreError("database down")),
        ), patch.object(
            pipeline.vector_store,
            "delete_by_filter",
            AsyncMock(side_effect=VectorStoreError("qdrant down")),
        ):
            result = await pipeline.index([text_file()], thread_id)

        assert result.success is False
        assert result.details["orphaned_document_ids"] == result.details["document_ids"]
        assert len(result.details["orphaned_document_ids"]) == 1

    async def test_missing_thread_id(self, pipeline):
        result = await pipeline.index([text_file()], "")
        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"

    async def test_document_ids_must_match_files(self, pipeline, thread_id):
        result = await pipeline.index([text_file()], thread_id, document_ids=["a", "b"])
        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
