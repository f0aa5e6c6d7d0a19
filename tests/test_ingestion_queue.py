"""Tests for tracked background ingestion."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from rag_core.database.session import session_scope
from rag_core.models.document import DocumentStatus, SourceFile
from rag_core.models.rag import JobStatus
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.services.ingestion_queue import IngestionJobQueue
from rag_core.utils.errors import EmbeddingError, NotFoundError, ValidationError


@pytest.fixture
def queue(rag_service):
    return rag_service.ingestion_queue


def text_file(name: str = "notes.txt") -> SourceFile:
    return SourceFile(name=name, content=b"Meetings are on Tuesdays.", mime_type="text/plain")


async def statuses(session_factory, thread_id):
    async with session_scope(session_factory) as session:
        return [d.status for d in await DocumentRepository(session).get_by_thread(thread_id)]


class TestIngestionJobQueue:
    """Submit, run and track jobs."""

    async def test_submit_records_processing_rows(self, queue, session_factory, thread_id):
        with patch.object(queue, "start", AsyncMock()):
            queue._queue = asyncio.Queue()
            job = await queue.submit([text_file()], thread_id)

        assert job.status == JobStatus.QUEUED
        assert len(job.document_ids) == 1
        assert await statuses(session_factory, thread_id) == [DocumentStatus.PROCESSING.value]

    async def test_job_succeeds_and_rows_become_ready(self, queue, session_factory, thread_id):
        job = await queue.submit([text_file("a.txt"), text_file("b.txt")], thread_id)
        finished = await queue.wait(job.id, timeout=10)

        assert finished.status == JobStatus.SUCCEEDED
        assert finished.result.documents_indexed == 2
        assert finished.finished_at is not None
        assert finished.finished_at.tzinfo is not None
        assert finished.created_at.tzinfo is not None
        assert await statuses(session_factory, thread_id) == [DocumentStatus.READY.value] * 2
        assert await queue.pipeline.vector_store.count({"thread_id": thread_id}) == 2

    async def test_failed_job_marks_rows_error(self, queue, session_factory, thread_id):
        embedding_service = queue.pipeline.embedding_service
        with patch.object(
            embedding_service, "embed_batch", AsyncMock(side_effect=EmbeddingError("gateway down"))
        ):
            job = await queue.submit([text_file()], thread_id)
            finished = await queue.wait(job.id, timeout=10)

        assert finished.status == JobStatus.FAILED
        assert finished.result.error_code == "EMBEDDING_ERROR"
        async with session_scope(session_factory) as session:
            documents = await DocumentRepository(session).get_by_thread(thread_id)
        assert [d.status for d in documents] == [DocumentStatus.ERROR.value]
        assert documents[0].error_message == "gateway down"

    async def test_unexpected_worker_exception_marks_rows_error(self, queue, session_factory, thread_id):
        embedding_service = queue.pipeline.embedding_service
        with patch.object(embedding_service, "embed_batch", AsyncMock(side_effect=RuntimeError("boom"))):
            job = await queue.submit([text_file()], thread_id)
            finished = await queue.wait(job.id, timeout=10)

        assert finished.status == JobStatus.FAILED
        assert finished.result.error_code == "INTERNAL_ERROR"
        async with session_scope(session_factory) as session:
            documents = await DocumentRepository(session).get_by_thread(thread_id)
        assert [d.status for d in documents] == [DocumentStatus.ERROR.value]
        assert documents[0].error_message == "Internal error during ingestion"

    async def test_finished_jobs_beyond_history_are_evicted(self, rag_service, session_factory, thread_id):
        queue = IngestionJobQueue(rag_service.pipeline, session_factory, workers=1, job_history=2)
        try:
            jobs = []
            for name in ("a.txt", "b.txt", "c.txt"):
                job = await queue.submit([text_file(name)], thread_id)
                await queue.wait(job.id, timeout=10)
                jobs.append(job)

            with pytest.raises(NotFoundError):
                queue.get(jobs[0].id)
            assert queue.get(jobs[1].id).status == JobStatus.SUCCEEDED
            assert queue.get(jobs[2].id).status == JobStatus.SUCCEEDED
        finally:
            await queue.close()

    async def test_invalid_file_rejected_before_rows(self, queue, session_factory, thread_id):
        empty = SourceFile(name="empty.txt", content=b"", mime_type="text/plain")
        with pytest.raises(ValidationError):
            await queue.submit([text_file(), empty], thread_id)
        assert await statuses(session_factory, thread_id) == []

    async def test_no_files(self, queue, thread_id):
        with pytest.raises(ValidationError):
            await queue.submit([], thread_id)

    def test_unknown_job(self, queue):
        with pytest.raises(NotFoundError):
            queue.get("missing")

    async def test_job_to_dict(self, queue, thread_id):
        job = await queue.submit([text_file()], thread_id)
        await queue.wait(job.id, timeout=10)
        data = queue.get(job.id).to_dict()
        assert data["status"] == "succeeded"
        assert data["result"]["success"] is True
