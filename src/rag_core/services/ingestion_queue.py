"""In-process queue for tracked background ingestion."""

import asyncio
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rag_core.database.session import session_scope
from rag_core.models.document import DocumentStatus, SourceFile
from rag_core.models.rag import IndexingResult, Job, JobStatus
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.services.indexing_pipeline import IndexingPipeline
from rag_core.utils.errors import NotFoundError, RAGException, ValidationError
from rag_core.utils.logging import get_logger

logger = get_logger("ingestion_queue")


class IngestionJobQueue:
    """
    Run indexing jobs on background worker tasks.

    `submit` records one PROCESSING row per file and returns immediately;
    a worker later moves each row to READY or ERROR. Job status is kept in
    memory; only the most recent `job_history` finished jobs are kept.
    """

    def __init__(
        self,
        pipeline: IndexingPipeline,
        session_factory: async_sessionmaker[AsyncSession],
        workers: int = 2,
        job_history: int = 1000,
    ) -> None:
        self.pipeline = pipeline
        self.session_factory = session_factory
        self.worker_count = max(1, workers)
        self.job_history = max(1, job_history)
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._done: Dict[str, asyncio.Event] = {}

    async def start(self) -> None:
        """Start the worker tasks (idempotent)."""
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"Ingestion queue started with {self.worker_count} workers")

    async def close(self) -> None:
        """Cancel the workers. Jobs still queued stay in their current status."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.info("Ingestion queue stopped")

    async def submit(self, files: Sequence[SourceFile], thread_id: str) -> Job:
        """
        Create PROCESSING rows for the files and queue them for indexing.

        Raises:
            ValidationError: If no files are given or a file fails validation
        """
        if not files:
            raise ValidationError("No files provided")
        for file in files:
            if file.text is None:
                self.pipeline.extraction_service.validate(file)

        await self.start()

        document_ids: List[str] = []
        async with session_scope(self.session_factory) as session:
            repo = DocumentRepository(session)
            for file in files:
                document = await repo.create_document(
                    thread_id=thread_id,
                    filename=file.name,
                    mime_type=file.mime_type,
                    size=file.size,
                    status=DocumentStatus.PROCESSING,
                    source_type=file.source_type,
                    source_url=file.source_url,
                )
                document_ids.append(document.id)

        job = Job(id=str(uuid.uuid4()), thread_id=thread_id, document_ids=document_ids)
        self._jobs[job.id] = job
        self._done[job.id] = asyncio.Event()
        await self._queue.put((job.id, list(files)))
        logger.info(f"Queued ingestion job {job.id}: thread={thread_id}, files={len(files)}")
        return job

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Wait until the job has finished and return it."""
        job = self.get(job_id)
        await asyncio.wait_for(self._done[job_id].wait(), timeout=timeout)
        return job

    async def _worker(self, index: int) -> None:
        while True:
            job_id, files = await self._queue.get()
            try:
                await self._run(job_id, files)
            except Exception as e:
                logger.error(f"Ingestion worker {index} crashed on job {job_id}: {e}", exc_info=True)
                await self._mark_failed(self._jobs[job_id].document_ids, "Internal error during ingestion")
                self._finish(
                    job_id,
                    IndexingResult(success=False, error="Internal error during ingestion", error_code="INTERNAL_ERROR"),
                )
            finally:
                self._queue.task_done()

    async def _run(self, job_id: str, files: List[SourceFile]) -> None:
        job = self._jobs[job_id]
        job.status = JobStatus.RUNNING
        logger.info(f"Running ingestion job {job_id}")

        result = await self.pipeline.index(files, job.thread_id, document_ids=job.document_ids)
        if not result.success:
            await self._mark_failed(job.document_ids, result.error or "Indexing failed")
        self._finish(job_id, result)

    async def _mark_failed(self, document_ids: List[str], message: str) -> None:
        try:
            async with session_scope(self.session_factory) as session:
                repo = DocumentRepository(session)
                for document_id in document_ids:
                    try:
                        await repo.update_status(document_id, DocumentStatus.ERROR, error_message=message)
                    except RAGException as e:
                        logger.warning(f"Could not mark document {document_id} as ERROR: {e.message}")
        except RAGException as e:
            logger.error(f"Could not record failure for documents {document_ids}: {e.message}")

    def _finish(self, job_id: str, result: IndexingResult) -> None:
        job = self._jobs[job_id]
        job.result = result
        job.status = JobStatus.SUCCEEDED if result.success else JobStatus.FAILED
        job.finished_at = datetime.now(timezone.utc)
        self._done[job_id].set()
        logger.info(f"Ingestion job {job_id} finished: {job.status.value}")
        self._evict()

    def _evict(self) -> None:
        """Drop the oldest finished jobs beyond `job_history`; queued and running jobs stay."""
        excess = len(self._jobs) - self.job_history
        if excess <= 0:
            return
        finished = [job_id for job_id, job in self._jobs.items() if job.is_done][:excess]
        for job_id in finished:
            del self._jobs[job_id]
            del self._done[job_id]
        logger.debug(f"Evicted {len(finished)} finished ingestion jobs")
