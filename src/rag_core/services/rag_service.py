"""RAG facade: the operations exposed to the API layer."""

from typing import List, Optional, Sequence, Union

import httpx
from openai import AsyncOpenAI
from qdrant_client import QdrantClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rag_core.config import RetrievalFailurePolicy, Settings, get_settings
from rag_core.database.session import session_scope
from rag_core.models.document import DocumentInfo, SourceFile, SourceType
from rag_core.models.rag import DeletionResult, GenerateResult, IndexingResult, Job
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.repositories.message_repository import MessageRepository
from rag_core.repositories.thread_repository import ThreadRepository
from rag_core.services.chunking_service import ChunkingService
from rag_core.services.context_providers import build_context_source
from rag_core.services.embedding_service import EmbeddingService
from rag_core.services.extraction_service import ExtractionService
from rag_core.services.generation_service import GenerationOrchestrator
from rag_core.services.indexing_pipeline import IndexingPipeline
from rag_core.services.ingestion_queue import IngestionJobQueue
from rag_core.services.llm_service import LLMService
from rag_core.services.retrieval_service import RetrievalEngine
from rag_core.services.scraper_service import ScraperService
from rag_core.services.vector_store import QdrantVectorStore
from rag_core.utils.errors import (
    GenerationError,
    RAGException,
    RetrievalError,
    ValidationError,
)
from rag_core.utils.logging import get_logger

logger = get_logger("rag_service")

GENERATION_APOLOGY = "Sorry, I couldn't generate an answer right now. Please try again in a moment."


class RAGService:
    """
    Thread-scoped indexing, answering and deletion.

    Services raise typed exceptions; this facade turns them into result
    models so callers branch on `success` / `error_code`.
    """

    def __init__(
        self,
        pipeline: IndexingPipeline,
        orchestrator: GenerationOrchestrator,
        vector_store: QdrantVectorStore,
        session_factory: async_sessionmaker[AsyncSession],
        scraper: Optional[ScraperService] = None,
        ingestion_queue: Optional[IngestionJobQueue] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.pipeline = pipeline
        self.orchestrator = orchestrator
        self.vector_store = vector_store
        self.session_factory = session_factory
        self.scraper = scraper
        self.ingestion_queue = ingestion_queue

    async def _require_thread(self, thread_id: str) -> None:
        if not thread_id:
            raise ValidationError("thread_id is required")
        async with session_scope(self.session_factory) as session:
            await ThreadRepository(session).require(thread_id)

    async def index_documents(self, files: Sequence[SourceFile], thread_id: str) -> IndexingResult:
        """Index files into an existing thread."""
        try:
            await self._require_thread(thread_id)
        except RAGException as e:
            return IndexingResult(success=False, error=e.message, error_code=e.code)
        return await self.pipeline.index(files, thread_id)

    async def submit_documents(self, files: Sequence[SourceFile], thread_id: str) -> Job:
        """Queue files for background indexing.

        Raises:
            ValidationError: If the queue is not configured or the files are invalid
            NotFoundError: If the thread does not exist
        """
        if self.ingestion_queue is None:
            raise ValidationError("Background ingestion is not enabled")
        await self._require_thread(thread_id)
        return await self.ingestion_queue.submit(files, thread_id)

    async def index_link(self, url: str, thread_id: str) -> IndexingResult:
        """Scrape a web page and index it as a `link` document."""
        if self.scraper is None:
            return IndexingResult(
                success=False, error="Link ingestion is not enabled", error_code="VALIDATION_ERROR"
            )
        try:
            await self._require_thread(thread_id)
            page = await self.scraper.scrape(url)
        except RAGException as e:
            logger.error(f"Link ingestion failed for {url}: {e.message}")
            return IndexingResult(success=False, error=e.message, error_code=e.code)

        file = SourceFile(
            name=page.title,
            content=page.text.encode("utf-8"),
            mime_type="text/html",
            source_type=SourceType.LINK,
            source_url=page.url,
            text=page.text,
        )
        return await self.pipeline.index([file], thread_id)

    async def generate_response(
        self,
        query: str,
        thread_id: str,
        retrieval_failure_policy: Optional[Union[RetrievalFailurePolicy, str]] = None,
    ) -> GenerateResult:
        """
        Answer a query from the thread's knowledge base.

        Args:
            query: User question
            thread_id: Thread whose documents are searched
            retrieval_failure_policy: `propagate` returns a failed result when retrieval
                fails; `ungrounded` answers without context instead. Defaults to
                RAG_RETRIEVAL_FAILURE_POLICY.
        """
        policy = RetrievalFailurePolicy(
            retrieval_failure_policy or self.settings.rag.retrieval_failure_policy
        )

        try:
            try:
                result = await self.orchestrator.generate(query, thread_id)
            except RetrievalError as e:
                if policy == RetrievalFailurePolicy.PROPAGATE:
                    logger.error(f"Retrieval failed for thread {thread_id}: {e.message}")
                    return GenerateResult(
                        response="", success=False, error=e.message, error_code=e.code
                    )
                logger.warning(f"Retrieval failed for thread {thread_id}; answering without context")
                result = await self.orchestrator.generate_ungrounded(query)
        except GenerationError as e:
            logger.error(f"Generation failed for thread {thread_id}: {e.message}")
            return GenerateResult(
                response=GENERATION_APOLOGY, success=False, error=GENERATION_APOLOGY, error_code=e.code
            )
        except ValidationError as e:
            return GenerateResult(response="", success=False, error=e.message, error_code=e.code)

        await self._record_exchange(thread_id, query, result.response)
        return result

    async def _record_exchange(self, thread_id: str, query: str, response: str) -> None:
        """Store the turn as thread history for the memory context provider."""
        try:
            async with session_scope(self.session_factory) as session:
                repo = MessageRepository(session)
                await repo.add_message(thread_id, "user", query)
                await repo.add_message(thread_id, "assistant", response)
        except RAGException as e:
            logger.warning(f"Could not record chat history for thread {thread_id}: {e.message}")

    async def delete_documents_by_filename(self, filename: str, thread_id: str) -> DeletionResult:
        """
        Remove a file's vectors and metadata rows from a thread.

        Vectors go first. A vector-store failure is reported in `vector_error`
        but does not stop the metadata rows from being deleted.
        """
        if not filename or not thread_id:
            return DeletionResult(success=False, message="filename and thread_id are required")

        vectors_deleted = 0
        vector_error = None
        try:
            vectors_deleted = await self.vector_store.delete_by_filter(
                {"thread_id": thread_id, "file_name": filename}
            )
        except RAGException as e:
            vector_error = e.message
            logger.error(
                f"Vector deletion failed for {filename} in thread {thread_id}: {e.message}",
                extra={"thread_id": thread_id, "file_name": filename},
            )

        try:
            async with session_scope(self.session_factory) as session:
                deleted_count = await DocumentRepository(session).delete_by_filename(thread_id, filename)
        except RAGException as e:
            logger.error(f"Metadata deletion failed for {filename} in thread {thread_id}: {e.message}")
            return DeletionResult(
                success=False,
                vectors_deleted=vectors_deleted,
                message=e.message,
                vector_error=vector_error,
            )

        logger.info(
            f"Deleted {filename} from thread {thread_id}: rows={deleted_count}, vectors={vectors_deleted}"
        )
        if deleted_count:
            message = f"Deleted {deleted_count} document(s) named {filename}"
        else:
            message = f"No documents named {filename} in this thread"
        return DeletionResult(
            success=True,
            deleted_count=deleted_count,
            vectors_deleted=vectors_deleted,
            message=message,
            vector_error=vector_error,
        )

    async def list_documents(self, thread_id: str) -> List[DocumentInfo]:
        async with session_scope(self.session_factory) as session:
            documents = await DocumentRepository(session).get_by_thread(thread_id)
            return [DocumentInfo.model_validate(d) for d in documents]

    async def close(self) -> None:
        if self.ingestion_queue is not None:
            await self.ingestion_queue.close()
        await self.vector_store.close()


def build_rag_service(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    qdrant_client: Optional[QdrantClient] = None,
    embeddings_client: Optional[AsyncOpenAI] = None,
    llm_service: Optional[LLMService] = None,
    scraper_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RAGService:
    """Wire every collaborator of the facade explicitly from settings."""
    embedding_service = EmbeddingService(settings, client=embeddings_client)
    vector_store = QdrantVectorStore(settings, client=qdrant_client)
    pipeline = IndexingPipeline(
        extraction_service=ExtractionService(settings),
        chunking_service=ChunkingService(settings),
        embedding_service=embedding_service,
        vector_store=vector_store,
        session_factory=session_factory,
    )
    engine = RetrievalEngine(embedding_service, vector_store, settings)
    orchestrator = GenerationOrchestrator(
        context_source=build_context_source(engine, session_factory, settings),
        llm_service=llm_service or LLMService(settings),
    )
    return RAGService(
        pipeline=pipeline,
        orchestrator=orchestrator,
        vector_store=vector_store,
        session_factory=session_factory,
        scraper=ScraperService(settings, transport=scraper_transport),
        ingestion_queue=IngestionJobQueue(
            pipeline,
            session_factory,
            workers=settings.rag.ingestion_workers,
            job_history=settings.rag.job_history,
        ),
        settings=settings,
    )
