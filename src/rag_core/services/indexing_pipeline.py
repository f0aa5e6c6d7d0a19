"""Indexing pipeline: files -> chunks -> vectors -> metadata rows."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rag_core.database.session import session_scope
from rag_core.models.chunk import TextChunk
from rag_core.models.document import DocumentStatus, SourceFile
from rag_core.models.rag import IndexingResult
from rag_core.models.vector import VectorRecord
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.services.chunking_service import ChunkingService
from rag_core.services.embedding_service import EmbeddingService
from rag_core.services.extraction_service import ExtractionService
from rag_core.services.vector_store import QdrantVectorStore, make_point_id
from rag_core.utils.errors import MetadataStoreError, RAGException, ValidationError
from rag_core.utils.logging import get_logger

logger = get_logger("indexing_pipeline")


@dataclass
class PreparedFile:
    """A file after extraction and chunking, ready to embed."""

    file: SourceFile
    document_id: str
    chunks: List[TextChunk] = field(default_factory=list)


class IndexingPipeline:
    """
    Index a batch of files into one thread.

    Stages:
    1. Validate + extract text (images get a placeholder chunk)
    2. Chunk and tag every chunk with thread/document metadata
    3. Embed all chunks of the batch in one call
    4. Upsert all vector records in one call
    5. Write metadata rows (only after the upsert succeeded)

    Any failing stage fails the whole batch. If stage 5 fails, the vectors
    written in stage 4 are deleted again.
    """

    def __init__(
        self,
        extraction_service: ExtractionService,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService,
        vector_store: QdrantVectorStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.extraction_service = extraction_service
        self.chunking_service = chunking_service
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.session_factory = session_factory

    async def index(
        self,
        files: Sequence[SourceFile],
        thread_id: str,
        document_ids: Optional[Sequence[str]] = None,
    ) -> IndexingResult:
        """
        Index files into a thread.

        Args:
            files: Files to index
            thread_id: Owning thread
            document_ids: Ids of existing PROCESSING rows, one per file. When given,
                those rows are moved to READY instead of new READY rows being created.

        Returns:
            IndexingResult; `success=False` carries the error message and code
        """
        try:
            return await self._index(files, thread_id, document_ids)
        except RAGException as e:
            logger.error(
                f"Indexing failed for thread {thread_id}: {e.message} ({e.code})",
                extra={"thread_id": thread_id, "files": [f.name for f in files]},
            )
            return IndexingResult(success=False, error=e.message, error_code=e.code, details=e.details)

    async def _index(
        self,
        files: Sequence[SourceFile],
        thread_id: str,
        document_ids: Optional[Sequence[str]],
    ) -> IndexingResult:
        if not thread_id:
            raise ValidationError("thread_id is required")
        if not files:
            raise ValidationError("No files provided")
        if document_ids is not None and len(document_ids) != len(files):
            raise ValidationError(
                "document_ids must match files one to one",
                errors={"files": len(files), "document_ids": len(document_ids)},
            )

        ids = list(document_ids) if document_ids is not None else [str(uuid.uuid4()) for _ in files]
        uploaded_at = datetime.now(timezone.utc).isoformat()

        prepared = [
            await self._prepare(file, thread_id, document_id, uploaded_at)
            for file, document_id in zip(files, ids)
        ]
        chunks = [chunk for item in prepared for chunk in item.chunks]
        logger.info(
            f"Prepared {len(prepared)} files into {len(chunks)} chunks for thread {thread_id}"
        )

        vectors = await self.embedding_service.embed_batch([c.text for c in chunks])
        records = [
            VectorRecord(
                id=make_point_id(chunk.metadata["document_id"], chunk.chunk_index),
                vector=vector,
                content=chunk.text,
                metadata=chunk.metadata,
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        await self.vector_store.upsert(records)

        try:
            await self._write_metadata(prepared, thread_id, create=document_ids is None)
        except RAGException as e:
            orphaned = await self._rollback_vectors(thread_id, ids)
            raise MetadataStoreError(
                f"Failed to record documents: {e.message}",
                details={
                    "thread_id": thread_id,
                    "document_ids": ids,
                    "orphaned_document_ids": orphaned,
                    "cause": e.code,
                },
            ) from e
        except Exception as e:
            orphaned = await self._rollback_vectors(thread_id, ids)
            raise MetadataStoreError(
                f"Failed to record documents: {e}",
                details={
                    "thread_id": thread_id,
                    "document_ids": ids,
                    "orphaned_document_ids": orphaned,
                    "cause": type(e).__name__,
                },
            ) from e

        logger.info(
            f"Indexed {len(prepared)} documents ({len(records)} chunks) into thread {thread_id}"
        )
        return IndexingResult(
            success=True,
            documents_indexed=len(prepared),
            chunks_created=len(records),
            document_ids=ids,
        )

    async def _prepare(
        self, file: SourceFile, thread_id: str, document_id: str, uploaded_at: str
    ) -> PreparedFile:
        base_metadata = {
            "thread_id": thread_id,
            "file_name": file.name,
            "document_id": document_id,
            "uploaded_at": uploaded_at,
            "content_type": file.mime_type,
            "source_type": file.source_type.value,
        }
        if file.source_url:
            base_metadata["source_url"] = file.source_url

        if file.text is not None:
            text = file.text
        else:
            extracted = await self.extraction_service.extract(file)
            if extracted.is_binary:
                chunk = self.chunking_service.placeholder_chunk(file.name, file.mime_type, base_metadata)
                return PreparedFile(file=file, document_id=document_id, chunks=[self._tag(chunk)])
            text = extracted.text

        chunks = self.chunking_service.split(text, base_metadata=base_metadata)
        if not chunks:
            raise ValidationError(f"No content to index in {file.name}", errors={"file": file.name})
        return PreparedFile(file=file, document_id=document_id, chunks=[self._tag(c) for c in chunks])

    @staticmethod
    def _tag(chunk: TextChunk) -> TextChunk:
        chunk.metadata["chunk_index"] = chunk.chunk_index
        chunk.metadata["total_chunks"] = chunk.total_chunks
        return chunk

    async def _write_metadata(self, prepared: List[PreparedFile], thread_id: str, create: bool) -> None:
        async with session_scope(self.session_factory) as session:
            repo = DocumentRepository(session)
            for item in prepared:
                if create:
                    await repo.create_document(
                        thread_id=thread_id,
                        filename=item.file.name,
                        mime_type=item.file.mime_type,
                        size=item.file.size,
                        status=DocumentStatus.READY,
                        document_id=item.document_id,
                        source_type=item.file.source_type,
                        source_url=item.file.source_url,
                        chunk_count=len(item.chunks),
                    )
                else:
                    await repo.update_status(
                        item.document_id, DocumentStatus.READY, chunk_count=len(item.chunks)
                    )

    async def _rollback_vectors(self, thread_id: str, document_ids: List[str]) -> List[str]:
        """Delete the batch's vectors; returns the document ids whose vectors could not be removed."""
        orphaned = []
        for document_id in document_ids:
            try:
                await self.vector_store.delete_by_filter({"thread_id": thread_id, "document_id": document_id})
            except RAGException as e:
                logger.error(f"Vector rollback failed for document {document_id}: {e.message}")
                orphaned.append(document_id)
        if orphaned:
            logger.error(
                f"Orphaned vectors need reconciliation: thread={thread_id}, documents={orphaned}",
                extra={"thread_id": thread_id, "orphaned_document_ids": orphaned},
            )
        else:
            logger.warning(f"Rolled back vectors for {len(document_ids)} documents in thread {thread_id}")
        return orphaned
