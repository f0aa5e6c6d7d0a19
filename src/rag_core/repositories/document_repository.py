"""Document metadata repository."""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rag_core.database.models import Document
from rag_core.models.document import DocumentStatus, SourceType
from rag_core.repositories.base import BaseRepository, logger
from rag_core.utils.errors import InvalidStatusTransition, MetadataStoreError, NotFoundError

# READY and ERROR are terminal
ALLOWED_TRANSITIONS = {
    DocumentStatus.PROCESSING: {DocumentStatus.READY, DocumentStatus.ERROR},
    DocumentStatus.READY: set(),
    DocumentStatus.ERROR: set(),
}


class DocumentRepository(BaseRepository[Document]):
    """Repository for Document metadata rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(Document, session)

    async def create_document(
        self,
        thread_id: str,
        filename: str,
        mime_type: str,
        size: int = 0,
        status: DocumentStatus = DocumentStatus.PROCESSING,
        document_id: Optional[str] = None,
        original_name: Optional[str] = None,
        source_type: SourceType = SourceType.DOCUMENT,
        source_url: Optional[str] = None,
        chunk_count: int = 0,
    ) -> Document:
        """Create a Document row. The id may be pre-assigned so vectors can reference it."""
        kwargs = dict(
            thread_id=thread_id,
            filename=filename,
            original_name=original_name or filename,
            mime_type=mime_type,
            size=size,
            status=DocumentStatus(status).value,
            source_type=SourceType(source_type).value,
            source_url=source_url,
            chunk_count=chunk_count,
        )
        if document_id:
            kwargs["id"] = document_id
        return await self.create(**kwargs)

    async def get_by_thread(self, thread_id: str) -> List[Document]:
        """All documents of a thread, oldest first."""
        try:
            result = await self.session.execute(
                select(Document)
                .where(Document.thread_id == thread_id)
                .order_by(Document.created_at, Document.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing documents for thread {thread_id}: {e}")
            raise MetadataStoreError("Failed to retrieve documents") from e

    async def find_by_filename(self, thread_id: str, filename: str) -> List[Document]:
        try:
            result = await self.session.execute(
                select(Document).where(
                    Document.thread_id == thread_id, Document.filename == filename
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error finding document {filename} in thread {thread_id}: {e}")
            raise MetadataStoreError("Failed to retrieve documents") from e

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None,
        chunk_count: Optional[int] = None,
    ) -> Document:
        """
        Move a document along PROCESSING -> READY | ERROR.

        Raises:
            NotFoundError: If the document does not exist
            InvalidStatusTransition: If the move is not allowed
        """
        document = await self.get_by_id(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)

        current = DocumentStatus(document.status)
        requested = DocumentStatus(status)
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, requested.value, document_id=document_id)

        fields = {"status": requested.value, "updated_at": datetime.now(timezone.utc)}
        if error_message is not None:
            fields["error_message"] = error_message
        if chunk_count is not None:
            fields["chunk_count"] = chunk_count
        return await self.update(document_id, **fields)

    async def delete_by_filename(self, thread_id: str, filename: str) -> int:
        """Delete every row with this filename in the thread. Returns the number deleted."""
        try:
            result = await self.session.execute(
                delete(Document).where(
                    Document.thread_id == thread_id, Document.filename == filename
                )
            )
            await self.session.flush()
            deleted = result.rowcount or 0
            logger.debug(f"Deleted {deleted} document rows for {filename} in thread {thread_id}")
            return deleted
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {filename} in thread {thread_id}: {e}")
            raise MetadataStoreError("Failed to delete documents") from e
