"""Message repository."""

from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rag_core.database.models import Message
from rag_core.repositories.base import BaseRepository, logger
from rag_core.utils.errors import MetadataStoreError, ValidationError

VALID_ROLES = ("user", "assistant", "system")


class MessageRepository(BaseRepository[Message]):
    """Repository for thread chat history."""

    def __init__(self, session: AsyncSession):
        super().__init__(Message, session)

    async def add_message(self, thread_id: str, role: str, content: str) -> Message:
        if role not in VALID_ROLES:
            raise ValidationError(f"Invalid message role: {role}", errors={"role": role})
        return await self.create(thread_id=thread_id, role=role, content=content)

    async def recent(self, thread_id: str, limit: int = 20) -> List[Message]:
        """Most recent messages of a thread, oldest first."""
        try:
            result = await self.session.execute(
                select(Message)
                .where(Message.thread_id == thread_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            return list(reversed(result.scalars().all()))
        except SQLAlchemyError as e:
            logger.error(f"Error loading messages for thread {thread_id}: {e}")
            raise MetadataStoreError("Failed to retrieve messages") from e
