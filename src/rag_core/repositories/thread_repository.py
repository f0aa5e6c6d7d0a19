"""Thread repository."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rag_core.database.models import Thread
from rag_core.repositories.base import BaseRepository
from rag_core.utils.errors import NotFoundError


class ThreadRepository(BaseRepository[Thread]):
    """Repository for conversation threads."""

    def __init__(self, session: AsyncSession):
        super().__init__(Thread, session)

    async def create_thread(self, title: Optional[str] = None, thread_id: Optional[str] = None) -> Thread:
        kwargs = {"title": title}
        if thread_id:
            kwargs["id"] = thread_id
        return await self.create(**kwargs)

    async def require(self, thread_id: str) -> Thread:
        """Get a thread or raise NotFoundError."""
        thread = await self.get_by_id(thread_id)
        if thread is None:
            raise NotFoundError("Thread", thread_id)
        return thread
