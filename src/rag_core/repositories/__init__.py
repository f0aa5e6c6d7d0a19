"""Repositories package."""

from rag_core.repositories.base import BaseRepository
from rag_core.repositories.document_repository import DocumentRepository
from rag_core.repositories.message_repository import MessageRepository
from rag_core.repositories.thread_repository import ThreadRepository

__all__ = [
    "BaseRepository",
    "DocumentRepository",
    "MessageRepository",
    "ThreadRepository",
]
