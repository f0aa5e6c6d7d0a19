"""Database package."""

from rag_core.database.models import Base, Document, Message, Thread
from rag_core.database.session import (
    create_engine_from_settings,
    create_session_factory,
    init_models,
    session_scope,
)

__all__ = [
    "Base",
    "Document",
    "Message",
    "Thread",
    "create_engine_from_settings",
    "create_session_factory",
    "init_models",
    "session_scope",
]
