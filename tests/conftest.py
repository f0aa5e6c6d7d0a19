"""Pytest configuration and fixtures."""

import hashlib
import re
from types import SimpleNamespace
from typing import Dict, List

import pytest
from qdrant_client import QdrantClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rag_core.config import (
    ChunkingSettings,
    EmbeddingSettings,
    LLMSettings,
    RAGSettings,
    RetrievalSettings,
    Settings,
)
from rag_core.database.models import Base
from rag_core.database.session import session_scope
from rag_core.repositories.thread_repository import ThreadRepository
from rag_core.services.rag_service import build_rag_service
from rag_core.utils.errors import GenerationError

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_DIMENSION = 64

_WORD_RE = re.compile(r"[a-z0-9]+")


def fake_vector(text: str, dimension: int = TEST_DIMENSION) -> List[float]:
    """Bag-of-words hashing vector: texts sharing words are similar."""
    vector = [0.01] * dimension
    for word in _WORD_RE.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    return vector


class FakeEmbeddingsClient:
    """Stands in for AsyncOpenAI; records every `embeddings.create` call."""

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension
        self.calls: List[List[str]] = []
        self.embeddings = SimpleNamespace(create=self._create)

    async def _create(self, model: str, input: List[str]):
        self.calls.append(list(input))
        data = [
            SimpleNamespace(index=i, embedding=fake_vector(text, self.dimension))
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=data)


class StubLLM:
    """Stands in for LLMService; answers with a fixed string and records the messages."""

    def __init__(self, answer: str = "Stub answer", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages):
        self.calls.append(messages)
        if self.fail:
            raise GenerationError("provider exploded: secret-key-123 rejected", model="stub")
        return self.answer

    async def stream(self, messages):
        self.calls.append(messages)
        if self.fail:
            raise GenerationError("provider exploded", model="stub")
        for word in self.answer.split(" "):
            yield word + " "

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1][0]["content"]


def make_settings(**overrides) -> Settings:
    values = dict(
        embedding=EmbeddingSettings(
            openai_api_key="test-key",
            embedding_dimension=TEST_DIMENSION,
            embedding_max_retries=1,
            embedding_batch_size=50,
        ),
        llm=LLMSettings(model="openai/test-model", max_retries=1),
        chunking=ChunkingSettings(chunk_size=200, chunk_overlap=20, chunking_method="sentence"),
        retrieval=RetrievalSettings(top_k=5, score_threshold=0.2),
        rag=RAGSettings(context_providers_str="document"),
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def qdrant_client():
    client = QdrantClient(location=":memory:")
    yield client
    client.close()


@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def embeddings_client():
    return FakeEmbeddingsClient()


@pytest.fixture
def llm():
    return StubLLM()


@pytest.fixture
async def rag_service(settings, session_factory, qdrant_client, embeddings_client, llm):
    service = build_rag_service(
        settings,
        session_factory,
        qdrant_client=qdrant_client,
        embeddings_client=embeddings_client,
        llm_service=llm,
    )
    yield service
    if service.ingestion_queue is not None:
        await service.ingestion_queue.close()


async def create_thread(session_factory, title: str = "Test thread") -> str:
    async with session_scope(session_factory) as session:
        thread = await ThreadRepository(session).create_thread(title=title)
        return thread.id


@pytest.fixture
async def thread_id(session_factory):
    return await create_thread(session_factory)
