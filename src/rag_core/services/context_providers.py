"""Context providers and the aggregator that merges them."""

import asyncio
import math
import re
from typing import List, Optional, Protocol, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rag_core.config import Settings, get_settings
from rag_core.models.document import SourceType
from rag_core.models.rag import RetrievalResult
from rag_core.models.vector import ContextChunk
from rag_core.repositories.message_repository import MessageRepository
from rag_core.services.retrieval_service import RetrievalEngine, build_retrieval_result
from rag_core.utils.errors import RAGException, RetrievalError, ValidationError
from rag_core.utils.logging import get_logger

logger = get_logger("context_providers")

_TOKEN_RE = re.compile(r"\w+")


def _terms(text: str) -> set:
    return {t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 2}


class ContextProvider(Protocol):
    name: str

    async def get_context(self, query: str, thread_id: str, limit: int) -> List[ContextChunk]: ...


class ContextSource(Protocol):
    """Anything the generation orchestrator can pull context from."""

    async def retrieve(
        self,
        query: str,
        thread_id: str,
        k: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> RetrievalResult: ...


class DocumentProvider:
    """Chunks from uploaded documents."""

    name = "document"
    source_type = SourceType.DOCUMENT

    def __init__(self, engine: RetrievalEngine) -> None:
        self.engine = engine

    async def get_context(self, query: str, thread_id: str, limit: int) -> List[ContextChunk]:
        return await self.engine.search(
            query, thread_id, k=limit, extra_filter={"source_type": self.source_type.value}
        )


class LinkProvider(DocumentProvider):
    """Chunks from scraped web links."""

    name = "link"
    source_type = SourceType.LINK


class MemoryProvider:
    """Recent thread messages, scored by how many query terms they share."""

    name = "memory"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], history_size: int = 50) -> None:
        self.session_factory = session_factory
        self.history_size = history_size

    async def get_context(self, query: str, thread_id: str, limit: int) -> List[ContextChunk]:
        query_terms = _terms(query)
        if not query_terms:
            return []

        async with self.session_factory() as session:
            messages = await MessageRepository(session).recent(thread_id, limit=self.history_size)

        chunks = []
        for message in messages:
            overlap = len(query_terms & _terms(message.content))
            if not overlap:
                continue
            chunks.append(
                ContextChunk(
                    id=message.id,
                    content=f"{message.role}: {message.content}",
                    score=overlap / len(query_terms),
                    source="conversation",
                    metadata={"thread_id": thread_id, "role": message.role, "source_type": "memory"},
                )
            )
        chunks.sort(key=lambda c: (-c.score, c.id))
        return chunks[:limit]


class ContextAggregator:
    """
    Query several providers and merge their chunks.

    The chunk budget is split evenly across providers; results below
    `min_relevance` are dropped. A failing provider fails the whole call.
    """

    def __init__(self, providers: Sequence[ContextProvider], max_chunks: int, min_relevance: float = 0.0):
        if not providers:
            raise ValidationError("At least one context provider is required")
        self.providers = list(providers)
        self.max_chunks = max_chunks
        self.min_relevance = min_relevance

    async def retrieve(
        self,
        query: str,
        thread_id: str,
        k: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> RetrievalResult:
        limit = k or self.max_chunks
        per_provider = max(1, math.ceil(limit / len(self.providers)))
        floor = self.min_relevance if score_threshold is None else max(score_threshold, self.min_relevance)

        results = await asyncio.gather(
            *(p.get_context(query, thread_id, per_provider) for p in self.providers),
            return_exceptions=True,
        )

        merged: List[ContextChunk] = []
        for provider, result in zip(self.providers, results):
            if isinstance(result, (ValidationError, RetrievalError)):
                raise result
            if isinstance(result, Exception):
                message = result.message if isinstance(result, RAGException) else str(result)
                logger.error(f"Context provider {provider.name} failed: {message}")
                raise RetrievalError(
                    f"Context provider {provider.name} failed: {message}",
                    details={"provider": provider.name, "thread_id": thread_id},
                ) from result
            merged.extend(result)

        merged = [c for c in merged if c.score >= floor]
        merged.sort(key=lambda c: (-c.score, c.id))
        logger.info(
            f"Aggregated {len(merged[:limit])} chunks for thread {thread_id} "
            f"from {[p.name for p in self.providers]}"
        )
        return build_retrieval_result(merged[:limit])


def build_context_source(
    engine: RetrievalEngine,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
) -> Union[RetrievalEngine, ContextAggregator]:
    """Retrieval engine alone for `document`, otherwise an aggregator over the configured providers."""
    settings = settings or get_settings()
    names = settings.rag.context_providers
    if names == ["document"]:
        return engine

    registry = {
        "document": lambda: DocumentProvider(engine),
        "link": lambda: LinkProvider(engine),
        "memory": lambda: MemoryProvider(session_factory),
    }
    providers = [registry[name]() for name in dict.fromkeys(names)]
    return ContextAggregator(
        providers,
        max_chunks=settings.retrieval.top_k,
        min_relevance=settings.rag.min_relevance,
    )
