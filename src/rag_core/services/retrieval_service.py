"""Thread-scoped similarity retrieval."""

from typing import Any, Dict, List, Optional

from rag_core.config import Settings, get_settings
from rag_core.models.rag import RetrievalResult, Source
from rag_core.models.vector import ContextChunk
from rag_core.services.embedding_service import EmbeddingService
from rag_core.services.vector_store import QdrantVectorStore
from rag_core.utils.errors import EmbeddingError, RetrievalError, ValidationError, VectorStoreError
from rag_core.utils.logging import get_logger

logger = get_logger("retrieval_service")


def build_retrieval_result(chunks: List[ContextChunk], grounded: bool = True) -> RetrievalResult:
    """Number the chunks into a context block and list their sources in the same order."""
    context_text = "\n\n".join(f"[{i}] {chunk.content}" for i, chunk in enumerate(chunks, start=1))
    sources = [
        Source(file_name=chunk.source or chunk.metadata.get("file_name", ""), similarity=chunk.score)
        for chunk in chunks
    ]
    return RetrievalResult(context_text=context_text, sources=sources, chunks=chunks, grounded=grounded)


class RetrievalEngine:
    """Embed a query once and return the top matching chunks of one thread."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: QdrantVectorStore,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.default_k = settings.retrieval.top_k
        self.default_threshold = settings.retrieval.score_threshold

    async def search(
        self,
        query: str,
        thread_id: str,
        k: Optional[int] = None,
        score_threshold: Optional[float] = None,
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> List[ContextChunk]:
        """
        Ranked chunks for the query, restricted to the thread.

        Raises:
            ValidationError: If the query or thread id is empty
            RetrievalError: If embedding or search fails
        """
        if not query or not query.strip():
            raise ValidationError("Query is required")
        if not thread_id:
            raise ValidationError("thread_id is required")

        k = self.default_k if k is None else k
        threshold = self.default_threshold if score_threshold is None else score_threshold
        metadata_filter = {**(extra_filter or {}), "thread_id": thread_id}

        try:
            query_vector = await self.embedding_service.embed(query)
            return await self.vector_store.search_similar(
                query_vector, k=k, score_threshold=threshold, metadata_filter=metadata_filter
            )
        except (EmbeddingError, VectorStoreError) as e:
            logger.error(f"Retrieval failed for thread {thread_id}: {e.message}")
            raise RetrievalError(
                f"Context retrieval failed: {e.message}",
                details={"thread_id": thread_id, "cause": e.code},
            ) from e

    async def retrieve(
        self,
        query: str,
        thread_id: str,
        k: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> RetrievalResult:
        """Context text and sources for the query. No matches gives an empty result."""
        chunks = await self.search(query, thread_id, k=k, score_threshold=score_threshold)
        logger.info(f"Retrieved {len(chunks)} chunks for thread {thread_id}")
        return build_retrieval_result(chunks)
