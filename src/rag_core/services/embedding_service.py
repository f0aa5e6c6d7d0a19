"""Embedding generation service (OpenAI-compatible endpoint)."""

from __future__ import annotations

import math
from typing import List, Optional

from openai import AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from rag_core.config import Settings, get_settings
from rag_core.utils.errors import EmbeddingError, ValidationError
from rag_core.utils.logging import get_logger

logger = get_logger("embedding_service")


class EmbeddingService:
    """
    Turn text into dense vectors of the configured dimension.

    Works against OpenAI or any gateway exposing the `/embeddings` endpoint
    (set OPENAI_BASE_URL). Every returned vector is checked: wrong dimension,
    empty, all-zero or non-finite vectors fail the whole call.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None) -> None:
        self._settings = settings or get_settings()
        self._model_name = self._settings.embedding.embedding_model
        self._dimension = self._settings.embedding.embedding_dimension
        self._client = client

    @property
    def dimension(self) -> int:
        return self._dimension

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client

        if not self._settings.embedding.is_configured:
            raise EmbeddingError(
                "Embeddings are not configured. Set OPENAI_API_KEY (and OPENAI_BASE_URL for a gateway).",
                model=self._model_name,
            )
        self._client = AsyncOpenAI(
            api_key=self._settings.embedding.openai_api_key,
            base_url=self._settings.embedding.openai_base_url,
            timeout=self._settings.embedding.embedding_timeout,
        )
        return self._client

    async def _embed_batch(self, inputs: List[str]) -> List[List[float]]:
        """Embed one batch of texts."""
        client = self._get_client()
        try:
            resp = await client.embeddings.create(model=self._model_name, input=inputs)
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}", model=self._model_name) from e
        # the API may return items out of order; `index` is authoritative
        data = sorted(resp.data, key=lambda d: d.index)
        return [list(d.embedding) for d in data]

    async def _embed_batch_with_retry(self, inputs: List[str]) -> List[List[float]]:
        """Embed a batch with retry logic (rate limits, transient failures)."""
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.embedding.embedding_max_retries)),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(EmbeddingError),
        ):
            with attempt:
                return await self._embed_batch(inputs)
        # unreachable due to reraise=True, but keeps type checkers happy
        raise EmbeddingError("Embedding retries exhausted", model=self._model_name)

    def _check_vector(self, vector: List[float], position: int) -> None:
        if not vector:
            raise EmbeddingError(
                "Embedding vector is empty", model=self._model_name, details={"position": position}
            )
        if len(vector) != self._dimension:
            raise EmbeddingError(
                "Embedding dimension mismatch",
                model=self._model_name,
                details={
                    "position": position,
                    "expected_dimension": self._dimension,
                    "actual_dimension": len(vector),
                },
            )
        if not all(math.isfinite(v) for v in vector):
            raise EmbeddingError(
                "Embedding vector contains NaN or infinite values",
                model=self._model_name,
                details={"position": position},
            )
        if not any(vector):
            raise EmbeddingError(
                "Embedding vector is all zeros", model=self._model_name, details={"position": position}
            )

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts, preserving order.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            ValidationError: If any text is empty
            EmbeddingError: If the provider fails or returns an invalid vector
        """
        if not texts:
            return []

        empty = [i for i, t in enumerate(texts) if not t or not t.strip()]
        if empty:
            raise ValidationError("Cannot embed empty text", errors={"positions": empty})

        batch_size = max(1, self._settings.embedding.embedding_batch_size)
        logger.info(
            f"Generating embeddings: model={self._model_name}, "
            f"texts={len(texts)}, batch_size={batch_size}"
        )

        out: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start : start + batch_size]
            vectors = await self._embed_batch_with_retry(batch)
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    "Embedding response size mismatch",
                    model=self._model_name,
                    details={"expected": len(batch), "got": len(vectors)},
                )
            for offset, vector in enumerate(vectors):
                self._check_vector(vector, start + offset)
            out.extend(vectors)

        logger.info(f"Embeddings generated successfully: count={len(out)}, dimension={self._dimension}")
        return out
