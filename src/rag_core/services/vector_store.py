"""Qdrant vector store adapter."""

from __future__ import annotations

import asyncio
import math
import uuid
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
    VectorParams,
)

from rag_core.config import Settings, get_settings
from rag_core.models.vector import ContextChunk, VectorRecord
from rag_core.utils.errors import ValidationError, VectorStoreError
from rag_core.utils.logging import get_logger

logger = get_logger("vector_store")

# Deterministic namespace for generating stable point IDs from (document_id, chunk_index)
_POINT_ID_NAMESPACE = uuid.UUID("6b9c7d68-4b93-4c9c-9d83-0b6c68dbb4d9")


def make_point_id(document_id: str, chunk_index: int) -> str:
    """Create a stable UUID point id for a chunk."""
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, f"{document_id}:{chunk_index}"))


def build_filter(metadata_filter: Optional[Dict[str, Any]]) -> Optional[Filter]:
    """AND of exact-match conditions on payload keys."""
    if not metadata_filter:
        return None
    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in sorted(metadata_filter.items())
        ]
    )


class QdrantVectorStore:
    """
    Store and search chunk vectors in a single Qdrant collection.

    Strategy:
    - One collection, partitioned by the `thread_id` payload tag
    - Collection created on first use with vector size = embedding dimension
    - Payload: content, thread_id, file_name, document_id, chunk_index,
      total_chunks, uploaded_at, content_type, source_type
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[QdrantClient] = None,
        collection_name: Optional[str] = None,
        dimension: Optional[int] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self.collection_name = collection_name or self._settings.qdrant.collection_name
        self.dimension = dimension or self._settings.embedding.embedding_dimension
        self._collection_ready = False

    def _get_client(self) -> QdrantClient:
        if self._client is not None:
            return self._client

        self._client = QdrantClient(
            url=self._settings.qdrant.url,
            api_key=self._settings.qdrant.api_key,
            timeout=self._settings.qdrant.timeout,
        )
        return self._client

    async def ensure_collection(self) -> None:
        """Create the collection if missing; fail if it exists with another vector size."""
        if self._collection_ready:
            return

        def _ensure() -> bool:
            client = self._get_client()
            if not client.collection_exists(self.collection_name):
                client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
                )
                return True

            info = client.get_collection(self.collection_name)
            vectors = info.config.params.vectors
            current_size = getattr(vectors, "size", None)
            if current_size is not None and int(current_size) != int(self.dimension):
                raise VectorStoreError(
                    "Qdrant collection vector size mismatch",
                    details={
                        "collection": self.collection_name,
                        "expected": self.dimension,
                        "actual": int(current_size),
                    },
                )
            return False

        try:
            created = await asyncio.to_thread(_ensure)
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                "Failed to ensure Qdrant collection",
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

        self._collection_ready = True
        if created:
            logger.info(f"Qdrant collection created: {self.collection_name} (vector_size={self.dimension})")

    def _validate_record(self, record: VectorRecord) -> Optional[str]:
        if not record.id:
            return "missing id"
        if not record.vector:
            return "missing vector"
        if len(record.vector) != self.dimension:
            return f"dimension {len(record.vector)} != {self.dimension}"
        if not all(math.isfinite(v) for v in record.vector):
            return "non-finite vector values"
        return None

    async def upsert(self, records: List[VectorRecord]) -> int:
        """
        Write records; nothing is written unless every record is valid.

        Returns:
            Number of records written

        Raises:
            VectorStoreError: If any record is invalid or the write fails
        """
        if not records:
            return 0

        problems = {}
        for position, record in enumerate(records):
            problem = self._validate_record(record)
            if problem:
                problems[str(position)] = problem
        if problems:
            raise VectorStoreError("Invalid vector records; batch rejected", details={"records": problems})

        await self.ensure_collection()

        points = [
            PointStruct(id=record.id, vector=record.vector, payload=record.to_payload())
            for record in records
        ]

        def _upsert() -> None:
            self._get_client().upsert(collection_name=self.collection_name, points=points, wait=True)

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            raise VectorStoreError(
                "Failed to upsert vectors into Qdrant",
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

        logger.info(f"Qdrant upsert complete: collection={self.collection_name}, points={len(points)}")
        return len(points)

    async def search_similar(
        self,
        query_vector: List[float],
        k: int,
        score_threshold: Optional[float] = None,
        metadata_filter: Optional[Dict[str, Any]] = None,
    ) -> List[ContextChunk]:
        """
        Up to k most similar chunks matching every filter key.

        Qdrant picks which k points are returned; when scores tie at the cut-off
        that choice is Qdrant's. The returned points are then ordered by descending
        score, with equal scores ordered by point id. `score_threshold` keeps points
        scoring at or above it.
        """
        if k <= 0:
            return []
        if len(query_vector) != self.dimension:
            raise VectorStoreError(
                "Query vector dimension mismatch",
                details={"expected": self.dimension, "actual": len(query_vector)},
            )

        await self.ensure_collection()

        def _search():
            return self._get_client().query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=build_filter(metadata_filter),
                limit=k,
                score_threshold=score_threshold,
                with_payload=True,
            ).points

        try:
            points = await asyncio.to_thread(_search)
        except Exception as e:
            raise VectorStoreError(
                "Qdrant search failed",
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

        results = []
        for point in points:
            payload = dict(point.payload or {})
            content = payload.pop("content", "")
            results.append(
                ContextChunk(
                    id=str(point.id),
                    content=content,
                    score=float(point.score),
                    source=payload.get("file_name", ""),
                    metadata=payload,
                )
            )
        results.sort(key=lambda c: (-c.score, c.id))
        return results[:k]

    async def count(self, metadata_filter: Optional[Dict[str, Any]] = None) -> int:
        """Exact number of points matching the filter."""
        await self.ensure_collection()

        def _count() -> int:
            return self._get_client().count(
                collection_name=self.collection_name,
                count_filter=build_filter(metadata_filter),
                exact=True,
            ).count

        try:
            return await asyncio.to_thread(_count)
        except Exception as e:
            raise VectorStoreError(
                "Qdrant count failed",
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

    async def delete_by_filter(self, metadata_filter: Dict[str, Any]) -> int:
        """
        Delete every point matching the filter. Returns how many were deleted.

        Raises:
            ValidationError: If the filter is empty
        """
        if not metadata_filter:
            raise ValidationError("Refusing to delete with an empty filter")

        matched = await self.count(metadata_filter)
        if matched == 0:
            return 0

        qdrant_filter = build_filter(metadata_filter)

        def _delete() -> None:
            self._get_client().delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=qdrant_filter),
                wait=True,
            )

        try:
            await asyncio.to_thread(_delete)
        except Exception as e:
            raise VectorStoreError(
                "Qdrant delete failed",
                details={"collection": self.collection_name, "filter": metadata_filter, "error": str(e)},
            ) from e

        logger.info(f"Deleted {matched} vectors", extra={"filter": metadata_filter})
        return matched

    async def scroll_payloads(
        self, metadata_filter: Optional[Dict[str, Any]] = None, batch_size: int = 256
    ) -> List[Dict[str, Any]]:
        """All payloads matching the filter (without vectors)."""
        await self.ensure_collection()

        def _scroll() -> List[Dict[str, Any]]:
            client = self._get_client()
            payloads: List[Dict[str, Any]] = []
            offset = None
            while True:
                points, offset = client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=build_filter(metadata_filter),
                    limit=batch_size,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                payloads.extend(dict(p.payload or {}) for p in points)
                if offset is None:
                    return payloads

        try:
            return await asyncio.to_thread(_scroll)
        except Exception as e:
            raise VectorStoreError(
                "Qdrant scroll failed",
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
