"""Tests for the embedding service."""

import math
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from rag_core.config import EmbeddingSettings
from rag_core.services.embedding_service import EmbeddingService
from rag_core.utils.errors import EmbeddingError, ValidationError
from tests.conftest import TEST_DIMENSION, FakeEmbeddingsClient, fake_vector, make_settings


def mock_client(vectors):
    client = MagicMock()
    data = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=data))
    return client


class TestEmbedBatch:
    """Order, batching and validation of embed_batch."""

    async def test_preserves_input_order(self, settings):
        client = FakeEmbeddingsClient()
        svc = EmbeddingService(settings, client=client)
        texts = ["alpha", "beta", "gamma"]
        vectors = await svc.embed_batch(texts)
        assert vectors == [fake_vector(t) for t in texts]

    async def test_reorders_response_by_index(self, settings):
        v0, v1 = fake_vector("zero"), fake_vector("one")
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(
                data=[SimpleNamespace(index=1, embedding=v1), SimpleNamespace(index=0, embedding=v0)]
            )
        )
        svc = EmbeddingService(settings, client=client)
        assert await svc.embed_batch(["zero", "one"]) == [v0, v1]

    async def test_splits_into_batches(self):
        settings = make_settings(
            embedding=EmbeddingSettings(
                openai_api_key="k", embedding_dimension=TEST_DIMENSION, embedding_batch_size=2
            )
        )
        client = FakeEmbeddingsClient()
        svc = EmbeddingService(settings, client=client)
        vectors = await svc.embed_batch([f"text {i}" for i in range(5)])
        assert len(vectors) == 5
        assert [len(call) for call in client.calls] == [2, 2, 1]

    async def test_empty_list_returns_empty(self, settings):
        client = FakeEmbeddingsClient()
        svc = EmbeddingService(settings, client=client)
        assert await svc.embed_batch([]) == []
        assert client.calls == []

    async def test_empty_text_is_rejected(self, settings):
        svc = EmbeddingService(settings, client=FakeEmbeddingsClient())
        with pytest.raises(ValidationError):
            await svc.embed_batch(["ok", "   "])
        with pytest.raises(ValidationError):
            await svc.embed("")


class TestDegenerateVectors:
    """Any bad vector fails the whole call."""

    async def test_dimension_mismatch(self, settings):
        svc = EmbeddingService(settings, client=mock_client([[0.1] * (TEST_DIMENSION - 1)]))
        with pytest.raises(EmbeddingError) as exc_info:
            await svc.embed("hello")
        assert exc_info.value.details["expected_dimension"] == TEST_DIMENSION

    async def test_all_zero_vector(self, settings):
        svc = EmbeddingService(settings, client=mock_client([[0.0] * TEST_DIMENSION]))
        with pytest.raises(EmbeddingError):
            await svc.embed("hello")

    async def test_nan_vector(self, settings):
        vector = [0.1] * TEST_DIMENSION
        vector[3] = math.nan
        svc = EmbeddingService(settings, client=mock_client([vector]))
        with pytest.raises(EmbeddingError):
            await svc.embed("hello")

    async def test_empty_vector(self, settings):
        svc = EmbeddingService(settings, client=mock_client([[]]))
        with pytest.raises(EmbeddingError):
            await svc.embed("hello")

    async def test_one_bad_item_fails_batch(self, settings):
        good = [0.5] * TEST_DIMENSION
        svc = EmbeddingService(settings, client=mock_client([good, [0.0] * TEST_DIMENSION]))
        with pytest.raises(EmbeddingError):
            await svc.embed_batch(["a", "b"])

    async def test_count_mismatch(self, settings):
        svc = EmbeddingService(settings, client=mock_client([[0.5] * TEST_DIMENSION]))
        with pytest.raises(EmbeddingError) as exc_info:
            await svc.embed_batch(["a", "b"])
        assert exc_info.value.details == {"expected": 2, "got": 1, "model": settings.embedding.embedding_model}


class TestRemoteFailures:
    """Provider errors are wrapped."""

    async def test_request_failure_raises_embedding_error(self, settings):
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=RuntimeError("connection reset"))
        svc = EmbeddingService(settings, client=client)
        with pytest.raises(EmbeddingError) as exc_info:
            await svc.embed("hello")
        assert "connection reset" in exc_info.value.message

    async def test_missing_api_key(self):
        settings = make_settings(
            embedding=EmbeddingSettings(openai_api_key=None, embedding_dimension=TEST_DIMENSION)
        )
        svc = EmbeddingService(settings)
        with pytest.raises(EmbeddingError):
            await svc.embed("hello")
