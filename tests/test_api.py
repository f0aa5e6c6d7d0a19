"""Tests for the HTTP API."""

import httpx
import pytest

from rag_core.main import create_app
from rag_core.services.rag_service import GENERATION_APOLOGY


@pytest.fixture
async def client(settings, rag_service):
    app = create_app(settings, rag_service=rag_service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def upload(name: str, content: bytes, mime_type: str = "text/plain"):
    return [("files", (name, content, mime_type))]


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_ready(self, client):
        response = await client.get("/api/v1/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"vector_store": True, "database": True}

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestThreads:
    async def test_create_and_get(self, client):
        created = await client.post("/api/v1/threads", json={"title": "Research"})
        assert created.status_code == 201
        thread_id = created.json()["id"]

        fetched = await client.get(f"/api/v1/threads/{thread_id}")
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Research"

    async def test_unknown_thread(self, client):
        response = await client.get("/api/v1/threads/missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestDocuments:
    async def test_upload_list_delete(self, client, thread_id):
        uploaded = await client.post(
            f"/api/v1/threads/{thread_id}/documents", files=upload("a.txt", b"The sky is blue.")
        )
        assert uploaded.status_code == 201
        assert uploaded.json()["chunks_created"] == 1

        listed = await client.get(f"/api/v1/threads/{thread_id}/documents")
        assert [d["filename"] for d in listed.json()] == ["a.txt"]
        assert listed.json()[0]["status"] == "READY"

        deleted = await client.delete(f"/api/v1/threads/{thread_id}/documents", params={"filename": "a.txt"})
        assert deleted.status_code == 200
        assert deleted.json()["deleted_count"] == 1

    async def test_unsupported_file(self, client, thread_id):
        response = await client.post(
            f"/api/v1/threads/{thread_id}/documents",
            files=upload("tool.exe", b"MZ", "application/octet-stream"),
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_upload_to_unknown_thread(self, client):
        response = await client.post("/api/v1/threads/missing/documents", files=upload("a.txt", b"text"))
        assert response.status_code == 404

    async def test_background_upload_and_job(self, client, rag_service, thread_id):
        response = await client.post(
            f"/api/v1/threads/{thread_id}/documents",
            params={"background": "true"},
            files=upload("a.txt", b"The sky is blue."),
        )
        assert response.status_code == 202
        job_id = response.json()["id"]

        await rag_service.ingestion_queue.wait(job_id, timeout=10)
        job = await client.get(f"/api/v1/jobs/{job_id}")
        assert job.status_code == 200
        assert job.json()["status"] == "succeeded"

    async def test_unknown_job(self, client):
        response = await client.get("/api/v1/jobs/missing")
        assert response.status_code == 404


class TestChat:
    async def test_chat(self, client, thread_id):
        await client.post(f"/api/v1/threads/{thread_id}/documents", files=upload("a.txt", b"The sky is blue."))

        response = await client.post(f"/api/v1/threads/{thread_id}/chat", json={"query": "sky colour"})

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Stub answer"
        assert body["context"]["sources"][0]["file_name"] == "a.txt"

    async def test_empty_query_rejected(self, client, thread_id):
        response = await client.post(f"/api/v1/threads/{thread_id}/chat", json={"query": ""})
        assert response.status_code == 422

    async def test_generation_failure(self, client, llm, thread_id):
        llm.fail = True
        response = await client.post(f"/api/v1/threads/{thread_id}/chat", json={"query": "hello"})
        assert response.status_code == 502
        assert response.json()["response"] == GENERATION_APOLOGY

    async def test_stream(self, client, thread_id):
        response = await client.post(
            f"/api/v1/threads/{thread_id}/chat", json={"query": "hello", "stream": True}
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        text = response.text
        assert text.startswith("event: sources\n")
        assert "event: delta\n" in text
        assert text.rstrip().endswith("event: done\ndata: null")

    async def test_stream_failure_sends_apology(self, client, llm, thread_id):
        llm.fail = True
        response = await client.post(
            f"/api/v1/threads/{thread_id}/chat", json={"query": "hello", "stream": True}
        )
        assert "event: error\n" in response.text
        assert GENERATION_APOLOGY in response.text
        assert "event: done" not in response.text
