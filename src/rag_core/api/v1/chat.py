"""Chat endpoint."""

import json
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from rag_core.api.v1.dependencies import get_rag_service, status_for_code
from rag_core.config import RetrievalFailurePolicy
from rag_core.models.rag import GenerateResult
from rag_core.services.rag_service import GENERATION_APOLOGY, RAGService
from rag_core.utils.errors import GenerationError
from rag_core.utils.logging import get_logger

logger = get_logger("chat_api")

router = APIRouter(prefix="/threads/{thread_id}", tags=["chat"])


class ChatRequest(BaseModel):
    query: str = Field(..., min_length=1, description="User question")
    stream: bool = Field(False, description="Stream the answer as server-sent events")
    retrieval_failure_policy: Optional[RetrievalFailurePolicy] = Field(
        None, description="Override RAG_RETRIEVAL_FAILURE_POLICY for this request"
    )


def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.post("/chat", response_model=GenerateResult)
async def chat(thread_id: str, body: ChatRequest, service: RAGService = Depends(get_rag_service)):
    """
    Answer a question from the thread's documents.

    With `stream=true` the response is `text/event-stream`: one `sources`
    event, then `delta` events, then `done`.
    """
    if not body.stream:
        result = await service.generate_response(
            body.query, thread_id, retrieval_failure_policy=body.retrieval_failure_policy
        )
        status_code = status.HTTP_200_OK if result.success else status_for_code(result.error_code)
        return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))

    context, deltas = await service.orchestrator.open_stream(body.query, thread_id)

    async def event_stream():
        yield _sse("sources", [s.model_dump() for s in context.sources])
        try:
            async for delta in deltas:
                yield _sse("delta", delta)
        except GenerationError as e:
            logger.error(f"Streaming generation failed for thread {thread_id}: {e.message}")
            yield _sse("error", {"message": GENERATION_APOLOGY, "code": e.code})
            return
        yield _sse("done", None)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
