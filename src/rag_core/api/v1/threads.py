"""Thread endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from rag_core.api.v1.dependencies import get_rag_service
from rag_core.database.session import session_scope
from rag_core.repositories.thread_repository import ThreadRepository
from rag_core.services.rag_service import RAGService

router = APIRouter(prefix="/threads", tags=["threads"])


class ThreadCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)


class ThreadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: Optional[str] = None
    created_at: datetime


@router.post("", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def create_thread(body: ThreadCreate, service: RAGService = Depends(get_rag_service)):
    async with session_scope(service.session_factory) as session:
        thread = await ThreadRepository(session).create_thread(title=body.title)
        return ThreadResponse.model_validate(thread)


@router.get("/{thread_id}", response_model=ThreadResponse)
async def get_thread(thread_id: str, service: RAGService = Depends(get_rag_service)):
    async with session_scope(service.session_factory) as session:
        thread = await ThreadRepository(session).require(thread_id)
        return ThreadResponse.model_validate(thread)
