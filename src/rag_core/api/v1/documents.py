"""Document and link ingestion endpoints."""

from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rag_core.api.v1.dependencies import get_rag_service, status_for_code
from rag_core.models.document import DocumentInfo, SourceFile
from rag_core.models.rag import DeletionResult, IndexingResult, Job
from rag_core.services.rag_service import RAGService
from rag_core.utils.logging import get_logger

logger = get_logger("documents_api")

router = APIRouter(prefix="/threads/{thread_id}", tags=["documents"])


class LinkRequest(BaseModel):
    url: str = Field(..., description="http(s) URL of the page to index")


def _indexing_response(result: IndexingResult) -> JSONResponse:
    status_code = status.HTTP_201_CREATED if result.success else status_for_code(result.error_code)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "/documents",
    response_model=IndexingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Upload documents into a thread",
    responses={202: {"model": Job}},
)
async def upload_documents(
    thread_id: str,
    files: List[UploadFile] = File(..., description="Files to index"),
    background: bool = Query(False, description="Queue indexing and return a job"),
    service: RAGService = Depends(get_rag_service),
):
    """
    Index uploaded files into the thread's knowledge base.

    Synchronous by default; with `background=true` the files are stored as
    PROCESSING documents and a job id is returned.
    """
    sources = [
        SourceFile(
            name=upload.filename or "unknown",
            content=await upload.read(),
            mime_type=upload.content_type or "application/octet-stream",
        )
        for upload in files
    ]

    if background:
        job = await service.submit_documents(sources, thread_id)
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=job.to_dict())

    return _indexing_response(await service.index_documents(sources, thread_id))


@router.get("/documents", response_model=List[DocumentInfo])
async def list_documents(thread_id: str, service: RAGService = Depends(get_rag_service)):
    return await service.list_documents(thread_id)


@router.delete("/documents", response_model=DeletionResult)
async def delete_documents(
    thread_id: str,
    filename: str = Query(..., min_length=1, description="File name to delete"),
    service: RAGService = Depends(get_rag_service),
):
    """Delete every document with this file name from the thread (vectors and rows)."""
    result = await service.delete_documents_by_filename(filename, thread_id)
    status_code = status.HTTP_200_OK if result.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("/links", response_model=IndexingResult, status_code=status.HTTP_201_CREATED)
async def add_link(thread_id: str, body: LinkRequest, service: RAGService = Depends(get_rag_service)):
    """Scrape a web page and index it into the thread."""
    return _indexing_response(await service.index_link(body.url, thread_id))
