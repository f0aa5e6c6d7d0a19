"""Background ingestion job endpoints."""

from fastapi import APIRouter, Depends

from rag_core.api.v1.dependencies import get_rag_service
from rag_core.models.rag import Job
from rag_core.services.rag_service import RAGService
from rag_core.utils.errors import NotFoundError

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=Job)
async def get_job(job_id: str, service: RAGService = Depends(get_rag_service)):
    if service.ingestion_queue is None:
        raise NotFoundError("Job", job_id)
    return service.ingestion_queue.get(job_id)
