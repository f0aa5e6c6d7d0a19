"""Shared dependencies for v1 endpoints."""

from typing import Optional

from fastapi import Request, status

from rag_core.services.rag_service import RAGService
from rag_core.utils.errors import RAGException

ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "INVALID_STATUS_TRANSITION": status.HTTP_409_CONFLICT,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EXTRACTION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "CHUNKING_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "METADATA_STORE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_rag_service(request: Request) -> RAGService:
    """RAG facade built during application startup."""
    service = getattr(request.app.state, "rag_service", None)
    if service is None:
        raise RAGException("Service is not ready", status_code=503, code="SERVICE_UNAVAILABLE")
    return service


def status_for_code(code: Optional[str]) -> int:
    """HTTP status for a failed result's error code; upstream failures map to 502."""
    return ERROR_STATUS.get(code or "", status.HTTP_502_BAD_GATEWAY)
