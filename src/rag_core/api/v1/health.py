"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from rag_core.config import get_settings
from rag_core.utils.logging import get_logger

logger = get_logger("health")

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Health check endpoint.

    Does not check external dependencies; healthy while the process is running.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(request: Request):
    """Readiness: the vector store and metadata store must answer."""
    service = getattr(request.app.state, "rag_service", None)
    checks = {"vector_store": False, "database": False}

    if service is not None:
        try:
            await service.vector_store.ensure_collection()
            checks["vector_store"] = True
        except Exception as e:
            logger.warning(f"Vector store check failed: {e}")
        try:
            await service.list_documents("__readiness__")
            checks["database"] = True
        except Exception as e:
            logger.warning(f"Database check failed: {e}")

    if not all(checks.values()):
        logger.warning(f"Readiness check failed: {checks}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
