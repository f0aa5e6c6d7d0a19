"""API v1 router aggregation."""

from fastapi import APIRouter

from rag_core.api.v1 import chat, documents, health, jobs, threads

router = APIRouter(
    prefix="/api/v1",
    responses={
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(health.router)
router.include_router(threads.router)
router.include_router(documents.router)
router.include_router(chat.router)
router.include_router(jobs.router)
