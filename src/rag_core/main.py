"""FastAPI application entry point.

Creates the application with:
- Lifespan that builds the RAG facade (database, Qdrant, embeddings, LLM)
- Request ID middleware and CORS
- Exception handlers that render RAGException.to_dict()
- API v1 routers and root health checks
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rag_core.api.v1 import health
from rag_core.api.v1.router import router as v1_router
from rag_core.config import Settings, get_settings
from rag_core.database.session import create_engine_from_settings, create_session_factory, init_models
from rag_core.middleware import RequestIDMiddleware
from rag_core.services.rag_service import RAGService, build_rag_service
from rag_core.utils.errors import RAGException
from rag_core.utils.logging import get_logger, log_error, setup_logging

logger = get_logger("main")


def create_app(settings: Optional[Settings] = None, rag_service: Optional[RAGService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings())
        rag_service: Pre-built facade; when given, startup does not build one
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} ({settings.environment.value})...")
        engine = None
        if getattr(app.state, "rag_service", None) is None:
            engine = create_engine_from_settings(settings)
            await init_models(engine)
            app.state.rag_service = build_rag_service(settings, create_session_factory(engine))
            logger.info(
                f"RAG service ready: qdrant={settings.qdrant.url}, "
                f"collection={settings.qdrant.collection_name}, "
                f"providers={settings.rag.context_providers}"
            )

        yield

        logger.info(f"Shutting down {settings.app_name}...")
        await app.state.rag_service.close()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="RAG Core",
        description="Thread-scoped retrieval-augmented chat over uploaded documents and links",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    if rag_service is not None:
        app.state.rag_service = rag_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure via environment in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(RAGException)
    async def rag_exception_handler(request: Request, exc: RAGException):
        log_error(exc, context={"path": request.url.path, "method": request.method})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "message": exc.detail,
                    "code": "HTTP_ERROR",
                    "status_code": exc.status_code,
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "message": "Validation error",
                    "code": "VALIDATION_ERROR",
                    "status_code": 422,
                    "details": jsonable_errors(exc),
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        log_error(exc, context={"path": request.url.path, "method": request.method})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "message": "Internal server error",
                    "code": "INTERNAL_ERROR",
                    "status_code": 500,
                }
            },
        )

    app.include_router(v1_router)
    # Root-level health checks for container orchestrators
    app.add_api_route("/health", health.health_check, methods=["GET"], tags=["health"], include_in_schema=False)
    app.add_api_route("/ready", health.readiness_check, methods=["GET"], tags=["health"], include_in_schema=False)

    return app


def jsonable_errors(exc: RequestValidationError):
    return [{k: v for k, v in err.items() if k in ("loc", "msg", "type")} for err in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rag_core.main:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )
