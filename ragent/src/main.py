"""
Ragent - Application Entry Point
=================================
FastAPI application factory.  Registers the API routers, CORS, the
``{"error", "details"}`` error envelope and a lifespan hook that
pre-warms the shared services.

Run:
    uvicorn ragent.src.main:app --reload
    python -m ragent.src.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ragent.config.settings import settings
from ragent.src.api.deps import get_service_cache
from ragent.src.api.routes import agents_router, chat_router, contexts_router, embeddings_router, health_router, insights_router, retrieval_router
from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Pre-warm the service cache on startup; clear it on shutdown."""
    logger.info("Pre-warming service cache...")
    cache = get_service_cache()
    _ = cache.vector_store
    _ = cache.rag_service
    _ = cache.session_store
    logger.info("Service cache pre-warmed (sessions %s).", "enabled" if cache.session_store else "disabled")

    yield

    cache.clear()
    logger.info("Service cache cleared.")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        body = exc.detail
    else:
        body = {"error": exc.detail, "details": None}
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body), headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=jsonable_encoder({"error": "Invalid request", "details": exc.errors()}))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[API] Unhandled error on %s %s.", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Ragent API",
        description="Configurable RAG agents over Pinecone and Gemini",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(health_router)
    app.include_router(agents_router)
    app.include_router(chat_router)
    app.include_router(contexts_router)
    app.include_router(insights_router)
    app.include_router(retrieval_router)
    app.include_router(embeddings_router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("ragent.src.main:app", host=settings.HOST, port=settings.PORT)
