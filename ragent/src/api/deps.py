"""
Dependency injection container.

Lazily builds the shared embedder, vector store, RAG service, ingestion
pipeline and (optional) session store, and exposes them as FastAPI
dependencies.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status

from ragent.config.settings import settings
from ragent.src.core.ingestor import IngestionPipeline
from ragent.src.core.rag_engine import AgentRAGService
from ragent.src.database.session_store import MongoSessionStore
from ragent.src.database.vector_store import AgentVectorStore
from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceCache:
    """Container for cached service instances."""

    def __init__(self) -> None:
        self._embedder = None
        self._vector_store: AgentVectorStore | None = None
        self._rag_service: AgentRAGService | None = None
        self._ingestion: IngestionPipeline | None = None
        self._session_store: MongoSessionStore | None = None

    @property
    def embedder(self):
        if self._embedder is None:
            from langchain_google_genai import GoogleGenerativeAIEmbeddings

            self._embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
            logger.info("Embedding model initialised: %s", settings.EMBEDDING_MODEL)
        return self._embedder

    @property
    def vector_store(self) -> AgentVectorStore:
        if self._vector_store is None:
            self._vector_store = AgentVectorStore(self.embedder)
        return self._vector_store

    @property
    def rag_service(self) -> AgentRAGService:
        if self._rag_service is None:
            self._rag_service = AgentRAGService(self.vector_store)
        return self._rag_service

    @property
    def ingestion(self) -> IngestionPipeline:
        if self._ingestion is None:
            self._ingestion = IngestionPipeline(self.vector_store)
        return self._ingestion

    @property
    def session_store(self) -> MongoSessionStore | None:
        """``None`` when ``MONGO_URI`` is not configured."""
        if self._session_store is None and settings.MONGO_URI is not None:
            self._session_store = MongoSessionStore()
        return self._session_store

    def clear(self) -> None:
        """Clear all cached instances."""
        self._embedder = None
        self._vector_store = None
        self._rag_service = None
        self._ingestion = None
        self._session_store = None


_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    return _service_cache


def get_vector_store() -> AgentVectorStore:
    return _service_cache.vector_store


def get_rag_service() -> AgentRAGService:
    return _service_cache.rag_service


def get_ingestion_pipeline() -> IngestionPipeline:
    return _service_cache.ingestion


def get_session_store() -> MongoSessionStore | None:
    return _service_cache.session_store


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Caller identity, set by the upstream auth gateway in ``X-User-Id``.

    Raises:
        HTTPException(401): Header missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id.strip()


def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None
