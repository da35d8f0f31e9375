"""
Ragent - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` and ``PINECONE_API_KEY`` are typed as ``SecretStr``
  and have **no default value**.  If either is missing at startup,
  Pydantic raises a ``ValidationError`` with a clear error message.
- ``MONGO_URI`` is optional.  When it is unset, chat sessions are
  stateless and nothing is persisted.

Retrieval
---------
``CONTEXT_TOP_K`` bounds every per-category Pinecone query and
``CONTEXT_MAX_TOKENS`` bounds the context block handed to Gemini.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini embeddings + chat).
    PINECONE_API_KEY : SecretStr
        API key for the Pinecone project holding the index.
    PINECONE_INDEX : str
        Name of the index storing agent configs and context records.
    PINECONE_NAMESPACE : str
        Namespace inside the index (empty string = default namespace).
    VECTOR_DIMENSION : int
        Dimension of the index; must match ``EMBEDDING_MODEL``.
    CONTEXT_TOP_K : int
        Matches requested per context category.
    CONTEXT_MAX_TOKENS : int
        Estimated-token budget for the context block of one prompt.
    RELEVANT_SCORE : float
        Similarity above which a match counts as "relevant" in reports.
    MONGO_URI : SecretStr | None
        Optional MongoDB connection string for chat session history.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    DATA_PROCESSED_DIR: Path = BASE_DIR / "data" / "processed"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys (REQUIRED, no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr
    PINECONE_API_KEY: SecretStr

    # ── Pinecone ───────────────────────────────────────────────────────
    PINECONE_INDEX: str
    PINECONE_NAMESPACE: str = ""
    VECTOR_DIMENSION: int = 768
    UPSERT_BATCH_SIZE: int = 100
    LIST_TOP_K: int = 100

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash-001"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_OUTPUT_TOKENS: int = 2048
    CLARIFY_TEMPERATURE: float = 0.3
    CLARIFY_MAX_OUTPUT_TOKENS: int = 512

    # ── Retrieval ──────────────────────────────────────────────────────
    CONTEXT_TOP_K: int = 10
    CONTEXT_MAX_TOKENS: int = 4000
    RELEVANT_SCORE: float = 0.7

    # ── Ingestion ──────────────────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    MAX_WORKERS: int = 4

    # ── Visualization ──────────────────────────────────────────────────
    VISUALIZATION_MAX_VECTORS: int = 500

    # ── API Server ─────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: list[str] = ["*"]

    # ── MongoDB (optional) ─────────────────────────────────────────────
    MONGO_URI: SecretStr | None = None
    MONGO_DB_NAME: str = "ragent"
    SESSION_HISTORY_LIMIT: int = 20

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_minimum(cls, v: int) -> int:
        if v < 100:
            raise ValueError(f"CHUNK_SIZE must be ≥ 100, got {v}")
        return v


    @field_validator("CONTEXT_TOP_K")
    @classmethod
    def _top_k_range(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(f"CONTEXT_TOP_K must be 1–100, got {v}")
        return v


    @field_validator("VECTOR_DIMENSION")
    @classmethod
    def _dimension_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"VECTOR_DIMENSION must be positive, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from ragent.config.settings import settings
settings = Settings()
