"""
Shared test fixtures and configuration for the entire test suite.

Provides: environment for ``Settings``, a fake Pinecone index, a fake
embedder, agent fixtures and an AsyncMock chat model.
System role: Test infrastructure; no test touches Pinecone, Gemini or MongoDB.
"""

import os

# Settings() is instantiated at import time; these must exist first.
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("PINECONE_API_KEY", "test-pinecone-key")
os.environ.setdefault("PINECONE_INDEX", "test-index")
os.environ["ENV"] = "dev"
os.environ.pop("MONGO_URI", None)

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragent.src.database.vector_store import AgentMetadata, AgentVectorStore

DIM = 768


def make_match(id: str, metadata: dict, score: float = 0.0, values: list[float] | None = None) -> SimpleNamespace:
    """Shape of a Pinecone query match."""
    return SimpleNamespace(id=id, score=score, metadata=metadata, values=values)


class FakeEmbedder:
    """Deterministic embedder returning a constant unit-ish vector."""

    def __init__(self) -> None:
        self.queries: list[str] = []
        self.documents: list[list[str]] = []

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return [0.1] * DIM

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.documents.append(list(texts))
        return [[0.1] * DIM for _ in texts]


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index() -> MagicMock:
    """
    Mock Pinecone ``Index``.

    ``query`` returns no matches and ``fetch`` no vectors unless a test
    overrides ``return_value`` / ``side_effect``.
    """
    mock = MagicMock()
    mock.query.return_value = SimpleNamespace(matches=[])
    mock.fetch.return_value = SimpleNamespace(vectors={})
    return mock


@pytest.fixture
def store(embedder: FakeEmbedder, index: MagicMock) -> AgentVectorStore:
    return AgentVectorStore(embedder, index=index, namespace="")


@pytest.fixture
def agent() -> AgentMetadata:
    return AgentMetadata(
        agentId="agent-1",
        name="Coach",
        description="Tracks training load",
        category="Fitness Coach",
        useCases="Weekly running review",
        selectedContextIds=["fitness", "sleep"],
        isPublic=False,
        ownerId="user-1",
    )


@pytest.fixture
def llm() -> MagicMock:
    """Chat model whose ``ainvoke`` returns an ``AIMessage``-like object."""
    model = MagicMock()
    model.ainvoke = AsyncMock(return_value=SimpleNamespace(content="You ran 42 km this week."))
    return model


@pytest.fixture
def clarifier() -> MagicMock:
    model = MagicMock()
    model.ainvoke = AsyncMock(return_value=SimpleNamespace(content=""))
    return model
