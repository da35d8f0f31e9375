"""
Ragent - AgentVectorStore
==========================
OOP wrapper around a Pinecone index providing a clean interface for:
  • Agent configuration records (``agent_<id>``, ``type="agent_config"``)
  • User context records (documents, notes, activities, contexts)
  • Category-scoped similarity search for agent RAG
  • Saved insights, saved conversations and structured activities
  • Raw vector export for the embeddings dashboard

Design decisions:
  • **Singleton index handle** – ``_get_index()`` caches the Pinecone
    ``Index`` per index name so every store shares one HTTP pool.
  • **Dependency Injection** – the embedder (and optionally the index)
    is injected, making the store testable with mocks.
  • **Placeholder vector** – metadata-only listings query with a unit
    vector; Pinecone rejects all-zero query vectors on cosine indexes.
  • **No nulls in metadata** – Pinecone refuses ``None`` values, so
    every record is passed through ``_clean_metadata`` before upsert.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from ragent.src.database.vector_store import AgentVectorStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    store = AgentVectorStore(embedder)
    agent = store.get_agent_config("4f1c…")
    docs = store.get_agent_context(agent, "how did my runs go?", category="fitness")
"""

from __future__ import annotations

import secrets
import threading
import time
from collections import Counter
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from pinecone import Pinecone
from pydantic import BaseModel, ConfigDict, Field

from ragent.config.settings import settings
from ragent.src.utils.logger import get_logger
from ragent.src.utils.text_utils import clean_labels, normalize_categories

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
MetadataValue = str | int | float | bool | list[str]
RecordMetadata = dict[str, MetadataValue]
VectorRecord = dict[str, str | list[float] | RecordMetadata]

# ── Constants ──────────────────────────────────────────────────────────
AGENT_TYPE = "agent_config"
CONTEXT_TYPE = "context"
INSIGHT_TYPE = "insight"
CONVERSATION_TYPE = "conversation"
ACTIVITY_TYPE = "activity"
DEFAULT_CATEGORY = "general"
_EMBED_BATCH_SIZE = 64
_CATEGORY_SCAN_TOP_K = 10000
_TITLE_CHARS = 50
_INDEX_LOCK = threading.Lock()
_index_cache: dict[str, Any] = {}


class AgentNotFoundError(LookupError):
    """Raised when no ``agent_<id>`` record exists in the index."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


# ── Record Models ─────────────────────────────────────────────────────

class AgentMetadata(BaseModel):
    """Agent configuration as stored in Pinecone metadata (camelCase keys)."""

    model_config = ConfigDict(extra="ignore")

    agentId: str
    name: str
    description: str = ""
    category: str = ""
    useCases: str = ""
    triggers: list[str] = Field(default_factory=list)
    selectedContextIds: list[str] = Field(default_factory=list)
    isPublic: bool = False
    ownerId: str = ""
    type: str = AGENT_TYPE
    createdAt: int = 0
    updatedAt: int = 0

    def embedding_text(self) -> str:
        return f"{self.name} {self.description} {self.useCases}"


class ContextDocument(BaseModel):
    """A retrieved context chunk with its similarity score."""

    page_content: str
    source: str = "Unknown"
    title: str = ""
    score: float = 0.0
    category: str = ""


class UserContext(BaseModel):
    id: str
    userId: str
    title: str = "Untitled"
    description: str | None = None
    content: str = ""
    categories: list[str] = Field(default_factory=list)
    createdAt: int = 0
    updatedAt: int = 0


class ActivityDetails(BaseModel):
    """Structured fields captured by the activity form."""

    model_config = ConfigDict(extra="ignore")

    activity: str = Field(min_length=1)
    duration: str = ""
    distance: str = ""
    intensity: str = ""
    feeling: str = ""
    goalSet: str = ""
    goalAchieved: str = ""
    additionalNotes: str = ""


class StoredRecord(BaseModel):
    id: str
    title: str = ""
    categories: list[str] = Field(default_factory=list)


# ── Helpers ───────────────────────────────────────────────────────────

def _now_ms() -> int:
    return int(time.time() * 1000)


def _agent_record_id(agent_id: str) -> str:
    return f"agent_{agent_id}"


def _clean_metadata(metadata: Mapping[str, Any]) -> RecordMetadata:
    """Drop ``None`` values and coerce list items to strings."""
    cleaned: RecordMetadata = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            cleaned[key] = [str(v) for v in value]
        else:
            cleaned[key] = value
    return cleaned


def placeholder_vector(dimension: int | None = None) -> list[float]:
    """Unit vector ``[1, 0, 0, …]`` for metadata-only queries."""
    vector = [0.0] * (dimension or settings.VECTOR_DIMENSION)
    vector[0] = 1.0
    return vector


def _get_index(index_name: str) -> Any:
    """
    Return a **singleton** Pinecone ``Index`` handle for *index_name*.

    Thread-safe via ``_INDEX_LOCK`` (double-checked).
    """
    if index_name not in _index_cache:
        with _INDEX_LOCK:
            if index_name not in _index_cache:
                logger.info("Opening Pinecone index: %s", index_name)
                client = Pinecone(api_key=settings.PINECONE_API_KEY.get_secret_value())
                _index_cache[index_name] = client.Index(index_name)
    return _index_cache[index_name]


class AgentVectorStore:
    """
    High-level abstraction over the Pinecone index backing agents and
    their context.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    index
        Override the Pinecone index handle.  Defaults to the cached
        handle for ``settings.PINECONE_INDEX``.
    namespace
        Override the namespace.  Defaults to ``settings.PINECONE_NAMESPACE``.
    """

    __slots__ = ("embedder", "index", "_namespace")

    def __init__(self, embedder: Embedder, index: Any | None = None, namespace: str | None = None) -> None:
        self.embedder: Embedder = embedder
        self.index = index if index is not None else _get_index(settings.PINECONE_INDEX)
        self._namespace: str = settings.PINECONE_NAMESPACE if namespace is None else namespace

    # ══════════════════════════════════════════════════════════════════
    #  LOW-LEVEL I/O
    # ══════════════════════════════════════════════════════════════════

    def embed_query(self, text: str) -> list[float]:
        try:
            return self.embedder.embed_query(text)
        except Exception as exc:
            logger.error("Failed to embed query: %s", exc)
            raise


    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of ``_EMBED_BATCH_SIZE``."""
        vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise
        return vectors


    def upsert_documents(self, records: list[VectorRecord]) -> int:
        """
        Upsert pre-built ``{"id", "values", "metadata"}`` records in
        batches of ``settings.UPSERT_BATCH_SIZE``.

        Returns
        -------
        int
            Number of records written.
        """
        batch_size = settings.UPSERT_BATCH_SIZE
        for i in range(0, len(records), batch_size):
            batch = [{"id": r["id"], "values": r["values"], "metadata": _clean_metadata(r.get("metadata", {}))} for r in records[i : i + batch_size]]
            self.index.upsert(vectors=batch, namespace=self._namespace)
            logger.debug("Upserted batch %d–%d.", i, i + len(batch) - 1)
        logger.info("Upserted %d record(s).", len(records))
        return len(records)


    def upsert_texts(self, ids: list[str], texts: list[str], metadatas: list[Mapping[str, Any]]) -> int:
        """Embed *texts* and upsert them with parallel *ids* / *metadatas*."""
        if not len(ids) == len(texts) == len(metadatas):
            raise ValueError(f"Length mismatch: {len(ids)} ids, {len(texts)} texts, {len(metadatas)} metadatas.")
        vectors = self.embed_texts(texts)
        records: list[VectorRecord] = [{"id": rid, "values": vec, "metadata": dict(meta)} for rid, vec, meta in zip(ids, vectors, metadatas)]
        return self.upsert_documents(records)


    def _query(self, vector: list[float], filter_dict: dict[str, Any] | None, top_k: int, include_values: bool = False) -> list[Any]:
        response = self.index.query(vector=vector, top_k=top_k, filter=filter_dict, include_metadata=True, include_values=include_values, namespace=self._namespace)
        matches = list(response.matches or [])
        logger.debug("Query (top_k=%d, filter=%s) returned %d match(es).", top_k, filter_dict, len(matches))
        return matches


    def _fetch(self, ids: list[str]) -> dict[str, Any]:
        response = self.index.fetch(ids=ids, namespace=self._namespace)
        return dict(response.vectors or {})

    # ══════════════════════════════════════════════════════════════════
    #  AGENT CONFIGURATION
    # ══════════════════════════════════════════════════════════════════

    def store_agent(self, agent_id: str, config: Mapping[str, Any], selected_context_ids: list[str], owner_id: str, context_texts: Iterable[tuple[str, str]] = ()) -> AgentMetadata:
        """
        Persist a new agent configuration and optional linked context.

        Parameters
        ----------
        config
            ``name``, ``description``, ``category``, ``useCases``,
            ``triggers`` and ``isPublic`` keys (missing keys default).
        context_texts
            ``(text, source)`` pairs stored as ``<agentId>_context_<i>``.
        """
        now = _now_ms()
        agent = AgentMetadata(
            agentId=agent_id,
            name=config.get("name") or "",
            description=config.get("description") or "",
            category=config.get("category") or "",
            useCases=config.get("useCases") or "",
            triggers=list(config.get("triggers") or []),
            selectedContextIds=clean_labels(selected_context_ids),
            isPublic=bool(config.get("isPublic", False)),
            ownerId=owner_id,
            createdAt=now,
            updatedAt=now,
        )

        self.upsert_documents([{"id": _agent_record_id(agent_id), "values": self.embed_query(agent.embedding_text()), "metadata": agent.model_dump()}])
        logger.info("Stored agent '%s' (%s) for owner %s.", agent.name, agent_id, owner_id)

        contexts = list(context_texts)
        if contexts:
            ids = [f"{agent_id}_context_{i}" for i in range(len(contexts))]
            metadatas = [{"agentId": agent_id, "userId": owner_id, "type": CONTEXT_TYPE, "text": text, "source": source or "Unknown", "title": f"Uploaded Context {i + 1}", "createdAt": now} for i, (text, source) in enumerate(contexts)]
            self.upsert_texts(ids, [text for text, _ in contexts], metadatas)

        return agent


    def get_agent_config(self, agent_id: str) -> AgentMetadata:
        """Fetch ``agent_<id>``; raises ``AgentNotFoundError`` if absent."""
        record_id = _agent_record_id(agent_id)
        record = self._fetch([record_id]).get(record_id)
        if record is None or not record.metadata:
            logger.warning("Agent record %s not found.", record_id)
            raise AgentNotFoundError(agent_id)
        return AgentMetadata.model_validate(dict(record.metadata))


    def update_agent_config(self, agent_id: str, updates: Mapping[str, Any]) -> AgentMetadata:
        """
        Merge *updates* into the stored config and re-embed it.

        ``agentId``, ``ownerId``, ``createdAt`` and ``type`` are immutable;
        ``updatedAt`` is always refreshed.  ``None`` values are ignored.
        """
        current = self.get_agent_config(agent_id)
        merged = current.model_dump()
        merged.update({k: v for k, v in updates.items() if v is not None})
        merged["selectedContextIds"] = clean_labels(merged.get("selectedContextIds") or [])
        merged.update(agentId=agent_id, ownerId=current.ownerId, createdAt=current.createdAt, type=AGENT_TYPE, updatedAt=_now_ms())
        updated = AgentMetadata.model_validate(merged)

        self.upsert_documents([{"id": _agent_record_id(agent_id), "values": self.embed_query(updated.embedding_text()), "metadata": updated.model_dump()}])
        logger.info("Updated agent %s.", agent_id)
        return updated


    def delete_agent(self, agent_id: str) -> None:
        """Delete the agent config and every context record linked to it."""
        linked = self._query(placeholder_vector(), {"agentId": {"$eq": agent_id}}, settings.LIST_TOP_K)
        ids = [_agent_record_id(agent_id)] + [m.id for m in linked if m.id.startswith(f"{agent_id}_")]
        self.index.delete(ids=ids, namespace=self._namespace)
        logger.info("Deleted agent %s and %d linked record(s).", agent_id, len(ids) - 1)


    def _list_agents(self, filter_dict: dict[str, Any]) -> list[AgentMetadata]:
        agents: list[AgentMetadata] = []
        for match in self._query(placeholder_vector(), filter_dict, settings.LIST_TOP_K):
            metadata = dict(match.metadata or {})
            if not (metadata.get("agentId") and metadata.get("name") and metadata.get("description")):
                logger.debug("Skipping invalid agent record %s.", match.id)
                continue
            agents.append(AgentMetadata.model_validate(metadata))
        return agents


    def list_public_agents(self) -> list[AgentMetadata]:
        return self._list_agents({"type": {"$eq": AGENT_TYPE}, "isPublic": {"$eq": True}})


    def list_user_agents(self, owner_id: str) -> list[AgentMetadata]:
        return self._list_agents({"type": {"$eq": AGENT_TYPE}, "ownerId": {"$eq": owner_id}})


    def discover_agents(self, query: str, top_k: int = 5) -> list[tuple[AgentMetadata, float]]:
        """Semantic search over public agent configs."""
        results: list[tuple[AgentMetadata, float]] = []
        for match in self._query(self.embed_query(query), {"type": {"$eq": AGENT_TYPE}, "isPublic": {"$eq": True}}, top_k):
            metadata = dict(match.metadata or {})
            if metadata.get("agentId") and metadata.get("name"):
                results.append((AgentMetadata.model_validate(metadata), float(match.score or 0.0)))
        return results

    # ══════════════════════════════════════════════════════════════════
    #  AGENT CONTEXT
    # ══════════════════════════════════════════════════════════════════

    def get_agent_context(self, agent: AgentMetadata, query: str, category: str | None = None, top_k: int | None = None, query_vector: list[float] | None = None) -> list[ContextDocument]:
        """
        Retrieve context chunks for *agent*, most relevant first.

        With ``category=None`` only records linked to the agent itself
        (``agentId``) are searched.  With a category, the owner's records
        tagged with that category are searched.

        Parameters
        ----------
        query_vector
            Pre-computed embedding of *query*; avoids re-embedding when
            the caller queries several categories.
        """
        if category is None:
            filter_dict: dict[str, Any] = {"agentId": {"$eq": agent.agentId}}
        else:
            filter_dict = {"userId": {"$eq": agent.ownerId}, "categories": {"$in": [category]}}

        vector = query_vector if query_vector is not None else self.embed_query(query or "general context")
        matches = self._query(vector, filter_dict, top_k or settings.CONTEXT_TOP_K)

        documents: list[ContextDocument] = []
        for match in matches:
            metadata = dict(match.metadata or {})
            text = metadata.get("text", metadata.get("content"))
            if not isinstance(text, str) or not text:
                continue
            documents.append(ContextDocument(page_content=text, source=str(metadata.get("source") or "Unknown"), title=str(metadata.get("title") or ""), score=float(match.score or 0.0), category=category or ""))

        documents.sort(key=lambda d: d.score, reverse=True)
        logger.info("Context for agent %s (category=%s): %d document(s).", agent.agentId, category, len(documents))
        return documents

    # ══════════════════════════════════════════════════════════════════
    #  USER CONTEXTS & CATEGORIES
    # ══════════════════════════════════════════════════════════════════

    def get_user_contexts(self, user_id: str) -> list[UserContext]:
        contexts: list[UserContext] = []
        for match in self._query(placeholder_vector(), {"userId": {"$eq": user_id}, "type": {"$eq": CONTEXT_TYPE}}, settings.LIST_TOP_K):
            metadata = dict(match.metadata or {})
            contexts.append(UserContext(
                id=match.id,
                userId=str(metadata.get("userId", "")),
                title=str(metadata.get("title") or "Untitled"),
                description=str(metadata["description"]) if metadata.get("description") else None,
                content=str(metadata.get("content") or metadata.get("text") or ""),
                categories=normalize_categories(metadata) if metadata.get("categories") else [],
                createdAt=int(metadata.get("createdAt") or 0),
                updatedAt=int(metadata.get("updatedAt") or 0),
            ))
        return contexts


    def add_user_context(self, user_id: str, title: str, content: str, description: str = "", categories: Iterable[str] = ()) -> str:
        """Embed and store a free-form user context; returns its id."""
        now = _now_ms()
        context_id = f"ctx_{now}_{secrets.token_hex(4)}"
        metadata = {"userId": user_id, "type": CONTEXT_TYPE, "source": "user", "title": title, "description": description, "content": content, "text": content, "categories": clean_labels(categories, default=DEFAULT_CATEGORY), "createdAt": now, "updatedAt": now}
        self.upsert_documents([{"id": context_id, "values": self.embed_query(content), "metadata": metadata}])
        logger.info("Stored user context %s for %s.", context_id, user_id)
        return context_id


    def list_categories(self, user_id: str) -> dict[str, int]:
        """Count the user's records per category label, sorted by name."""
        counts: Counter[str] = Counter()
        for match in self._query(placeholder_vector(), {"userId": {"$eq": user_id}}, _CATEGORY_SCAN_TOP_K):
            metadata = dict(match.metadata or {})
            if metadata.get("type") == AGENT_TYPE:
                continue
            counts.update(normalize_categories(metadata))
        return dict(sorted(counts.items()))


    def fetch_user_vectors(self, user_id: str, category: str | None = None, limit: int | None = None) -> list[tuple[str, list[float], dict[str, Any]]]:
        """Return ``(id, values, metadata)`` for the user's records (values included)."""
        filter_dict: dict[str, Any] = {"userId": {"$eq": user_id}}
        if category and category != "all":
            filter_dict["categories"] = {"$in": [category]}
        matches = self._query(placeholder_vector(), filter_dict, limit or settings.VISUALIZATION_MAX_VECTORS, include_values=True)
        return [(m.id, list(m.values or []), dict(m.metadata or {})) for m in matches]


    # ══════════════════════════════════════════════════════════════════
    #  SAVED OUTPUTS & ACTIVITIES
    # ══════════════════════════════════════════════════════════════════

    def save_insight(self, user_id: str, category: str, summary: str, trends: Sequence[str] = (), key_topics: Sequence[str] = (), recommendations: Sequence[str] = (), connections: Sequence[str] = (), insight_type: str = "full") -> StoredRecord:
        """
        Embed an insight report and file it under ``"<category> insights"``
        and ``"insight"`` so later agent runs can retrieve it.
        """
        sections = [f"INSIGHT SUMMARY ({insight_type} insight for {category}): {summary}"]
        for heading, items in (("KEY TRENDS", trends), ("KEY TOPICS", key_topics), ("RECOMMENDATIONS", recommendations), ("CONNECTIONS", connections)):
            sections.append(f"{heading}:\n" + "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1)))
        text = "\n\n".join(sections)

        now = _now_ms()
        stamp = time.strftime("%Y%m%d%H%M%S", time.gmtime(now / 1000))
        record_id = f"insight-{category}-{insight_type}-{stamp}-{secrets.token_hex(4)}"
        labels = [f"{category} insights", INSIGHT_TYPE]
        metadata = {"userId": user_id, "type": INSIGHT_TYPE, "insightType": insight_type, "originalCategory": category, "title": f"{category} insights", "summary": summary, "text": text, "categories": labels, "createdAt": now}

        self.upsert_documents([{"id": record_id, "values": self.embed_query(text), "metadata": metadata}])
        logger.info("Saved %s insight %s for %s.", insight_type, record_id, user_id)
        return StoredRecord(id=record_id, title=f"{category} insights", categories=labels)


    def save_conversation(self, user_id: str, session_id: str, query: str, response: str, categories: Iterable[str] = (CONVERSATION_TYPE,)) -> StoredRecord:
        """Store one question/answer pair as searchable user content."""
        labels = clean_labels(categories, default=CONVERSATION_TYPE)
        text = f"Query: {query}\n\nResponse: {response}"
        title = f"{query[:_TITLE_CHARS]}..." if len(query) > _TITLE_CHARS else query

        now = _now_ms()
        record_id = f"conversation_{user_id}_{session_id}_{now}_{secrets.token_hex(4)}"
        metadata = {"userId": user_id, "type": CONVERSATION_TYPE, "sessionId": session_id, "query": query, "response": response, "title": title, "text": text, "categories": labels, "source": "conversation", "createdAt": now}

        self.upsert_documents([{"id": record_id, "values": self.embed_query(text), "metadata": metadata}])
        logger.info("Saved conversation %s for %s.", record_id, user_id)
        return StoredRecord(id=record_id, title=title, categories=labels)


    def add_activity(self, user_id: str, text: str, activity: str, details: ActivityDetails, categories: Iterable[str] = ()) -> StoredRecord:
        """
        Store a structured activity as a single record (no chunking).

        The structured fields are flattened into the metadata so they can
        be filtered on; ``hasGoal`` / ``hasDistance`` are ``"yes"``/``"no"``.
        """
        name = details.activity[:1].upper() + details.activity[1:]
        title = name + (f" - {details.duration}" if details.duration else "") + (f" ({details.distance})" if details.distance else "")
        labels = clean_labels(categories, default=DEFAULT_CATEGORY)

        now = _now_ms()
        record_id = f"activity_{user_id}_{now}_{secrets.token_hex(4)}"
        metadata = {
            "userId": user_id,
            "type": ACTIVITY_TYPE,
            "activityId": record_id,
            "activity": activity,
            "activityType": details.activity,
            "title": title,
            "text": text,
            "categories": labels,
            "source": "activity",
            **details.model_dump(exclude={"activity"}),
            "hasGoal": "yes" if details.goalSet else "no",
            "hasDistance": "yes" if details.distance else "no",
            "createdAt": now,
        }

        self.upsert_documents([{"id": record_id, "values": self.embed_query(text), "metadata": metadata}])
        logger.info("Stored activity %s ('%s') for %s.", record_id, title, user_id)
        return StoredRecord(id=record_id, title=title, categories=labels)


    def __repr__(self) -> str:
        return f"AgentVectorStore(index='{settings.PINECONE_INDEX}', namespace='{self._namespace}')"
