"""
HTTP API routes.

Routes:
- /api/agents/...            agent CRUD, discovery, execution, insights,
                             suggested questions
- /api/chat/...              chat-shaped execution and session history
- /api/contexts              user context listing and creation
- /api/insights/save         store a generated insight report
- /api/retrieval/...         category counts, ingestion, saved answers,
                             structured activities
- /api/embeddings/...        3-D projection of stored embeddings
- /health                    liveness probe

Handlers are thin: they validate the request, delegate to the service
layer and map domain errors to status codes.  Store-only handlers are
plain ``def`` so FastAPI runs the blocking Pinecone calls in its
threadpool.
"""

from __future__ import annotations

import functools
import uuid
from typing import Any, Callable, TypeVar

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ragent.src.api.deps import get_ingestion_pipeline, get_optional_user_id, get_rag_service, get_session_store, get_user_id, get_vector_store
from ragent.src.api.schemas import ActivityRequest, ActivityResponse, AgentListResponse, CategoriesResponse, CategoryCount, ChatResponse, ChatTurn, ContextListResponse, CreateAgentRequest, CreateAgentResponse, CreateContextRequest, CreateContextResponse, DiscoveredAgent, DiscoverResponse, IngestRequest, IngestResponse, QuestionRequest, SaveConversationRequest, SaveConversationResponse, SaveInsightRequest, SaveInsightResponse, SessionHistoryResponse, SuccessResponse, UpdateAgentRequest, VisualizationResponse
from ragent.src.core.ingestor import IngestionPipeline
from ragent.src.core.questions import QuestionsResponse
from ragent.src.core.rag_engine import AgentRAGService, ChatMessage, InsightResponse, InvalidConversationError, RAGResponse
from ragent.src.core.visualization import project_embeddings
from ragent.src.database.session_store import MongoSessionStore
from ragent.src.database.vector_store import AgentMetadata, AgentNotFoundError, AgentVectorStore
from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

agents_router = APIRouter(prefix="/api/agents", tags=["agents"])
chat_router = APIRouter(prefix="/api/chat", tags=["chat"])
contexts_router = APIRouter(prefix="/api/contexts", tags=["contexts"])
insights_router = APIRouter(prefix="/api/insights", tags=["insights"])
retrieval_router = APIRouter(prefix="/api/retrieval", tags=["retrieval"])
embeddings_router = APIRouter(prefix="/api/embeddings", tags=["embeddings"])
health_router = APIRouter(tags=["health"])


def api_error(status_code: int, error: str, details: Any = None) -> HTTPException:
    """``HTTPException`` whose body renders as ``{"error", "details"}``."""
    return HTTPException(status_code=status_code, detail={"error": error, "details": details})


def handle_agent_errors(func: F) -> F:
    """
    Map service exceptions raised during agent execution to HTTP errors.

    - message mentioning "API key" → 401
    - ``AgentNotFoundError``        → 404
    - ``InvalidConversationError``  → 400
    - anything else                 → 500
    """
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as exc:
            message = str(exc)
            if "API key" in message:
                logger.error("[API] Upstream rejected API key: %s", message)
                raise api_error(status.HTTP_401_UNAUTHORIZED, "Invalid API key configuration", message)
            if isinstance(exc, AgentNotFoundError):
                raise api_error(status.HTTP_404_NOT_FOUND, "Agent not found", message)
            if isinstance(exc, InvalidConversationError):
                raise api_error(status.HTTP_400_BAD_REQUEST, message)
            logger.exception("[API] Agent execution failed.")
            raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to execute agent", message)

    return wrapper  # type: ignore[return-value]


def parse_messages(payload: dict[str, Any]) -> list[ChatMessage]:
    """Validate the ``messages`` array of an execution request body."""
    raw = payload.get("messages")
    if not raw or not isinstance(raw, list):
        raise api_error(status.HTTP_400_BAD_REQUEST, "Messages array is required")
    try:
        return [ChatMessage.model_validate(m) for m in raw]
    except ValueError as exc:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid message format", str(exc))


def _load_agent(store: AgentVectorStore, agent_id: str) -> AgentMetadata:
    try:
        return store.get_agent_config(agent_id)
    except AgentNotFoundError:
        raise api_error(status.HTTP_404_NOT_FOUND, "Agent not found", agent_id)


def _require_owner(agent: AgentMetadata, user_id: str) -> None:
    if agent.ownerId != user_id:
        raise api_error(status.HTTP_403_FORBIDDEN, "Unauthorized to modify this agent")


def _require_same_user(body_user_id: str | None, user_id: str) -> None:
    """A ``userId`` in the body, when present, must match the caller."""
    if body_user_id is not None and body_user_id != user_id:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


def _require_sessions(sessions: MongoSessionStore | None) -> MongoSessionStore:
    if sessions is None:
        raise api_error(status.HTTP_503_SERVICE_UNAVAILABLE, "Session history is not configured")
    return sessions


# ══════════════════════════════════════════════════════════════════════
#  AGENTS
# ══════════════════════════════════════════════════════════════════════


@agents_router.post("/create", response_model=CreateAgentResponse)
def create_agent(request: CreateAgentRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> CreateAgentResponse:
    agent_id = str(uuid.uuid4())
    config = request.model_dump(include={"name", "description", "category", "useCases", "triggers", "isPublic"})
    try:
        agent = store.store_agent(agent_id, config, request.selectedCategories, user_id, [(c.text, c.source) for c in request.contexts])
    except Exception as exc:
        logger.exception("[API] Failed to create agent.")
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create agent", str(exc))
    return CreateAgentResponse(agentId=agent.agentId)


@agents_router.get("/public", response_model=AgentListResponse)
def list_public_agents(store: AgentVectorStore = Depends(get_vector_store)) -> AgentListResponse:
    return AgentListResponse(agents=store.list_public_agents())


@agents_router.get("/user", response_model=AgentListResponse)
def list_user_agents(user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> AgentListResponse:
    return AgentListResponse(agents=store.list_user_agents(user_id))


@agents_router.get("/discover", response_model=DiscoverResponse)
def discover_agents(q: str = Query(min_length=1), top_k: int = Query(default=5, ge=1, le=50), store: AgentVectorStore = Depends(get_vector_store)) -> DiscoverResponse:
    """Semantic search over public agents."""
    return DiscoverResponse(agents=[DiscoveredAgent(agent=a, score=s) for a, s in store.discover_agents(q, top_k)])


@agents_router.get("/{agent_id}", response_model=AgentMetadata)
def get_agent(agent_id: str, user_id: str | None = Depends(get_optional_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> AgentMetadata:
    agent = _load_agent(store, agent_id)
    if not agent.isPublic and agent.ownerId != user_id:
        raise api_error(status.HTTP_403_FORBIDDEN, "Unauthorized to access this agent")
    return agent


@agents_router.put("/{agent_id}", response_model=AgentMetadata)
def update_agent(agent_id: str, request: UpdateAgentRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> AgentMetadata:
    _require_owner(_load_agent(store, agent_id), user_id)
    return store.update_agent_config(agent_id, request.model_dump(exclude_none=True))


@agents_router.delete("/{agent_id}", response_model=SuccessResponse)
def delete_agent(agent_id: str, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> SuccessResponse:
    _require_owner(_load_agent(store, agent_id), user_id)
    store.delete_agent(agent_id)
    return SuccessResponse()


@agents_router.post("/{agent_id}/execute", response_model=RAGResponse)
@handle_agent_errors
async def execute_agent(agent_id: str, payload: dict[str, Any] = Body(...), user_id: str = Depends(get_user_id), rag: AgentRAGService = Depends(get_rag_service), sessions: MongoSessionStore | None = Depends(get_session_store)) -> RAGResponse:
    """
    Run the agent RAG pipeline over a conversation.

    Body: ``{"messages": [{"role", "content"}, ...], "sessionId"?: str}``
    """
    messages = parse_messages(payload)
    result = await rag.generate_response(agent_id, messages)
    await _persist_exchange(sessions, payload.get("sessionId"), agent_id, messages[-1], result.response)
    return result


@agents_router.post("/{agent_id}/questions/execute", response_model=RAGResponse)
@handle_agent_errors
async def execute_question(agent_id: str, request: QuestionRequest, user_id: str = Depends(get_user_id), rag: AgentRAGService = Depends(get_rag_service)) -> RAGResponse:
    """Single-shot question without conversation history."""
    if not request.question.strip():
        raise api_error(status.HTTP_400_BAD_REQUEST, "Question is required")
    return await rag.generate_response(agent_id, [ChatMessage(role="user", content=request.question)])


@agents_router.post("/{agent_id}/insights", response_model=InsightResponse)
@handle_agent_errors
async def agent_insights(agent_id: str, payload: dict[str, Any] = Body(...), user_id: str = Depends(get_user_id), rag: AgentRAGService = Depends(get_rag_service)) -> InsightResponse:
    return await rag.generate_insights(agent_id, parse_messages(payload))


@agents_router.get("/{agent_id}/questions", response_model=QuestionsResponse)
@handle_agent_errors
async def agent_questions(agent_id: str, user_id: str = Depends(get_user_id), rag: AgentRAGService = Depends(get_rag_service)) -> QuestionsResponse:
    """Example questions tailored to the agent's context categories."""
    return await rag.generate_questions(agent_id)


# ══════════════════════════════════════════════════════════════════════
#  CHAT
# ══════════════════════════════════════════════════════════════════════


@chat_router.post("/agent/{agent_id}", response_model=ChatResponse)
@handle_agent_errors
async def chat_with_agent(agent_id: str, payload: dict[str, Any] = Body(...), rag: AgentRAGService = Depends(get_rag_service), sessions: MongoSessionStore | None = Depends(get_session_store)) -> ChatResponse:
    """
    Chat-shaped execution: echoes the conversation with the assistant
    reply appended.

    Body: ``{"messages": [...], "sessionId"?: str}``
    """
    messages = parse_messages(payload)
    result = await rag.generate_response(agent_id, messages)
    await _persist_exchange(sessions, payload.get("sessionId"), agent_id, messages[-1], result.response)

    turns = [ChatTurn(id=m.id, role=m.role, content=m.content) for m in messages]
    turns.append(ChatTurn(id=str(len(messages)), role="assistant", content=result.response))
    return ChatResponse(messages=turns, agentId=agent_id)


async def _persist_exchange(sessions: MongoSessionStore | None, session_id: Any, agent_id: str, question: ChatMessage, answer: str) -> None:
    """Append the user turn and the reply to the session log, if one is configured."""
    if sessions is None or not session_id:
        return
    try:
        await sessions.add_messages(str(session_id), agent_id, [{"role": question.role, "content": question.content}, {"role": "assistant", "content": answer}])
    except Exception:
        logger.exception("[API] Failed to persist session '%s'.", session_id)


@chat_router.get("/sessions/{session_id}", response_model=SessionHistoryResponse)
async def get_session(session_id: str, limit: int | None = Query(default=None, ge=1, le=500), sessions: MongoSessionStore | None = Depends(get_session_store)) -> SessionHistoryResponse:
    history = await _require_sessions(sessions).get_history(session_id, limit)
    return SessionHistoryResponse(sessionId=session_id, messages=[ChatTurn(role=m.get("role", "user"), content=m.get("content", "")) for m in history])


@chat_router.delete("/sessions/{session_id}", response_model=SuccessResponse)
async def delete_session(session_id: str, sessions: MongoSessionStore | None = Depends(get_session_store)) -> SuccessResponse:
    if not await _require_sessions(sessions).clear_session(session_id):
        raise api_error(status.HTTP_404_NOT_FOUND, "Session not found", session_id)
    return SuccessResponse()


# ══════════════════════════════════════════════════════════════════════
#  CONTEXTS & RETRIEVAL
# ══════════════════════════════════════════════════════════════════════


@contexts_router.get("", response_model=ContextListResponse)
def list_contexts(userId: str | None = Query(default=None), store: AgentVectorStore = Depends(get_vector_store)) -> ContextListResponse:
    if not userId:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Missing userId parameter")
    return ContextListResponse(contexts=store.get_user_contexts(userId))


@contexts_router.post("", response_model=CreateContextResponse)
def create_context(request: CreateContextRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> CreateContextResponse:
    context_id = store.add_user_context(user_id, request.title, request.content, request.description, request.categories)
    return CreateContextResponse(contextId=context_id)


@retrieval_router.get("/categories", response_model=CategoriesResponse)
def list_categories(user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> CategoriesResponse:
    counts = store.list_categories(user_id)
    return CategoriesResponse(categories=[CategoryCount(name=name, count=count) for name, count in counts.items()])


@retrieval_router.post("/ingest", response_model=IngestResponse)
def ingest_content(request: IngestRequest, user_id: str = Depends(get_user_id), pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)) -> IngestResponse:
    try:
        result = pipeline.ingest_text(user_id, request.content, request.type, request.title, request.categories, request.source, request.contentId)
    except ValueError as exc:
        raise api_error(status.HTTP_400_BAD_REQUEST, str(exc))
    return IngestResponse(contentId=result.content_id, chunks=result.chunks)


@insights_router.post("/save", response_model=SaveInsightResponse)
def save_insight(request: SaveInsightRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> SaveInsightResponse:
    record = store.save_insight(user_id, request.category, request.summary, request.trends, request.keyTopics, request.recommendations, request.connections, request.insightType)
    return SaveInsightResponse(insightId=record.id, category=record.title, insightType=request.insightType, message=f'Insight saved successfully under "{record.title}" category')


@retrieval_router.post("/save-response", response_model=SaveConversationResponse)
def save_response(request: SaveConversationRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> SaveConversationResponse:
    """Store an agent answer so later runs can retrieve it."""
    _require_same_user(request.userId, user_id)
    record = store.save_conversation(user_id, request.sessionId, request.query, request.response, request.categories)
    return SaveConversationResponse(id=record.id, title=record.title, sessionId=request.sessionId)


@retrieval_router.post("/activities", response_model=ActivityResponse)
def save_activity(request: ActivityRequest, user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> ActivityResponse:
    _require_same_user(request.userId, user_id)
    record = store.add_activity(user_id, request.text, request.activity, request.structuredData, request.categories)
    return ActivityResponse(id=record.id, title=record.title, activity=request.activity, structuredData=request.structuredData)


@embeddings_router.get("/visualization", response_model=VisualizationResponse)
def embeddings_visualization(category: str | None = Query(default=None), user_id: str = Depends(get_user_id), store: AgentVectorStore = Depends(get_vector_store)) -> VisualizationResponse:
    return VisualizationResponse(points=project_embeddings(store.fetch_user_vectors(user_id, category)))


@health_router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
