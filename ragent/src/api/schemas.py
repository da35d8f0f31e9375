"""
Request / response models for the HTTP API.

Field names are camelCase to match the JSON contract of the web client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from ragent.src.core.visualization import VisualizationPoint
from ragent.src.database.vector_store import ActivityDetails, AgentMetadata, UserContext


def split_triggers(value: Any) -> list[str] | None:
    """Accept triggers as a list or a comma-separated string."""
    if value is None:
        return None
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return [str(t).strip() for t in value if str(t).strip()]


class ErrorResponse(BaseModel):
    error: str
    details: Any = None


# ── Agents ────────────────────────────────────────────────────────────


class ContextText(BaseModel):
    text: str
    source: str = "Unknown"


class CreateAgentRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    category: str = ""
    useCases: str = ""
    triggers: list[str] = Field(default_factory=list)
    isPublic: bool = False
    selectedCategories: list[str] = Field(default_factory=list)
    contexts: list[ContextText] = Field(default_factory=list)

    @field_validator("triggers", mode="before")
    @classmethod
    def _parse_triggers(cls, v: Any) -> list[str]:
        return split_triggers(v) or []


class CreateAgentResponse(BaseModel):
    success: bool = True
    agentId: str


class UpdateAgentRequest(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    useCases: str | None = None
    triggers: list[str] | None = None
    isPublic: bool | None = None
    selectedContextIds: list[str] | None = None

    @field_validator("triggers", mode="before")
    @classmethod
    def _parse_triggers(cls, v: Any) -> list[str] | None:
        return split_triggers(v)


class AgentListResponse(BaseModel):
    agents: list[AgentMetadata]


class DiscoveredAgent(BaseModel):
    agent: AgentMetadata
    score: float


class DiscoverResponse(BaseModel):
    agents: list[DiscoveredAgent]


class SuccessResponse(BaseModel):
    success: bool = True


# ── Execution & chat ──────────────────────────────────────────────────


class QuestionRequest(BaseModel):
    question: str = ""


class ChatTurn(BaseModel):
    id: str | None = None
    role: str
    content: str


class ChatResponse(BaseModel):
    messages: list[ChatTurn]
    agentId: str


class SessionHistoryResponse(BaseModel):
    sessionId: str
    messages: list[ChatTurn]


# ── Contexts & retrieval ──────────────────────────────────────────────


class ContextListResponse(BaseModel):
    contexts: list[UserContext]


class CreateContextRequest(BaseModel):
    title: str = "Untitled"
    content: str = Field(min_length=1)
    description: str = ""
    categories: list[str] = Field(default_factory=list)


class CreateContextResponse(BaseModel):
    contextId: str


class CategoryCount(BaseModel):
    name: str
    count: int


class CategoriesResponse(BaseModel):
    categories: list[CategoryCount]


class IngestRequest(BaseModel):
    content: str
    type: str = "document"
    title: str = "Untitled"
    categories: list[str] = Field(default_factory=list)
    source: str = "upload"
    contentId: str | None = None


class IngestResponse(BaseModel):
    success: bool = True
    contentId: str
    chunks: int


class VisualizationResponse(BaseModel):
    points: list[VisualizationPoint]


# ── Saved outputs & activities ────────────────────────────────────────


class SaveInsightRequest(BaseModel):
    category: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    trends: list[str] = Field(default_factory=list)
    keyTopics: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)
    insightType: str = "full"


class SaveInsightResponse(BaseModel):
    success: bool = True
    insightId: str
    category: str
    insightType: str
    message: str


class SaveConversationRequest(BaseModel):
    query: str = Field(min_length=1)
    response: str = Field(min_length=1)
    sessionId: str = Field(min_length=1)
    userId: str | None = None
    categories: list[str] = Field(default_factory=lambda: ["conversation"], min_length=1)


class SaveConversationResponse(BaseModel):
    success: bool = True
    id: str
    title: str
    sessionId: str
    message: str = "Conversation saved successfully"


class ActivityRequest(BaseModel):
    """Free-text activity log plus the structured form fields."""

    text: str = Field(min_length=1, max_length=10000)
    activity: str = Field(min_length=1)
    structuredData: ActivityDetails
    userId: str | None = None
    categories: list[str] = Field(default_factory=list)


class ActivityResponse(BaseModel):
    success: bool = True
    id: str
    title: str
    activity: str
    structuredData: ActivityDetails
    message: str = "Activity saved successfully"
