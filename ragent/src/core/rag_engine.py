"""
Ragent - Agent RAG Engine
==========================
Orchestrates retrieval-augmented generation for configurable agents.

Architecture (OOP)
------------------
``AgentRAGService``
    Stateless pipeline orchestrator.  Conversational flow
    (``generate_response``):
        1. Validate → last message must come from the user
        2. Clarify → Gemini rewrites the query as a standalone search
        3. Load agent → ``agent_<id>`` config from Pinecone
        4. Retrieve → one query per selected context category plus the
           agent's own linked context, run concurrently
        5. Fallback → retry with the raw query if nothing matched
        6. Recommend → data the user could upload to improve answers
        7. Build prompt → agent persona + context + recommendations
        8. Call Gemini → async LLM invocation with the full conversation
        9. Post-process → canned reply without context, upload hint on
           refusals

    Structured flow (``generate_insights``) shares steps 1–5, then asks
    Gemini for a JSON insight report and parses it defensively.

    Question flow (``generate_questions``) maps the agent's categories
    onto known field schemas, has Gemini explain them, then asks for
    three example questions as JSON.

Concurrency
-----------
The Pinecone SDK is synchronous, so per-category queries are pushed to
worker threads with ``asyncio.to_thread`` and gathered.

Usage:
    from ragent.src.core.rag_engine import AgentRAGService
    rag = AgentRAGService(vector_store)
    result = await rag.generate_response("4f1c…", [ChatMessage(role="user", content="How was my week?")])
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from ragent.config.prompt_templates import AGENT_SYSTEM_PROMPT, CATEGORY_CLARIFICATION_PROMPT, CONTEXT_ONLY_ADDENDUM, EMPTY_RESPONSE_FALLBACK, INSIGHTS_SYSTEM_PROMPT, INSUFFICIENT_CONTEXT_SUFFIX, NO_CONTEXT_FOUND, NO_CONTEXT_RESPONSE, QUERY_CLARIFICATION_PROMPT, QUESTION_GENERATION_PROMPT, RECOMMENDATIONS_ADDENDUM, REFUSAL_MARKERS
from ragent.config.settings import settings
from ragent.src.core.questions import QuestionsResponse, analyze_category_fields, category_mappings_summary, fallback_questions, field_info, parse_questions
from ragent.src.core.recommendations import context_recommendations, generate_context_recommendations
from ragent.src.database.vector_store import AgentMetadata, AgentVectorStore, ContextDocument
from ragent.src.utils.logger import get_logger
from ragent.src.utils.text_utils import estimate_tokens

logger = get_logger(__name__)

# Bucket label for records linked directly to the agent
AGENT_BUCKET = "agent"

_CLARIFY_MIN_RATIO = 0.8
_SAMPLE_CHARS = 150

NO_SAMPLES = "No sample context data available - this indicates limited data for comprehensive analysis"
SAMPLES_UNAVAILABLE = "Context data access limited - additional context uploads recommended"


class InvalidConversationError(ValueError):
    """The message list cannot be answered (empty, or last turn not from the user)."""


# ══════════════════════════════════════════════════════════════════════
#  WIRE MODELS
# ══════════════════════════════════════════════════════════════════════


class ChatMessage(BaseModel):
    role: str
    content: str
    id: str | None = None


class RelevanceScore(BaseModel):
    source: str = "Unknown"
    score: float = 0.0
    category: str = ""


class RAGResponse(BaseModel):
    success: bool = True
    response: str
    agentId: str
    contextUsed: int
    relevanceScores: list[RelevanceScore] = Field(default_factory=list)


class Insight(BaseModel):
    insight: str = ""
    evidence: str = ""
    confidence: float = 0.0
    category: str = ""


class InsightMetadata(BaseModel):
    responseTime: float = 0.0
    contextUsed: bool = False
    categoriesAnalyzed: list[str] = Field(default_factory=list)
    confidenceScore: float = 0.8


class CategoryContext(BaseModel):
    category: str
    count: int
    relevantCount: int


class InsightResponse(RAGResponse):
    insights: list[Insight] = Field(default_factory=list)
    metadata: InsightMetadata = Field(default_factory=InsightMetadata)
    categoryContexts: list[CategoryContext] = Field(default_factory=list)
    responseTimeMs: float = 0.0


CategoryBucket = tuple[str, list[ContextDocument]]


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════


def _response_text(response: Any) -> str:
    """Extract plain text from a LangChain chat result."""
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        parts = [p.get("text", "") if isinstance(p, dict) else str(p) for p in content]
        return "".join(parts).strip()
    return str(content or "").strip()


def to_langchain_messages(messages: Sequence[ChatMessage]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for msg in messages:
        if msg.role in ("assistant", "ai", "model"):
            converted.append(AIMessage(content=msg.content))
        else:
            converted.append(HumanMessage(content=msg.content))
    return converted


def parse_insights(text: str) -> tuple[str, list[Insight], InsightMetadata]:
    """
    Parse the JSON insight report produced under ``INSIGHTS_SYSTEM_PROMPT``.

    Markdown code fences are stripped.  Anything that is not a JSON
    object yields an empty response, no insights and default metadata.
    """
    cleaned = text.replace("```json", "").replace("```", "").strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        logger.warning("[INSIGHTS] Model output is not JSON; returning empty report.")
        return "", [], InsightMetadata()

    try:
        parsed = json.loads(cleaned[start : end + 1], strict=False)
    except json.JSONDecodeError as exc:
        logger.warning("[INSIGHTS] Failed to parse model output: %s", exc)
        return "", [], InsightMetadata()

    if not isinstance(parsed, dict):
        return "", [], InsightMetadata()

    insights: list[Insight] = []
    for item in parsed.get("insights") or []:
        if isinstance(item, dict):
            try:
                insights.append(Insight.model_validate(item))
            except ValueError:
                logger.debug("[INSIGHTS] Dropping malformed insight: %s", item)

    raw_meta = parsed.get("metadata")
    if not isinstance(raw_meta, dict):
        raw_meta = {}
    try:
        metadata = InsightMetadata(
            responseTime=raw_meta.get("responseTime") or 0.0,
            contextUsed=bool(raw_meta.get("contextUsed", False)),
            categoriesAnalyzed=[str(c) for c in raw_meta.get("categoriesAnalyzed") or []],
            confidenceScore=raw_meta.get("confidenceScore") or 0.8,
        )
    except (TypeError, ValueError):
        logger.debug("[INSIGHTS] Malformed metadata block: %s", raw_meta)
        metadata = InsightMetadata()
    return str(parsed.get("response") or ""), insights, metadata


# ══════════════════════════════════════════════════════════════════════
#  AGENT RAG SERVICE
# ══════════════════════════════════════════════════════════════════════


class AgentRAGService:
    """
    Orchestrates the agent RAG pipeline: clarify → retrieve → generate.

    Parameters
    ----------
    vector_store
        An initialised ``AgentVectorStore``.
    llm
        Optional chat model for answers (defaults to Gemini at
        ``settings.LLM_TEMPERATURE``).
    clarifier_llm
        Optional chat model for query clarification (defaults to Gemini
        at ``settings.CLARIFY_TEMPERATURE``).
    """

    __slots__ = ("_store", "_llm", "_clarifier")

    def __init__(self, vector_store: AgentVectorStore, llm: object | None = None, clarifier_llm: object | None = None) -> None:
        self._store = vector_store
        self._llm = llm or self._init_llm(settings.LLM_TEMPERATURE, settings.LLM_MAX_OUTPUT_TOKENS)
        self._clarifier = clarifier_llm or self._init_llm(settings.CLARIFY_TEMPERATURE, settings.CLARIFY_MAX_OUTPUT_TOKENS)


    @staticmethod
    def _init_llm(temperature: float, max_output_tokens: int) -> object:
        """Initialise a Gemini chat model via LangChain."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=temperature, max_output_tokens=max_output_tokens, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        logger.info("LLM initialised: %s (temperature=%.1f, max_tokens=%d)", settings.LLM_MODEL, temperature, max_output_tokens)
        return llm

    # ══════════════════════════════════════════════════════════════════
    #  QUERY CLARIFICATION
    # ══════════════════════════════════════════════════════════════════

    async def clarify_query(self, original_query: str, history: Sequence[ChatMessage]) -> str:
        """
        Rewrite *original_query* into a standalone search query.

        The original is kept when the model returns nothing, echoes the
        query, returns something shorter than 80% of it, or fails.
        """
        chat_history = "\n".join(f"{m.role}: {m.content}" for m in history)
        prompt = QUERY_CLARIFICATION_PROMPT.format(chat_history=chat_history, original_query=original_query)

        try:
            response = await self._clarifier.ainvoke([HumanMessage(content=prompt)])  # type: ignore[union-attr]
            clarified = _response_text(response)
        except Exception:
            logger.warning("[RAG] Query clarification failed; using original query.", exc_info=True)
            return original_query

        if not clarified or clarified.lower() == original_query.lower() or len(clarified) < len(original_query) * _CLARIFY_MIN_RATIO:
            logger.info("[RAG] Clarification did not improve the query; keeping original.")
            return original_query

        logger.info("[RAG] Query clarified: '%s' → '%s'", original_query[:60], clarified[:60])
        return clarified

    # ══════════════════════════════════════════════════════════════════
    #  RETRIEVAL
    # ══════════════════════════════════════════════════════════════════

    async def gather_context(self, agent: AgentMetadata, query: str) -> list[CategoryBucket]:
        """
        Query every selected category plus the agent's linked context
        concurrently.  A failing category yields an empty bucket.
        """
        query_vector = await asyncio.to_thread(self._store.embed_query, query)
        categories: list[str | None] = [*agent.selectedContextIds, None]

        async def _one(category: str | None) -> CategoryBucket:
            label = category or AGENT_BUCKET
            try:
                docs = await asyncio.to_thread(self._store.get_agent_context, agent, query, category, None, query_vector)
            except Exception:
                logger.exception("[RAG] Context retrieval failed for category '%s'.", label)
                docs = []
            return label, docs

        buckets = list(await asyncio.gather(*(_one(c) for c in categories)))
        logger.info("[RAG] Retrieved %s", {label: len(docs) for label, docs in buckets})
        return buckets


    async def _retrieve_with_fallback(self, agent: AgentMetadata, clarified: str, original: str) -> list[CategoryBucket]:
        buckets = await self.gather_context(agent, clarified)
        if not any(docs for _, docs in buckets) and clarified != original:
            logger.info("[RAG] No context for clarified query; retrying with original.")
            buckets = await self.gather_context(agent, original)
        return buckets


    @staticmethod
    def optimize_context(docs: Sequence[ContextDocument], max_tokens: int | None = None) -> list[ContextDocument]:
        """Dedupe by text, order by score, and trim to the token budget."""
        budget = max_tokens or settings.CONTEXT_MAX_TOKENS
        seen: set[str] = set()
        selected: list[ContextDocument] = []
        used = 0.0

        for doc in sorted(docs, key=lambda d: d.score, reverse=True):
            if doc.page_content in seen:
                continue
            tokens = estimate_tokens(doc.page_content)
            if used + tokens > budget:
                break
            seen.add(doc.page_content)
            selected.append(doc)
            used += tokens

        logger.debug("[RAG] Context optimised: %d → %d doc(s), ~%.0f tokens.", len(docs), len(selected), used)
        return selected

    # ══════════════════════════════════════════════════════════════════
    #  PROMPT FORMATTING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def format_context(docs: Sequence[ContextDocument]) -> str:
        """Numbered context blocks with relevance percentages."""
        if not docs:
            return NO_CONTEXT_FOUND

        blocks: list[str] = []
        for i, doc in enumerate(sorted(docs, key=lambda d: d.score, reverse=True), 1):
            blocks.append(f"[Context {i}] (Relevance: {round(doc.score * 100)}%)\nSource: {doc.source}\n{doc.page_content}\n---")
        return "\n\n".join(blocks)


    @staticmethod
    def format_category_context(docs: Sequence[ContextDocument]) -> str:
        """Group by source, highest score first within each source."""
        if not docs:
            return NO_CONTEXT_FOUND

        grouped: dict[str, list[ContextDocument]] = {}
        for doc in docs:
            grouped.setdefault(doc.source, []).append(doc)

        sections: list[str] = []
        for source, items in grouped.items():
            entries = [f"[Entry {i}] (Relevance: {round(d.score * 100)}%)\n{d.page_content}" for i, d in enumerate(sorted(items, key=lambda d: d.score, reverse=True), 1)]
            sections.append(f"=== {source} ===\n" + "\n\n".join(entries) + "\n---")
        return "\n\n".join(sections)


    @staticmethod
    def build_system_prompt(agent: AgentMetadata, formatted_context: str, recommendations: str = "") -> str:
        prompt = AGENT_SYSTEM_PROMPT.format(name=agent.name, category=agent.category, description=agent.description, use_cases=agent.useCases, context=formatted_context)
        if recommendations:
            return prompt + RECOMMENDATIONS_ADDENDUM.format(recommendations=recommendations)
        return prompt + CONTEXT_ONLY_ADDENDUM

    # ══════════════════════════════════════════════════════════════════
    #  PIPELINES
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _split_conversation(messages: Sequence[ChatMessage]) -> tuple[ChatMessage, list[ChatMessage]]:
        if not messages or messages[-1].role != "user":
            raise InvalidConversationError("Last message must be from user")
        return messages[-1], list(messages[:-1])


    async def generate_response(self, agent_id: str, messages: Sequence[ChatMessage]) -> RAGResponse:
        """
        Answer the last user message as agent *agent_id*.

        Raises
        ------
        InvalidConversationError
            If the last message is not from the user.
        AgentNotFoundError
            If the agent does not exist.
        """
        t_start = time.perf_counter()
        last, history = self._split_conversation(messages)
        logger.info("[RAG] Agent %s: %d message(s), query='%s'", agent_id, len(messages), last.content[:60])

        clarified = await self.clarify_query(last.content, history)
        agent = await asyncio.to_thread(self._store.get_agent_config, agent_id)

        t_search = time.perf_counter()
        buckets = await self._retrieve_with_fallback(agent, clarified, last.content)
        docs = self.optimize_context([d for _, docs in buckets for d in docs])
        search_ms = (time.perf_counter() - t_search) * 1000

        recommendations = generate_context_recommendations(agent.category, len(docs), agent.selectedContextIds)
        system_prompt = self.build_system_prompt(agent, self.format_context(docs), recommendations)

        t_llm = time.perf_counter()
        response = await self._llm.ainvoke([SystemMessage(content=system_prompt), *to_langchain_messages(messages)])  # type: ignore[union-attr]
        answer = _response_text(response) or EMPTY_RESPONSE_FALLBACK
        llm_ms = (time.perf_counter() - t_llm) * 1000

        if not docs:
            answer = NO_CONTEXT_RESPONSE.format(category=agent.category, recommendations=recommendations)
        elif any(marker in answer.lower() for marker in REFUSAL_MARKERS):
            answer += INSUFFICIENT_CONTEXT_SUFFIX.format(recommendations=recommendations)

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (search=%.1f, llm=%.1f), context=%d", total_ms, search_ms, llm_ms, len(docs))

        return RAGResponse(
            response=answer,
            agentId=agent_id,
            contextUsed=len(docs),
            relevanceScores=[RelevanceScore(source=d.source, score=d.score, category=d.category or AGENT_BUCKET) for d in docs],
        )


    async def generate_insights(self, agent_id: str, messages: Sequence[ChatMessage]) -> InsightResponse:
        """Produce a structured JSON insight report grounded in every selected category."""
        t_start = time.perf_counter()
        last, history = self._split_conversation(messages)

        clarified = await self.clarify_query(last.content, history)
        agent = await asyncio.to_thread(self._store.get_agent_config, agent_id)
        buckets = await self._retrieve_with_fallback(agent, clarified, last.content)

        category_contexts = "\n".join(f"\nCATEGORY: {label.upper()}\n{self.format_category_context(docs)}\n" for label, docs in buckets)
        system_prompt = INSIGHTS_SYSTEM_PROMPT.format(category=agent.category, category_contexts=category_contexts)

        response = await self._llm.ainvoke([SystemMessage(content=system_prompt), *to_langchain_messages(messages)])  # type: ignore[union-attr]
        answer, insights, metadata = parse_insights(_response_text(response))

        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[INSIGHTS] Agent %s: %d insight(s) in %.1fms.", agent_id, len(insights), elapsed_ms)

        return InsightResponse(
            response=answer,
            agentId=agent_id,
            contextUsed=sum(len(docs) for _, docs in buckets),
            relevanceScores=[RelevanceScore(source=d.source, score=d.score, category=label) for label, docs in buckets for d in docs],
            insights=insights,
            metadata=metadata,
            categoryContexts=[CategoryContext(category=label, count=len(docs), relevantCount=sum(1 for d in docs if d.score > settings.RELEVANT_SCORE)) for label, docs in buckets],
            responseTimeMs=round(elapsed_ms, 1),
        )


    async def generate_questions(self, agent_id: str) -> QuestionsResponse:
        """
        Suggest example questions grounded in the agent's category schemas.

        The clarifier model first explains what the selected categories
        mean for this agent; the answer model then writes the questions
        as JSON.  Unusable JSON falls back to canned questions picked by
        the available fields.
        """
        t_start = time.perf_counter()
        agent = await asyncio.to_thread(self._store.get_agent_config, agent_id)
        selected = agent.selectedContextIds
        analysis = analyze_category_fields(selected)

        docs: list[ContextDocument] = []
        try:
            docs = await asyncio.to_thread(self._store.get_agent_context, agent, "", None)
            samples = "\n".join(f"Sample {i}: {d.page_content[:_SAMPLE_CHARS]}..." for i, d in enumerate(docs[:2], 1)) or NO_SAMPLES
        except Exception:
            logger.warning("[QUESTIONS] Could not load sample context for agent %s.", agent_id, exc_info=True)
            samples = SAMPLES_UNAVAILABLE
        recommendations = context_recommendations(agent.category, len(docs), selected)

        persona = {"name": agent.name or "AI Assistant", "description": agent.description or "A helpful AI assistant", "category": agent.category or "General", "use_cases": agent.useCases or "General assistance and information"}
        clarification = CATEGORY_CLARIFICATION_PROMPT.format(**persona, selected_categories=", ".join(selected) or "None", category_mappings=category_mappings_summary(), context_samples=samples)
        clarified_analysis = _response_text(await self._clarifier.ainvoke([HumanMessage(content=clarification)]))  # type: ignore[union-attr]

        prompt = QUESTION_GENERATION_PROMPT.format(**persona, clarified_analysis=clarified_analysis, category_field_info=analysis.category_info, context_analysis=analysis.context_analysis, context_recommendations="\n".join(f"• {r}" for r in recommendations))
        questions = parse_questions(_response_text(await self._llm.ainvoke([HumanMessage(content=prompt)])))  # type: ignore[union-attr]

        clarified = bool(questions)
        if not clarified:
            logger.info("[QUESTIONS] Using fallback questions for agent %s.", agent_id)
            questions = fallback_questions(analysis.available_fields, selected)

        logger.info("[QUESTIONS] Agent %s: %d question(s) in %.1fms.", agent_id, len(questions), (time.perf_counter() - t_start) * 1000)
        return QuestionsResponse(
            questions=questions,
            agentId=agent_id,
            agentName=agent.name,
            clarified=clarified,
            fallback=not clarified,
            contextRecommendations=recommendations,
            fieldInfo=field_info(analysis, selected, recommendations, clarified),
        )
