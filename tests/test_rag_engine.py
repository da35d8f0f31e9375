"""
Test suite for the agent RAG pipeline.

The vector store is a MagicMock and both chat models are AsyncMocks, so
these tests exercise orchestration only: clarification fallbacks,
per-category retrieval, prompt assembly and post-processing.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from ragent.config.prompt_templates import EMPTY_RESPONSE_FALLBACK, NO_CONTEXT_FOUND
from ragent.src.core.rag_engine import AGENT_BUCKET, AgentRAGService, ChatMessage, InvalidConversationError, parse_insights
from ragent.src.database.vector_store import AgentMetadata, AgentNotFoundError, AgentVectorStore, ContextDocument


def doc(text: str, score: float, source: str = "notes", category: str = "fitness") -> ContextDocument:
    return ContextDocument(page_content=text, source=source, score=score, category=category)


@pytest.fixture
def vector_store(agent: AgentMetadata) -> MagicMock:
    """Store returning the ``agent`` fixture and one fitness document."""
    store = MagicMock(spec=AgentVectorStore)
    store.embed_query.return_value = [0.1] * 768
    store.get_agent_config.return_value = agent

    def _context(agent, query, category=None, top_k=None, query_vector=None):
        return [doc("Ran 42 km", 0.9)] if category == "fitness" else []

    store.get_agent_context.side_effect = _context
    return store


@pytest.fixture
def service(vector_store: MagicMock, llm: MagicMock, clarifier: MagicMock) -> AgentRAGService:
    return AgentRAGService(vector_store, llm=llm, clarifier_llm=clarifier)


def user(content: str) -> ChatMessage:
    return ChatMessage(role="user", content=content)


class TestClarifyQuery:
    @pytest.mark.asyncio
    async def test_uses_clarified_query_when_long_enough(self, service: AgentRAGService, clarifier: MagicMock) -> None:
        clarifier.ainvoke.return_value = SimpleNamespace(content="How many kilometres did I run this week?")

        result = await service.clarify_query("and this week?", [ChatMessage(role="assistant", content="Last week you ran 30 km.")])

        assert result == "How many kilometres did I run this week?"
        prompt = clarifier.ainvoke.call_args.args[0][0].content
        assert "assistant: Last week you ran 30 km." in prompt
        assert "and this week?" in prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("clarified", ["", "AND THIS WEEK?", "week?"])
    async def test_keeps_original_when_clarification_is_not_better(self, service: AgentRAGService, clarifier: MagicMock, clarified: str) -> None:
        clarifier.ainvoke.return_value = SimpleNamespace(content=clarified)
        assert await service.clarify_query("and this week?", []) == "and this week?"

    @pytest.mark.asyncio
    async def test_keeps_original_when_model_fails(self, service: AgentRAGService, clarifier: MagicMock) -> None:
        clarifier.ainvoke.side_effect = RuntimeError("quota exceeded")
        assert await service.clarify_query("and this week?", []) == "and this week?"

    @pytest.mark.asyncio
    async def test_accepts_list_content_parts(self, service: AgentRAGService, clarifier: MagicMock) -> None:
        clarifier.ainvoke.return_value = SimpleNamespace(content=[{"type": "text", "text": "Weekly running "}, {"type": "text", "text": "distance summary"}])
        assert await service.clarify_query("my runs", []) == "Weekly running distance summary"


class TestGatherContext:
    @pytest.mark.asyncio
    async def test_queries_each_category_and_agent_bucket_with_one_embedding(self, service: AgentRAGService, vector_store: MagicMock, agent: AgentMetadata) -> None:
        buckets = await service.gather_context(agent, "weekly runs")

        assert [label for label, _ in buckets] == ["fitness", "sleep", AGENT_BUCKET]
        assert [len(docs) for _, docs in buckets] == [1, 0, 0]
        vector_store.embed_query.assert_called_once_with("weekly runs")
        categories = [c.args[2] for c in vector_store.get_agent_context.call_args_list]
        assert sorted(categories, key=str) == sorted(["fitness", "sleep", None], key=str)

    @pytest.mark.asyncio
    async def test_failing_category_yields_empty_bucket(self, service: AgentRAGService, vector_store: MagicMock, agent: AgentMetadata) -> None:
        def _context(agent, query, category=None, top_k=None, query_vector=None):
            if category == "sleep":
                raise ConnectionError("pinecone down")
            return [doc("Ran", 0.8)] if category == "fitness" else []

        vector_store.get_agent_context.side_effect = _context

        buckets = dict(await service.gather_context(agent, "q"))

        assert buckets["sleep"] == []
        assert len(buckets["fitness"]) == 1


class TestContextFormatting:
    def test_optimize_dedupes_sorts_and_trims(self) -> None:
        docs = [doc("a b", 0.5), doc("c d", 0.9), doc("a b", 0.7), doc(" ".join(["w"] * 100), 0.1)]

        result = AgentRAGService.optimize_context(docs, max_tokens=10)

        assert [d.page_content for d in result] == ["c d", "a b"]
        assert result[1].score == 0.7

    def test_format_context_numbers_blocks_by_relevance(self) -> None:
        text = AgentRAGService.format_context([doc("low", 0.42, source="s1"), doc("high", 0.876, source="s2")])

        assert text == "[Context 1] (Relevance: 88%)\nSource: s2\nhigh\n---\n\n[Context 2] (Relevance: 42%)\nSource: s1\nlow\n---"

    def test_format_context_without_documents(self) -> None:
        assert AgentRAGService.format_context([]) == NO_CONTEXT_FOUND

    def test_format_category_context_groups_by_source(self) -> None:
        text = AgentRAGService.format_category_context([doc("one", 0.5, source="strava"), doc("two", 0.9, source="strava"), doc("three", 0.3, source="garmin")])

        assert text.startswith("=== strava ===\n[Entry 1] (Relevance: 90%)\ntwo")
        assert "=== garmin ===\n[Entry 1] (Relevance: 30%)\nthree" in text

    def test_system_prompt_contains_persona_context_and_recommendations(self, agent: AgentMetadata) -> None:
        prompt = AgentRAGService.build_system_prompt(agent, "CONTEXT-BLOCK", "Upload sleep data")

        assert agent.name in prompt
        assert agent.useCases in prompt
        assert "CONTEXT-BLOCK" in prompt
        assert "Upload sleep data" in prompt


class TestGenerateResponse:
    @pytest.mark.asyncio
    async def test_full_pipeline(self, service: AgentRAGService, llm: MagicMock, agent: AgentMetadata) -> None:
        messages = [user("hi"), ChatMessage(role="assistant", content="hello"), user("How far did I run?")]

        result = await service.generate_response("agent-1", messages)

        assert result.success is True
        assert result.agentId == "agent-1"
        assert result.response == "You ran 42 km this week."
        assert result.contextUsed == 1
        assert result.relevanceScores[0].source == "notes"
        assert result.relevanceScores[0].category == "fitness"

        sent = llm.ainvoke.call_args.args[0]
        assert isinstance(sent[0], SystemMessage)
        assert "Ran 42 km" in sent[0].content
        assert [type(m) for m in sent[1:]] == [HumanMessage, AIMessage, HumanMessage]
        assert sent[-1].content == "How far did I run?"

    @pytest.mark.asyncio
    async def test_rejects_conversation_not_ending_with_user(self, service: AgentRAGService) -> None:
        with pytest.raises(InvalidConversationError):
            await service.generate_response("agent-1", [user("hi"), ChatMessage(role="assistant", content="hello")])

        with pytest.raises(InvalidConversationError):
            await service.generate_response("agent-1", [])

    @pytest.mark.asyncio
    async def test_unknown_agent_propagates(self, service: AgentRAGService, vector_store: MagicMock) -> None:
        vector_store.get_agent_config.side_effect = AgentNotFoundError("ghost")

        with pytest.raises(AgentNotFoundError):
            await service.generate_response("ghost", [user("hi")])

    @pytest.mark.asyncio
    async def test_no_context_returns_canned_reply(self, service: AgentRAGService, vector_store: MagicMock, agent: AgentMetadata) -> None:
        vector_store.get_agent_context.side_effect = None
        vector_store.get_agent_context.return_value = []

        result = await service.generate_response("agent-1", [user("How far did I run?")])

        assert result.contextUsed == 0
        assert result.relevanceScores == []
        assert agent.category in result.response
        assert "Any relevant data uploads" in result.response

    @pytest.mark.asyncio
    async def test_retries_with_original_query_when_clarified_finds_nothing(self, service: AgentRAGService, vector_store: MagicMock, clarifier: MagicMock) -> None:
        clarifier.ainvoke.return_value = SimpleNamespace(content="Total running distance over the past seven days")

        def _context(agent, query, category=None, top_k=None, query_vector=None):
            return [doc("Ran 42 km", 0.9)] if query == "how far this week" and category == "fitness" else []

        vector_store.get_agent_context.side_effect = _context

        result = await service.generate_response("agent-1", [user("how far this week")])

        assert result.contextUsed == 1
        assert [c.args[0] for c in vector_store.embed_query.call_args_list] == ["Total running distance over the past seven days", "how far this week"]

    @pytest.mark.asyncio
    async def test_refusal_gets_upload_hint(self, service: AgentRAGService, llm: MagicMock) -> None:
        llm.ainvoke.return_value = SimpleNamespace(content="Sorry, I cannot see your sleep data.")

        result = await service.generate_response("agent-1", [user("How did I sleep?")])

        assert result.response.startswith("Sorry, I cannot see your sleep data.")
        assert len(result.response) > len("Sorry, I cannot see your sleep data.")

    @pytest.mark.asyncio
    async def test_empty_model_output_uses_fallback(self, service: AgentRAGService, llm: MagicMock) -> None:
        llm.ainvoke.return_value = SimpleNamespace(content="")

        result = await service.generate_response("agent-1", [user("How far did I run?")])

        assert result.response.startswith(EMPTY_RESPONSE_FALLBACK)


class TestInsights:
    def test_parse_insights_strips_code_fences(self) -> None:
        raw = '```json\n{"response": "You run more on weekends.", "insights": [{"insight": "Weekend peaks", "evidence": "Sat 15 km", "confidence": 0.9, "category": "fitness"}], "metadata": {"contextUsed": true, "categoriesAnalyzed": ["fitness"], "confidenceScore": 0.85}}\n```'

        response, insights, metadata = parse_insights(raw)

        assert response == "You run more on weekends."
        assert insights[0].insight == "Weekend peaks"
        assert insights[0].confidence == pytest.approx(0.9)
        assert metadata.categoriesAnalyzed == ["fitness"]
        assert metadata.confidenceScore == pytest.approx(0.85)

    @pytest.mark.parametrize("raw", ["not json at all", "{broken", "[1, 2]"])
    def test_parse_insights_invalid_output(self, raw: str) -> None:
        response, insights, metadata = parse_insights(raw)

        assert response == ""
        assert insights == []
        assert metadata.confidenceScore == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_generate_insights_reports_category_contexts(self, service: AgentRAGService, vector_store: MagicMock, llm: MagicMock) -> None:
        def _context(agent, query, category=None, top_k=None, query_vector=None):
            if category == "fitness":
                return [doc("Ran 42 km", 0.9), doc("Walked", 0.5)]
            return []

        vector_store.get_agent_context.side_effect = _context
        llm.ainvoke.return_value = SimpleNamespace(content='{"response": "Steady week.", "insights": [], "metadata": {}}')

        result = await service.generate_insights("agent-1", [user("Summarise my week")])

        assert result.response == "Steady week."
        assert result.contextUsed == 2
        contexts = {c.category: c for c in result.categoryContexts}
        assert contexts["fitness"].count == 2
        assert contexts["fitness"].relevantCount == 1
        assert contexts["sleep"].count == 0
        system_prompt = llm.ainvoke.call_args.args[0][0].content
        assert "CATEGORY: FITNESS" in system_prompt
        assert result.responseTimeMs >= 0


class TestQuestions:
    @pytest.mark.asyncio
    async def test_generates_questions_from_clarified_analysis(self, service: AgentRAGService, vector_store: MagicMock, llm: MagicMock, clarifier: MagicMock) -> None:
        clarifier.ainvoke.return_value = SimpleNamespace(content="Fitness holds runs; sleep holds nights.")
        llm.ainvoke.return_value = SimpleNamespace(content='{"questions": ["How does my distance track with feeling?", "Which nights preceded my best runs?"]}')

        result = await service.generate_questions("agent-1")

        assert result.questions == ["How does my distance track with feeling?", "Which nights preceded my best runs?"]
        assert result.clarified is True
        assert result.fallback is False
        assert result.agentName == "Coach"
        assert result.fieldInfo.categoriesAnalyzed == ["fitness", "sleep"]
        assert result.fieldInfo.clarificationUsed is True
        clarification_prompt = clarifier.ainvoke.call_args.args[0][0].content
        assert "Selected Context Categories: fitness, sleep" in clarification_prompt
        assert "No sample context data available" in clarification_prompt
        question_prompt = llm.ainvoke.call_args.args[0][0].content
        assert "Fitness holds runs; sleep holds nights." in question_prompt
        vector_store.get_agent_context.assert_called_once_with(vector_store.get_agent_config.return_value, "", None)

    @pytest.mark.asyncio
    async def test_unparseable_output_uses_fallback_questions(self, service: AgentRAGService, vector_store: MagicMock) -> None:
        vector_store.get_agent_context.side_effect = RuntimeError("pinecone 503")

        result = await service.generate_questions("agent-1")

        assert result.fallback is True
        assert result.clarified is False
        assert len(result.questions) == 3
        assert result.contextRecommendations

    @pytest.mark.asyncio
    async def test_unknown_agent_propagates(self, service: AgentRAGService, vector_store: MagicMock) -> None:
        vector_store.get_agent_config.side_effect = AgentNotFoundError("ghost")
        with pytest.raises(AgentNotFoundError):
            await service.generate_questions("ghost")
