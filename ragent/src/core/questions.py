"""
Ragent - Suggested Questions
=============================
Field schemas per context category and the helpers used to turn an
agent's selected categories into example questions.

``analyze_category_fields`` maps selected category names onto the known
schemas (exact match first, then substring match either way, ``general``
when nothing matches).  The analysis feeds the clarification and
question prompts; ``fallback_questions`` covers the case where the model
output cannot be used.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Sequence

from pydantic import BaseModel, Field

from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)

MAX_QUESTIONS = 3
_FIELD_PREVIEW = 15


@dataclass(frozen=True, slots=True)
class CategoryFields:
    fields: tuple[str, ...]
    description: str
    sample_questions: tuple[str, ...]


CATEGORY_FIELD_MAPPINGS: dict[str, CategoryFields] = {
    "physical": CategoryFields(
        ("activity", "distance", "duration", "intensity", "feeling", "productivity", "goalSet", "goalAchieved", "location", "activityDate"),
        "Physical activities and exercise data with metrics like distance, intensity, and personal feelings",
        (
            "What correlations exist between my intensity levels and how I felt during workouts?",
            "Based on my distance and duration data, what pace improvements can you identify over time?",
            "How does my goal achievement rate vary across different activity types and locations?",
        ),
    ),
    "running": CategoryFields(
        ("distance", "duration", "pace", "feeling", "intensity", "goalAchieved", "location", "weather", "route"),
        "Running-specific data with detailed metrics and environmental factors",
        (
            "What's the correlation between my pace and how I felt during runs over the past month?",
            "Based on my running history, what distance and pace should I target for my next race?",
            "Which days of the week show my best running performance, and what patterns can you identify?",
        ),
    ),
    "work": CategoryFields(
        ("activity", "projectName", "duration", "productivity", "focusLevel", "collaborators", "workTools", "tasksCompleted", "feeling", "goalAchieved"),
        "Work activities and professional task data with productivity and collaboration metrics",
        (
            "How does my focus level correlate with productivity across different projects?",
            "Which time periods show peak productivity, and what work tools were most effective?",
            "What project types require more collaboration, and how does this affect task completion rates?",
        ),
    ),
    "study": CategoryFields(
        ("activity", "subject", "duration", "studyMaterial", "comprehensionLevel", "notesCreated", "productivity", "feeling", "goalAchieved"),
        "Learning and study session data with comprehension and material tracking",
        (
            "What study methods have been most effective based on my comprehension level data?",
            "How does study duration correlate with my comprehension across different subjects?",
            "Which subjects show the best learning outcomes, and what study materials were most helpful?",
        ),
    ),
    "routine": CategoryFields(
        ("activity", "routineSteps", "duration", "consistency", "moodBefore", "moodAfter", "feeling", "productivity", "goalAchieved"),
        "Daily routines and habits with mood and consistency tracking",
        (
            "How does routine consistency affect my mood changes throughout different activities?",
            "What routine steps correlate with the biggest positive mood shifts?",
            "Based on my routine data, what time of day am I most consistent with habit formation?",
        ),
    ),
    "notes": CategoryFields(
        ("title", "content", "category", "tags", "createdAt", "sentiment", "topics", "connections"),
        "Personal notes and thoughts with categorization and topic analysis",
        (
            "What themes and patterns can you identify across my personal notes and thoughts?",
            "Based on my note-taking history, what topics do I return to most frequently?",
            "How can you help me organize and connect related ideas from my knowledge base?",
        ),
    ),
    "learning": CategoryFields(
        ("topic", "duration", "method", "comprehension", "retention", "difficulty", "resources", "notes", "progress"),
        "Learning activities with comprehension and retention tracking",
        (
            "What learning methods show the highest comprehension rates across different topics?",
            "How does study duration correlate with retention for various difficulty levels?",
            "Which learning resources have been most effective for different types of content?",
        ),
    ),
    "professional": CategoryFields(
        ("taskType", "duration", "complexity", "outcome", "collaboration", "tools", "efficiency", "satisfaction"),
        "Professional work tasks with efficiency and satisfaction metrics",
        (
            "What task types show the highest efficiency rates, and what tools were used?",
            "How does collaboration level affect task outcomes and personal satisfaction?",
            "What patterns exist between task complexity and the time required for completion?",
        ),
    ),
    "general": CategoryFields(
        ("content", "category", "type", "timestamp", "relevance", "importance", "context"),
        "General content and information with contextual metadata",
        (
            "What content categories appear most frequently in your data?",
            "Based on timestamp analysis, what patterns exist in your information consumption?",
            "How can I help you find connections between different types of content in your knowledge base?",
        ),
    ),
}

# (fields that select the set, questions), checked in order
_FALLBACK_SETS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("distance", "intensity", "activity"), (
        "What patterns can you identify in my activity data using fields like distance, intensity, and feeling?",
        "Based on my physical activity fields, what recommendations do you have for optimizing my fitness routine?",
        "How do different activity types correlate with my goal achievement and productivity levels?",
    )),
    (("projectName", "productivity", "focusLevel"), (
        "What insights can you provide using my work data fields like projectName, productivity, and focusLevel?",
        "How can you help me optimize my work schedule based on my productivity and collaboration patterns?",
        "What correlations exist between my focus levels and task completion across different projects?",
    )),
    (("subject", "comprehension", "studyMaterial"), (
        "What learning patterns can you identify using fields like subject, comprehension, and study materials?",
        "How can you help improve my study sessions based on comprehension levels across different subjects?",
        "What study methods and materials show the best learning outcomes in my data?",
    )),
    (("content", "category", "type"), (
        "What content patterns and themes can you identify across my knowledge base?",
        "How can you help me organize and find connections in my personal information?",
        "What insights can you provide about my information consumption and creation patterns?",
    )),
]


@dataclass(frozen=True, slots=True)
class FieldAnalysis:
    categories: tuple[str, ...]
    available_fields: tuple[str, ...]
    category_info: str
    context_analysis: str


class ContextCompleteness(BaseModel):
    hasTemporalData: bool = False
    hasQuantitativeData: bool = False
    hasQualitativeData: bool = False
    recommendedCategories: int = 0


class FieldInfo(BaseModel):
    availableFields: list[str] = Field(default_factory=list)
    categoriesAnalyzed: list[str] = Field(default_factory=list)
    totalFieldCount: int = 0
    hasMultipleCategories: bool = False
    clarificationUsed: bool = False
    contextCompleteness: ContextCompleteness = Field(default_factory=ContextCompleteness)


class QuestionsResponse(BaseModel):
    success: bool = True
    questions: list[str]
    agentId: str
    agentName: str
    clarified: bool = False
    fallback: bool = False
    contextRecommendations: list[str] = Field(default_factory=list)
    fieldInfo: FieldInfo = Field(default_factory=FieldInfo)


def _match_categories(selected: Sequence[str]) -> list[str]:
    matched: list[str] = []
    for raw in selected:
        name = raw.lower().strip()
        if name in CATEGORY_FIELD_MAPPINGS:
            matched.append(name)
            continue
        matched.extend(key for key in CATEGORY_FIELD_MAPPINGS if name and (key in name or name in key))
    return matched or ["general"]


def analyze_category_fields(selected_context_ids: Sequence[str]) -> FieldAnalysis:
    """Map selected category names onto the known field schemas."""
    matched = _match_categories(selected_context_ids)
    fields = dict.fromkeys(f for key in matched for f in CATEGORY_FIELD_MAPPINGS[key].fields)
    unique = list(dict.fromkeys(matched))

    info_blocks: list[str] = []
    for key in matched:
        mapping = CATEGORY_FIELD_MAPPINGS[key]
        samples = "\n".join(f"- {q}" for q in mapping.sample_questions)
        info_blocks.append(f"Category: {key}\nDescription: {mapping.description}\nAvailable Fields: [{', '.join(mapping.fields)}]\nSample Questions for this category:\n{samples}\n")

    multi = len(unique) > 1
    context_analysis = "\n".join([
        f"Selected Context IDs: {', '.join(selected_context_ids)}",
        f"Matched Categories: {', '.join(unique)}",
        f"Total Available Fields: {len(fields)}",
        f"Cross-Category Analysis Possible: {'Yes' if multi else 'No'}",
        "Field Overlap Analysis: " + ("Questions can reference multiple category fields for comprehensive insights" if multi else "Questions focused on single category optimization"),
    ])
    return FieldAnalysis(tuple(unique), tuple(fields), "\n".join(info_blocks), context_analysis)


def category_mappings_summary() -> str:
    """One line per known category: description and field list."""
    return "\n".join(f"{key}: {m.description} [Fields: {', '.join(m.fields)}]" for key, m in CATEGORY_FIELD_MAPPINGS.items())


def context_completeness(fields: Sequence[str], recommendations: Sequence[str]) -> ContextCompleteness:
    return ContextCompleteness(
        hasTemporalData=any("date" in f or "time" in f for f in fields),
        hasQuantitativeData=any(q in f for f in fields for q in ("distance", "duration", "score", "rating")),
        hasQualitativeData=any(q in f for f in fields for q in ("feeling", "mood", "notes", "description")),
        recommendedCategories=len(recommendations),
    )


def field_info(analysis: FieldAnalysis, selected_context_ids: Sequence[str], recommendations: Sequence[str], clarified: bool) -> FieldInfo:
    return FieldInfo(
        availableFields=list(analysis.available_fields[:_FIELD_PREVIEW]),
        categoriesAnalyzed=list(selected_context_ids),
        totalFieldCount=len(analysis.available_fields),
        hasMultipleCategories=len(selected_context_ids) > 1,
        clarificationUsed=clarified,
        contextCompleteness=context_completeness(analysis.available_fields, recommendations),
    )


def fallback_questions(available_fields: Sequence[str], selected_context_ids: Sequence[str]) -> list[str]:
    """Canned questions chosen by which schema fields are available."""
    fields = set(available_fields)
    for markers, questions in _FALLBACK_SETS:
        if fields.intersection(markers):
            return list(questions)

    scope = " and ".join(selected_context_ids) or "available"
    return [
        f"What initial insights can you provide based on the {scope} categories you have access to?",
        "How can you help me get started with the current data, and what additional context would improve your capabilities?",
        "What basic patterns can you identify now, and what specific data should I upload to unlock deeper analysis?",
    ]


def parse_questions(text: str) -> list[str]:
    """
    Extract up to ``MAX_QUESTIONS`` non-empty strings from the
    ``{"questions": [...]}`` object in *text*.  Returns ``[]`` when no
    usable list is found.
    """
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        logger.warning("[QUESTIONS] No JSON object in model output.")
        return []
    try:
        parsed = json.loads(text[start : end + 1], strict=False)
    except json.JSONDecodeError as exc:
        logger.warning("[QUESTIONS] Failed to parse model output: %s", exc)
        return []

    raw = parsed.get("questions") if isinstance(parsed, dict) else None
    if not isinstance(raw, list):
        return []
    return [q.strip() for q in raw if isinstance(q, str) and q.strip()][:MAX_QUESTIONS]
