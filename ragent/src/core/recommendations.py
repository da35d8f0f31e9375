"""
Ragent - Context Recommendations
=================================
Suggests which kinds of data a user should upload so an agent can answer
better.  Pure function of the agent's category, how much context the
last retrieval produced, and which context categories the agent already
draws from.

Each rule family fires when its keywords appear in the agent category
and then recommends only the data kinds whose markers are absent from
the selected context ids (case-insensitive substring match).
"""

from __future__ import annotations

from typing import Sequence

# (category keywords, [(selected-id markers, recommendation)])
_RULES: list[tuple[tuple[str, ...], list[tuple[tuple[str, ...], str]]]] = [
    (("fitness", "health", "physical"), [
        (("physical",), "Physical activity data (running, workouts, sports) with metrics like distance, duration, intensity, and personal feelings"),
        (("nutrition",), "Nutrition and diet tracking data to correlate with physical performance"),
        (("sleep",), "Sleep pattern data to understand recovery and performance relationships"),
    ]),
    (("financial", "finance", "money", "advisor"), [
        (("financial", "finance"), "Financial transaction data with timestamps, amounts, categories, and descriptions"),
        (("investment", "portfolio"), "Investment portfolio data with holdings, performance metrics, and transaction history"),
        (("budget", "expense"), "Budget and expense tracking data with spending categories and patterns"),
        (("income", "salary"), "Income data with sources, amounts, and frequency information"),
    ]),
    (("work", "productivity", "professional"), [
        (("work",), "Work activity logs with project names, task completion, productivity levels, and collaboration details"),
        (("calendar",), "Calendar and meeting data to analyze time management patterns"),
        (("communication",), "Communication logs (emails, messages) to understand collaboration patterns"),
    ]),
    (("learning", "education", "study"), [
        (("study",), "Study session logs with subjects, materials, comprehension levels, and learning outcomes"),
        (("notes",), "Learning notes and knowledge base content for topic analysis and connections"),
        (("progress",), "Progress tracking data across different subjects and learning goals"),
    ]),
    (("personal", "lifestyle"), [
        (("routine",), "Daily routine and habit tracking with mood and consistency metrics"),
        (("notes",), "Personal notes, thoughts, and reflections for pattern analysis"),
        (("goals",), "Goal setting and achievement tracking across different life areas"),
    ]),
    (("customer", "business", "service"), [
        (("support",), "Customer support interactions and ticket resolution data"),
        (("feedback",), "Customer feedback and satisfaction survey responses"),
        (("product",), "Product usage analytics and feature adoption metrics"),
    ]),
]

_DATA_KEYWORDS = ("data", "analysis", "insight")
_DATA_RULES: list[tuple[tuple[str, ...], str]] = [
    (("metrics",), "Performance metrics and KPI tracking data with timestamps"),
    (("trends",), "Historical trend data to enable time-series analysis and forecasting"),
]

MORE_STRUCTURED_DATA = "More structured data with consistent field schemas for better pattern recognition"
MORE_CATEGORIES = "Additional complementary data categories to enable cross-category insights and correlations"
FIRST_UPLOAD = "Any relevant data uploads to get started with personalized insights and analysis"
DEFAULT_RECOMMENDATIONS = (
    "Consider adding timestamped data for trend analysis over time",
    "Cross-referenced data from related activities could provide additional insights",
)


def _has_any(selected: Sequence[str], markers: tuple[str, ...]) -> bool:
    return any(marker in sid for sid in selected for marker in markers)


def context_recommendations(agent_category: str | None, context_used: int, selected_context_ids: Sequence[str]) -> list[str]:
    """
    List the kinds of data the user could upload.

    Args:
        agent_category:       The agent's category (free text).
        context_used:         Number of context documents retrieved.
        selected_context_ids: Context categories the agent draws from.

    Returns:
        Recommendations in rule order; never empty.
    """
    category = (agent_category or "").lower()
    selected = [sid.lower() for sid in selected_context_ids]
    recommendations: list[str] = []

    for keywords, rules in _RULES:
        if not any(k in category for k in keywords):
            continue
        for markers, text in rules:
            if not _has_any(selected, markers):
                recommendations.append(text)

    if any(k in category for k in _DATA_KEYWORDS):
        if len(selected) < 5:
            recommendations.append(MORE_STRUCTURED_DATA)
        for markers, text in _DATA_RULES:
            if not _has_any(selected, markers):
                recommendations.append(text)

    if len(selected) < 3:
        recommendations.append(MORE_CATEGORIES)

    if context_used == 0:
        recommendations.append(FIRST_UPLOAD)

    if not recommendations:
        recommendations.extend(DEFAULT_RECOMMENDATIONS)

    return recommendations


def generate_context_recommendations(agent_category: str | None, context_used: int, selected_context_ids: Sequence[str]) -> str:
    """Comma-joined ``context_recommendations`` for prompt text."""
    return ", ".join(context_recommendations(agent_category, context_used, selected_context_ids))
