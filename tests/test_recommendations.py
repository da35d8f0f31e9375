"""
Tests for context upload recommendations.
"""

from ragent.src.core.recommendations import DEFAULT_RECOMMENDATIONS, FIRST_UPLOAD, MORE_CATEGORIES, MORE_STRUCTURED_DATA, context_recommendations, generate_context_recommendations


def test_fitness_agent_recommends_only_missing_data_kinds() -> None:
    result = generate_context_recommendations("Fitness Coach", 3, ["fitness", "Sleep_Tracking"])

    assert "Physical activity data" in result
    assert "Nutrition and diet tracking data" in result
    assert "Sleep pattern data" not in result
    assert MORE_CATEGORIES in result
    assert FIRST_UPLOAD not in result


def test_financial_agent_matches_selected_ids_case_insensitively() -> None:
    result = generate_context_recommendations("money advisor", 5, ["Finance", "PORTFOLIO", "budget", "salary"])

    assert "Financial transaction data" not in result
    assert "Investment portfolio data" not in result
    assert "Budget and expense" not in result
    assert "Income data" not in result


def test_data_family_adds_structured_and_trend_suggestions() -> None:
    result = generate_context_recommendations("Data Analysis", 4, ["metrics", "a", "b"])

    assert MORE_STRUCTURED_DATA in result
    assert "Historical trend data" in result
    assert "Performance metrics" not in result


def test_no_context_asks_for_first_upload() -> None:
    result = generate_context_recommendations("General", 0, [])

    assert result == f"{MORE_CATEGORIES}, {FIRST_UPLOAD}"


def test_defaults_when_nothing_else_applies() -> None:
    result = generate_context_recommendations("General", 7, ["a", "b", "c"])

    assert result == ", ".join(DEFAULT_RECOMMENDATIONS)


def test_missing_category_is_treated_as_empty() -> None:
    assert generate_context_recommendations(None, 1, ["a", "b", "c"]) == ", ".join(DEFAULT_RECOMMENDATIONS)


def test_list_form_matches_joined_text() -> None:
    items = context_recommendations("work", 0, ["work"])

    assert items[-2:] == [MORE_CATEGORIES, FIRST_UPLOAD]
    assert generate_context_recommendations("work", 0, ["work"]) == ", ".join(items)
