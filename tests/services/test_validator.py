"""Tests for answer validation against grounding context."""

from groundql.llm import AnswerMode
from groundql.services.answer_pipeline import validate_answer
from groundql.services.answer_pipeline.validator import (
    GROUNDED_PREFIX,
    VERIFICATION_NOTE,
    extract_dates,
    extract_numbers,
)

CONTEXT = 'Query: "How many leads?"\nResult: 1,234'


class TestExtraction:
    """Tests for number and date extraction."""

    def test_numbers(self) -> None:
        assert extract_numbers("We have 1,234 leads worth 56.5 each") == [1234.0, 56.5]

    def test_dates(self) -> None:
        assert extract_dates("On 2024-01-15, 1/2/2024 and Jan 15, 2024") == [
            "2024-01-15",
            "1/2/2024",
            "Jan 15, 2024",
        ]


class TestQueryMode:
    """Tests for QUERY mode checks."""

    def test_grounded_answer_unchanged(self) -> None:
        answer = "The query shows 1,234 leads."
        assert validate_answer(answer, CONTEXT, AnswerMode.QUERY) == answer

    def test_unknown_number_gets_note(self) -> None:
        answer = "The query shows 1,500 leads."
        assert validate_answer(answer, CONTEXT, "QUERY") == VERIFICATION_NOTE + answer

    def test_number_tolerance(self) -> None:
        answer = "The result is 1234.001 leads."
        assert validate_answer(answer, CONTEXT, AnswerMode.QUERY) == answer

    def test_unknown_date_gets_note(self) -> None:
        answer = "The query found the lead on 2024-02-01."
        result = validate_answer(answer, "Result: created 2024-02-01 and 2024-01-15", AnswerMode.QUERY)
        assert result == answer

        result = validate_answer(answer, CONTEXT, AnswerMode.QUERY)
        assert result.startswith(VERIFICATION_NOTE)

    def test_missing_citation_gets_prefix(self) -> None:
        answer = "You have 1,234 leads."
        assert validate_answer(answer, CONTEXT, AnswerMode.QUERY) == GROUNDED_PREFIX + answer


class TestPhrases:
    """Tests for rewriting unsupported authority claims."""

    def test_rewritten_without_database_context(self) -> None:
        answer = "According to our records, Acme is your top account."
        result = validate_answer(answer, "Acme: 82", AnswerMode.COACH)
        assert result == "Based on the query results, Acme is your top account."

    def test_kept_when_context_mentions_query(self) -> None:
        answer = "Our database shows Acme on top."
        assert validate_answer(answer, CONTEXT, AnswerMode.COACH) == answer

    def test_coach_mode_skips_number_checks(self) -> None:
        answer = "Aim for 50 calls this week!"
        assert validate_answer(answer, CONTEXT, AnswerMode.COACH) == answer
