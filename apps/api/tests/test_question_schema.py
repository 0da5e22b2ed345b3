"""Tests for question ordering, response coercion and validation rules."""

from datetime import date, datetime, timezone

import pytest

from formflow.schemas.forms import Question
from formflow.services.question_schema import (
    coerce_response_value,
    is_empty_value,
    is_required,
    sort_questions,
    validate_question_configuration,
    validate_question_set,
    validate_response_value,
)


def _q(question_type: str = "text_input", **fields) -> Question:
    return Question(id=fields.pop("id", "q1"), type=question_type, text="Question", **fields)


def _options(*values: str) -> list[dict]:
    return [{"label": v.title(), "value": v} for v in values]


class TestSorting:
    def test_sort_by_order(self):
        questions = [_q(id="b", order=2), _q(id="a", order=0), _q(id="c", order=1)]
        assert [q.id for q in sort_questions(questions)] == ["a", "c", "b"]

    def test_ties_keep_input_order(self):
        questions = [_q(id="first", order=1), _q(id="second", order=1), _q(id="zero", order=0)]
        assert [q.id for q in sort_questions(questions)] == ["zero", "first", "second"]


class TestCoercion:
    def test_numeric_from_string(self):
        question = _q("numeric_input")
        assert coerce_response_value(question, "42") == 42
        assert coerce_response_value(question, "4.5") == 4.5
        assert coerce_response_value(question, " ") is None

    def test_numeric_rejects_garbage_and_bool(self):
        question = _q("numeric_input")
        with pytest.raises(ValueError):
            coerce_response_value(question, "forty")
        with pytest.raises(ValueError):
            coerce_response_value(question, True)

    def test_date_and_datetime_to_iso(self):
        assert coerce_response_value(_q("date"), date(2025, 6, 2)) == "2025-06-02"
        assert coerce_response_value(_q("date"), "2025-06-02") == "2025-06-02"
        stamp = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)
        assert coerce_response_value(_q("datetime"), stamp) == stamp.isoformat()
        with pytest.raises(ValueError):
            coerce_response_value(_q("date"), "06/02/2025")

    def test_yes_no(self):
        question = _q("yes_no")
        assert coerce_response_value(question, True) is True
        assert coerce_response_value(question, "Yes") is True
        assert coerce_response_value(question, "no") is False
        with pytest.raises(ValueError):
            coerce_response_value(question, "maybe")

    def test_single_select_enforces_options(self):
        question = _q("single_select", options=_options("low", "high"))
        assert coerce_response_value(question, "low") == "low"
        with pytest.raises(ValueError):
            coerce_response_value(question, "medium")

    def test_multi_select_accepts_single_string(self):
        question = _q("multi_select", options=_options("a", "b"))
        assert coerce_response_value(question, "a") == ["a"]
        assert coerce_response_value(question, ["a", "b"]) == ["a", "b"]
        with pytest.raises(ValueError):
            coerce_response_value(question, ["a", "z"])

    def test_section_header_takes_no_value(self):
        question = _q("section_header")
        assert coerce_response_value(question, None) is None
        with pytest.raises(ValueError):
            coerce_response_value(question, "text")

    def test_none_passes_through(self):
        assert coerce_response_value(_q("numeric_input"), None) is None


class TestValidation:
    def test_required_flag(self):
        question = _q(required=True)
        assert validate_response_value(question, "") == ["'Question' is required"]
        assert validate_response_value(question, "ok") == []
        assert validate_response_value(question, None, enforce_required=False) == []

    def test_required_rule_uses_its_message(self):
        question = _q(validation=[{"type": "required", "message": "Please answer"}])
        assert is_required(question)
        assert validate_response_value(question, None) == ["Please answer"]

    def test_length_rules(self):
        question = _q(
            validation=[
                {"type": "minLength", "value": 3, "message": "too short"},
                {"type": "maxLength", "value": 5, "message": "too long"},
            ]
        )
        assert validate_response_value(question, "ab") == ["too short"]
        assert validate_response_value(question, "abcdef") == ["too long"]
        assert validate_response_value(question, "abcd") == []

    def test_numeric_bounds(self):
        question = _q(
            "numeric_input",
            validation=[
                {"type": "min", "value": 0, "message": "min"},
                {"type": "max", "value": 120, "message": "max"},
            ],
        )
        assert validate_response_value(question, -1) == ["min"]
        assert validate_response_value(question, 121) == ["max"]
        assert validate_response_value(question, 30) == []

    def test_pattern_email_phone(self):
        pattern = _q(validation=[{"type": "pattern", "value": r"^\d{5}$", "message": "zip"}])
        assert validate_response_value(pattern, "1234") == ["zip"]
        assert validate_response_value(pattern, "12345") == []

        email = _q(validation=[{"type": "email", "message": "email"}])
        assert validate_response_value(email, "nurse@example.org") == []
        assert validate_response_value(email, "not-an-email") == ["email"]

        phone = _q(validation=[{"type": "phone", "message": "phone"}])
        assert validate_response_value(phone, "(555) 123-4567") == []
        assert validate_response_value(phone, "12") == ["phone"]

    def test_empty_optional_value_skips_rules(self):
        question = _q(validation=[{"type": "minLength", "value": 3, "message": "too short"}])
        assert validate_response_value(question, "") == []

    def test_is_empty_value(self):
        assert is_empty_value(None)
        assert is_empty_value("  ")
        assert is_empty_value([])
        assert not is_empty_value(0)
        assert not is_empty_value(False)


class TestConfiguration:
    def test_selection_needs_options(self):
        errors = validate_question_configuration(_q("single_select"))
        assert errors == ["Selection questions must have at least one option"]

    def test_duplicate_option_values(self):
        question = _q("multi_select", options=_options("a", "a"))
        assert "Option values must be unique" in validate_question_configuration(question)

    def test_section_header_needs_text(self):
        question = Question(id="s", type="section_header", text="  ")
        assert validate_question_configuration(question) == ["Section headers must have text"]

    def test_bad_pattern_and_non_numeric_limit(self):
        question = _q(
            validation=[
                {"type": "pattern", "value": "(", "message": "x"},
                {"type": "minLength", "value": "three", "message": "x"},
            ]
        )
        errors = validate_question_configuration(question)
        assert len(errors) == 2

    def test_question_set_reports_unknown_and_self_references(self):
        questions = [
            _q(id="a"),
            _q(
                id="b",
                conditional_logic=[
                    {"target_question_id": "missing", "operator": "equals", "value": 1},
                    {"target_question_id": "b", "operator": "is_empty"},
                ],
            ),
        ]
        problems = validate_question_set(questions)
        assert list(problems) == ["b"]
        assert len(problems["b"]) == 2

    def test_valid_set_has_no_problems(self):
        questions = [
            _q(id="a"),
            _q(id="b", conditional_logic=[{"target_question_id": "a", "operator": "is_not_empty"}]),
        ]
        assert validate_question_set(questions) == {}
