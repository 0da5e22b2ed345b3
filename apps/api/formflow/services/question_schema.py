"""Question ordering, response coercion and value validation."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping

from formflow.db.enums import (
    QuestionType,
    SELECTION_QUESTION_TYPES,
    ValidationRuleType,
)
from formflow.schemas.forms import Question

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_DIGITS_PATTERN = re.compile(r"^\+?\d{10,15}$")
PHONE_STRIP_PATTERN = re.compile(r"[\s().-]")

_TRUE_STRINGS = {"yes", "true", "y", "1"}
_FALSE_STRINGS = {"no", "false", "n", "0"}


def load_questions(raw: Iterable[Question | Mapping[str, Any]] | None) -> list[Question]:
    """Validate stored question dicts into ``Question`` models."""
    return [
        q if isinstance(q, Question) else Question.model_validate(q)
        for q in (raw or [])
    ]


def sort_questions(questions: Iterable[Question]) -> list[Question]:
    """Sort by ``order`` ascending; ties keep their original position."""
    return sorted(questions, key=lambda q: q.order)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, dict)) and len(value) == 0:
        return True
    return False


def is_required(question: Question) -> bool:
    return question.required or any(
        rule.type == ValidationRuleType.REQUIRED for rule in question.validation
    )


def coerce_response_value(question: Question, value: Any) -> Any:
    """
    Convert a raw answer into the canonical shape for the question type.

    Raises:
        ValueError: value cannot be represented for this question type
    """
    label = question.text or question.id
    qtype = question.type

    if qtype == QuestionType.SECTION_HEADER:
        if value is not None:
            raise ValueError(f"Section '{label}' does not accept a response")
        return None

    if value is None:
        return None

    if qtype == QuestionType.TEXT_INPUT:
        if not isinstance(value, str):
            raise ValueError(f"Question '{label}' must be a string")
        return value

    if qtype == QuestionType.NUMERIC_INPUT:
        if isinstance(value, bool):
            raise ValueError(f"Question '{label}' must be a number")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if stripped == "":
                return None
            try:
                number = float(stripped)
            except ValueError:
                raise ValueError(f"Question '{label}' must be a number") from None
            return int(number) if number.is_integer() and "." not in stripped else number
        raise ValueError(f"Question '{label}' must be a number")

    if qtype == QuestionType.DATE:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str):
            try:
                return date.fromisoformat(value).isoformat()
            except ValueError:
                pass
        raise ValueError(f"Question '{label}' must be a date (YYYY-MM-DD)")

    if qtype == QuestionType.DATETIME:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value).isoformat()
            except ValueError:
                pass
        raise ValueError(f"Question '{label}' must be an ISO 8601 datetime")

    if qtype == QuestionType.YES_NO:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"Question '{label}' must be yes or no")

    if qtype == QuestionType.SINGLE_SELECT:
        if not isinstance(value, str):
            raise ValueError(f"Question '{label}' must be a string")
        _check_options(question, [value], label)
        return value

    if qtype == QuestionType.MULTI_SELECT:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"Question '{label}' must be a list of strings")
        _check_options(question, value, label)
        return list(value)

    if qtype == QuestionType.FILE_UPLOAD:
        # Opaque reference to externally stored content
        if not isinstance(value, (str, dict)):
            raise ValueError(f"Question '{label}' must be a file reference")
        return value

    raise ValueError(f"Unsupported question type: {qtype}")


def _check_options(question: Question, values: list[str], label: str) -> None:
    if not question.options:
        return
    allowed = {option.value for option in question.options}
    for item in values:
        if item not in allowed:
            raise ValueError(f"Invalid option for '{label}'")


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_response_value(
    question: Question,
    value: Any,
    *,
    enforce_required: bool = True,
) -> list[str]:
    """Return the messages of every validation rule the value fails."""
    label = question.text or question.id
    errors: list[str] = []

    if is_empty_value(value):
        if enforce_required and is_required(question):
            required_rule = next(
                (r for r in question.validation if r.type == ValidationRuleType.REQUIRED),
                None,
            )
            errors.append(required_rule.message if required_rule else f"'{label}' is required")
        return errors

    for rule in question.validation:
        if rule.type == ValidationRuleType.REQUIRED:
            continue

        if rule.type in (ValidationRuleType.MIN_LENGTH, ValidationRuleType.MAX_LENGTH):
            if not isinstance(value, (str, list)):
                continue
            limit = _as_float(rule.value)
            if limit is None:
                continue
            if rule.type == ValidationRuleType.MIN_LENGTH and len(value) < limit:
                errors.append(rule.message)
            if rule.type == ValidationRuleType.MAX_LENGTH and len(value) > limit:
                errors.append(rule.message)

        elif rule.type in (ValidationRuleType.MIN, ValidationRuleType.MAX):
            number = _as_float(value)
            limit = _as_float(rule.value)
            if number is None or limit is None:
                errors.append(rule.message)
                continue
            if rule.type == ValidationRuleType.MIN and number < limit:
                errors.append(rule.message)
            if rule.type == ValidationRuleType.MAX and number > limit:
                errors.append(rule.message)

        elif rule.type == ValidationRuleType.PATTERN:
            try:
                matched = re.search(str(rule.value), str(value)) is not None
            except re.error:
                matched = False
            if not matched:
                errors.append(rule.message)

        elif rule.type == ValidationRuleType.EMAIL:
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
                errors.append(rule.message)

        elif rule.type == ValidationRuleType.PHONE:
            digits = PHONE_STRIP_PATTERN.sub("", value) if isinstance(value, str) else ""
            if not PHONE_DIGITS_PATTERN.match(digits):
                errors.append(rule.message)

    return errors


def validate_question_configuration(question: Question) -> list[str]:
    """Static checks on a question definition. Empty list means valid."""
    errors: list[str] = []

    if question.type in SELECTION_QUESTION_TYPES:
        if not question.options:
            errors.append("Selection questions must have at least one option")
        else:
            values = [option.value for option in question.options]
            if len(values) != len(set(values)):
                errors.append("Option values must be unique")

    if question.type == QuestionType.SECTION_HEADER and not question.text.strip():
        errors.append("Section headers must have text")

    for rule in question.validation:
        if rule.type == ValidationRuleType.PATTERN:
            try:
                re.compile(str(rule.value))
            except re.error:
                errors.append(f"Invalid pattern: {rule.value}")
        if rule.type in (
            ValidationRuleType.MIN_LENGTH,
            ValidationRuleType.MAX_LENGTH,
            ValidationRuleType.MIN,
            ValidationRuleType.MAX,
        ) and _as_float(rule.value) is None:
            errors.append(f"Rule '{rule.type.value}' needs a numeric value")

    for rule in question.conditional_logic or []:
        if rule.target_question_id == question.id:
            errors.append("Conditional logic cannot reference the question itself")

    return errors


def validate_question_set(questions: Iterable[Question]) -> dict[str, list[str]]:
    """
    Validate every question plus cross-question references.

    Returns question id -> error messages for the questions that fail.
    """
    questions = list(questions)
    known_ids = {q.id for q in questions}
    problems: dict[str, list[str]] = {}
    for question in questions:
        errors = validate_question_configuration(question)
        for rule in question.conditional_logic or []:
            if rule.target_question_id != question.id and rule.target_question_id not in known_ids:
                errors.append(
                    f"Conditional logic references unknown question '{rule.target_question_id}'"
                )
        if errors:
            problems[question.id] = errors
    return problems
