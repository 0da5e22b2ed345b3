"""Conditional visibility rules for template questions.

A question with no rules is always visible. With rules, every rule must
hold (AND); there is no OR across rules. Evaluation is pure and never
raises.

When the target question is known, a rule's ``value`` is coerced with the
same per-type rules as stored answers, so ``equals "yes"`` on a yes/no
question compares against ``True``.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from formflow.db.enums import ConditionOperator
from formflow.schemas.forms import ConditionalRule, Question, ResponseItem
from formflow.services.question_schema import coerce_response_value, sort_questions

_MISSING = object()

# Operators whose rule value is compared against the whole answer.
_COERCED_OPERATORS = frozenset(
    {
        ConditionOperator.EQUALS,
        ConditionOperator.NOT_EQUALS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
    }
)


def _is_empty(current: Any) -> bool:
    return current is _MISSING or current is None or current == "" or current == []


def _as_list(current: Any) -> list | None:
    if current is _MISSING or current is None:
        return []
    if isinstance(current, list):
        return current
    return None


def _same_value(current: Any, expected: Any) -> bool:
    # bool is an int subclass; True must not match 1.
    if isinstance(current, bool) != isinstance(expected, bool):
        return False
    return current == expected


def _equals(current: Any, expected: Any) -> bool:
    if current is _MISSING or current is None:
        return False
    return _same_value(current, expected)


def _not_equals(current: Any, expected: Any) -> bool:
    if current is _MISSING or current is None:
        return False
    return not _same_value(current, expected)


def _contains(current: Any, expected: Any) -> bool:
    values = _as_list(current)
    if values is None:
        return False
    return expected in values


def _not_contains(current: Any, expected: Any) -> bool:
    values = _as_list(current)
    if values is None:
        return True
    return expected not in values


def _to_number(value: Any) -> float:
    if value is _MISSING or value is None or isinstance(value, bool):
        raise ValueError("not numeric")
    if isinstance(value, str) and value.strip() == "":
        raise ValueError("not numeric")
    return float(value)


def _greater_than(current: Any, expected: Any) -> bool:
    try:
        return _to_number(current) > _to_number(expected)
    except (TypeError, ValueError):
        return False


def _less_than(current: Any, expected: Any) -> bool:
    try:
        return _to_number(current) < _to_number(expected)
    except (TypeError, ValueError):
        return False


def _is_empty_op(current: Any, expected: Any) -> bool:
    return _is_empty(current)


def _is_not_empty_op(current: Any, expected: Any) -> bool:
    return not _is_empty(current)


OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.NOT_EQUALS: _not_equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.NOT_CONTAINS: _not_contains,
    ConditionOperator.GREATER_THAN: _greater_than,
    ConditionOperator.LESS_THAN: _less_than,
    ConditionOperator.IS_EMPTY: _is_empty_op,
    ConditionOperator.IS_NOT_EMPTY: _is_not_empty_op,
}

_unhandled = set(ConditionOperator) - set(OPERATORS)
if _unhandled:
    raise RuntimeError(
        f"Condition operators without an evaluator: {sorted(op.value for op in _unhandled)}"
    )


def response_map(
    responses: Mapping[str, Any] | Iterable[ResponseItem | Mapping[str, Any]] | None,
) -> dict[str, Any]:
    """Normalize a response list (or an id -> value map) into id -> value."""
    if responses is None:
        return {}
    if isinstance(responses, Mapping):
        return dict(responses)
    values: dict[str, Any] = {}
    for item in responses:
        if isinstance(item, ResponseItem):
            values[item.question_id] = item.value
        else:
            values[item["question_id"]] = item.get("value")
    return values


def rule_value(rule: ConditionalRule, target: Question | None) -> Any:
    """The rule's comparison value in the target question's answer shape."""
    if target is None or rule.value is None or rule.operator not in _COERCED_OPERATORS:
        return rule.value
    try:
        return coerce_response_value(target, rule.value)
    except ValueError:
        return rule.value


def evaluate_rule(
    rule: ConditionalRule,
    responses: Mapping[str, Any],
    target: Question | None = None,
) -> bool:
    current = responses.get(rule.target_question_id, _MISSING)
    return OPERATORS[rule.operator](current, rule_value(rule, target))


def is_visible(
    question: Question,
    responses: Mapping[str, Any] | Iterable[ResponseItem | Mapping[str, Any]] | None,
    questions_by_id: Mapping[str, Question] | None = None,
) -> bool:
    if not question.conditional_logic:
        return True
    values = response_map(responses)
    targets = questions_by_id or {}
    return all(
        evaluate_rule(rule, values, targets.get(rule.target_question_id))
        for rule in question.conditional_logic
    )


def visible_questions(
    questions: Iterable[Question],
    responses: Mapping[str, Any] | Iterable[ResponseItem | Mapping[str, Any]] | None,
) -> list[Question]:
    """Visible questions in render order."""
    ordered = sort_questions(questions)
    by_id = {q.id: q for q in ordered}
    values = response_map(responses)
    return [q for q in ordered if is_visible(q, values, by_id)]
