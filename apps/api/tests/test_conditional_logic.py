"""Tests for conditional question visibility."""

import pytest

from formflow.db.enums import ConditionOperator
from formflow.schemas.forms import ConditionalRule, Question, ResponseItem
from formflow.services.conditional_logic import (
    OPERATORS,
    evaluate_rule,
    is_visible,
    response_map,
    visible_questions,
)


def _rule(operator: str, value=None, target: str = "q1") -> ConditionalRule:
    return ConditionalRule(target_question_id=target, operator=operator, value=value)


def _question(question_id: str, order: int = 0, rules=None) -> Question:
    return Question(
        id=question_id,
        type="text_input",
        text=question_id,
        order=order,
        conditional_logic=rules,
    )


def test_every_operator_has_an_evaluator():
    assert set(OPERATORS) == set(ConditionOperator)


class TestOperators:
    def test_equals(self):
        assert evaluate_rule(_rule("equals", "yes"), {"q1": "yes"}) is True
        assert evaluate_rule(_rule("equals", "yes"), {"q1": "no"}) is False

    def test_equals_missing_target_is_false(self):
        assert evaluate_rule(_rule("equals", "yes"), {}) is False

    def test_equals_null_target_is_false(self):
        assert evaluate_rule(_rule("equals", None), {"q1": None}) is False

    def test_not_equals_unanswered_target_is_false(self):
        assert evaluate_rule(_rule("not_equals", "yes"), {}) is False
        assert evaluate_rule(_rule("not_equals", "yes"), {"q1": None}) is False
        assert evaluate_rule(_rule("not_equals", "yes"), {"q1": "yes"}) is False
        assert evaluate_rule(_rule("not_equals", "yes"), {"q1": "no"}) is True

    def test_bool_never_equals_int(self):
        assert evaluate_rule(_rule("equals", 1), {"q1": True}) is False
        assert evaluate_rule(_rule("equals", 0), {"q1": False}) is False
        assert evaluate_rule(_rule("not_equals", 1), {"q1": True}) is True
        assert evaluate_rule(_rule("equals", True), {"q1": True}) is True
        assert evaluate_rule(_rule("equals", 5), {"q1": 5.0}) is True

    def test_contains_on_list(self):
        rule = _rule("contains", "b")
        assert evaluate_rule(rule, {"q1": ["a", "b"]}) is True
        assert evaluate_rule(rule, {"q1": ["a"]}) is False

    def test_contains_on_scalar_is_false(self):
        assert evaluate_rule(_rule("contains", "b"), {"q1": "abc"}) is False

    def test_contains_missing_is_false(self):
        assert evaluate_rule(_rule("contains", "b"), {}) is False

    def test_not_contains(self):
        rule = _rule("not_contains", "b")
        assert evaluate_rule(rule, {"q1": ["a"]}) is True
        assert evaluate_rule(rule, {"q1": ["b"]}) is False
        assert evaluate_rule(rule, {}) is True
        assert evaluate_rule(rule, {"q1": "b"}) is True

    @pytest.mark.parametrize(
        "current,expected,result",
        [
            (10, 5, True),
            ("10", "5", True),
            (5, 10, False),
            (5, 5, False),
            ("abc", 5, False),
            (None, 5, False),
            (True, 0, False),
        ],
    )
    def test_greater_than(self, current, expected, result):
        assert evaluate_rule(_rule("greater_than", expected), {"q1": current}) is result

    def test_less_than(self):
        assert evaluate_rule(_rule("less_than", 18), {"q1": 17}) is True
        assert evaluate_rule(_rule("less_than", 18), {"q1": 18}) is False
        assert evaluate_rule(_rule("less_than", 18), {}) is False

    @pytest.mark.parametrize("current", [None, "", []])
    def test_is_empty_values(self, current):
        assert evaluate_rule(_rule("is_empty"), {"q1": current}) is True
        assert evaluate_rule(_rule("is_not_empty"), {"q1": current}) is False

    def test_is_empty_missing(self):
        assert evaluate_rule(_rule("is_empty"), {}) is True
        assert evaluate_rule(_rule("is_not_empty"), {}) is False

    def test_zero_and_false_are_not_empty(self):
        assert evaluate_rule(_rule("is_not_empty"), {"q1": 0}) is True
        assert evaluate_rule(_rule("is_not_empty"), {"q1": False}) is True


class TestVisibility:
    def test_no_rules_is_visible(self):
        assert is_visible(_question("q2"), {}) is True
        assert is_visible(_question("q2", rules=[]), {}) is True

    def test_rules_are_anded(self):
        question = _question(
            "q3",
            rules=[_rule("equals", "yes", "q1"), _rule("greater_than", 3, "q2")],
        )
        assert is_visible(question, {"q1": "yes", "q2": 4}) is True
        assert is_visible(question, {"q1": "yes", "q2": 1}) is False
        assert is_visible(question, {"q1": "no", "q2": 4}) is False

    def test_accepts_response_list(self):
        question = _question("q2", rules=[_rule("equals", "yes")])
        responses = [{"question_id": "q1", "value": "yes"}]
        assert is_visible(question, responses) is True
        assert is_visible(question, [ResponseItem(question_id="q1", value="no")]) is False

    def test_visible_questions_sorted_by_order(self):
        questions = [
            _question("c", order=2),
            _question("hidden", order=1, rules=[_rule("equals", "show", "a")]),
            _question("a", order=0),
        ]
        visible = visible_questions(questions, {"a": "nope"})
        assert [q.id for q in visible] == ["a", "c"]

        visible = visible_questions(questions, {"a": "show"})
        assert [q.id for q in visible] == ["a", "hidden", "c"]


class TestRuleValueCoercion:
    def test_yes_no_rule_written_as_text_matches_stored_bool(self):
        questions = [
            Question(id="q1", type="yes_no", text="Symptoms?", order=0),
            _question("q2", order=1, rules=[_rule("equals", "yes")]),
        ]
        assert [q.id for q in visible_questions(questions, {"q1": True})] == ["q1", "q2"]
        assert [q.id for q in visible_questions(questions, {"q1": False})] == ["q1"]

    def test_numeric_rule_written_as_text(self):
        target = Question(id="q1", type="numeric_input", text="Age", order=0)
        rule = _rule("equals", "5")
        assert evaluate_rule(rule, {"q1": 5}, target) is True
        assert evaluate_rule(rule, {"q1": 5}) is False

    def test_uncoercible_rule_value_is_compared_raw(self):
        target = Question(id="q1", type="yes_no", text="Symptoms?", order=0)
        assert evaluate_rule(_rule("equals", "maybe"), {"q1": True}, target) is False


def test_response_map_normalizes_shapes():
    assert response_map(None) == {}
    assert response_map({"a": 1}) == {"a": 1}
    assert response_map([{"question_id": "a", "value": 1}, {"question_id": "b"}]) == {
        "a": 1,
        "b": None,
    }
