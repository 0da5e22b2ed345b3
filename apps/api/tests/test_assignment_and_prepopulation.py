"""Tests for auto-assignment rules and response pre-population."""

from datetime import datetime, timezone

from formflow.schemas.forms import AssignmentRule, Question
from formflow.services.assignment_rules import criteria_match, resolve_assignee
from formflow.services.instance_service import create_instance
from formflow.services.prepopulation_service import prepopulate_responses

from conftest import TENANT_ID, USER_ID

NOW = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)


def _rule(rule_id: str, priority: int, user_id: str | None = None, is_active: bool = True, **criteria):
    return AssignmentRule(
        id=rule_id,
        name=rule_id,
        priority=priority,
        criteria=criteria,
        assign_to={"user_id": user_id, "role": None if user_id else "um_nurse"},
        is_active=is_active,
    )


class FakeLookup:
    """In-memory member/provider directory that counts fetches."""

    def __init__(self, members=None, providers=None):
        self.members = members or {}
        self.providers = providers or {}
        self.calls: list[tuple[str, str]] = []

    def get_member(self, tenant_id, member_id):
        self.calls.append(("member", member_id))
        return self.members.get(member_id)

    def get_provider(self, tenant_id, provider_id):
        self.calls.append(("provider", provider_id))
        return self.providers.get(provider_id)


# =============================================================================
# Assignment
# =============================================================================


class TestAssignmentRules:
    def test_unset_criteria_match_anything(self):
        assert criteria_match(_rule("r", 0).criteria, {}) is True

    def test_context_criteria_are_case_insensitive(self):
        criteria = _rule("r", 0, region="North").criteria
        assert criteria_match(criteria, {"region": " north "}) is True
        assert criteria_match(criteria, {"region": "south"}) is False
        assert criteria_match(criteria, {}) is False

    def test_form_type_criterion_uses_type_name(self):
        criteria = _rule("r", 0, form_type="Appeals").criteria
        assert criteria_match(criteria, {}, form_type_name="appeals") is True
        assert criteria_match(criteria, {}, form_type_name="Grievances") is False

    def test_lowest_priority_value_wins(self):
        rules = [
            _rule("broad", 5, user_id="generalist"),
            _rule("north", 1, user_id="north-nurse", region="north"),
        ]
        assert resolve_assignee(rules, {"region": "north"}).id == "north"
        assert resolve_assignee(rules, {"region": "south"}).id == "broad"

    def test_inactive_and_role_only_rules_skipped(self):
        rules = [
            _rule("off", 0, user_id="ghost", is_active=False),
            _rule("role-only", 1),
            _rule("fallback", 2, user_id="coordinator"),
        ]
        assert resolve_assignee(rules, {}).assign_to.user_id == "coordinator"

    def test_no_match(self):
        assert resolve_assignee([_rule("north", 0, user_id="n", region="north")], {}) is None


def test_create_instance_auto_assigns(db, clock, make_template):
    template = make_template(
        auto_assignment_rules=[
            {"id": "r1", "name": "Appeals north", "priority": 1,
             "criteria": {"region": "north", "form_type": "Appeals"},
             "assign_to": {"user_id": "nurse-north"}},
            {"id": "r2", "name": "Everyone else", "priority": 9,
             "assign_to": {"user_id": "coordinator"}},
        ]
    )

    north = create_instance(
        db, TENANT_ID, {"template_id": template.id, "context_data": {"region": "North"}}, USER_ID,
        clock=clock,
    ).data
    assert north.assigned_to == "nurse-north"

    other = create_instance(db, TENANT_ID, {"template_id": template.id}, USER_ID, clock=clock).data
    assert other.assigned_to == "coordinator"

    explicit = create_instance(
        db, TENANT_ID,
        {"template_id": template.id, "assigned_to": "chosen", "context_data": {"region": "north"}},
        USER_ID, clock=clock,
    ).data
    assert explicit.assigned_to == "chosen"


# =============================================================================
# Pre-population
# =============================================================================


def _mapped_questions() -> list[Question]:
    return [
        Question(id="first_name", type="text_input", pre_population_mapping="member.first_name"),
        Question(id="dob", type="date", pre_population_mapping="member.dob"),
        Question(id="age", type="numeric_input", pre_population_mapping="member.age"),
        Question(id="npi", type="text_input", pre_population_mapping="provider.npi"),
        Question(id="free", type="text_input"),
    ]


class TestPrepopulation:
    def test_fills_mapped_questions_and_fetches_once(self):
        lookup = FakeLookup(
            members={"M1": {"first_name": "Ada", "dob": "1990-04-01", "age": "35"}},
            providers={"P1": {"npi": "1234567890"}},
        )
        responses = prepopulate_responses(
            _mapped_questions(), lookup, TENANT_ID,
            member_id="M1", provider_id="P1", answered=set(), now=NOW,
        )
        values = {r.question_id: r.value for r in responses}
        assert values == {"first_name": "Ada", "dob": "1990-04-01", "age": 35, "npi": "1234567890"}
        assert sorted(lookup.calls) == [("member", "M1"), ("provider", "P1")]
        assert responses[0].metadata == {"source": "prepopulation", "field": "member.first_name"}
        assert responses[0].responded_at == NOW

    def test_answered_questions_are_not_overwritten(self):
        lookup = FakeLookup(members={"M1": {"first_name": "Ada"}})
        responses = prepopulate_responses(
            _mapped_questions(), lookup, TENANT_ID,
            member_id="M1", provider_id=None, answered={"first_name"}, now=NOW,
        )
        assert [r.question_id for r in responses] == []

    def test_incompatible_values_skipped(self):
        lookup = FakeLookup(members={"M1": {"age": "unknown", "dob": "April 1st"}})
        responses = prepopulate_responses(
            _mapped_questions(), lookup, TENANT_ID,
            member_id="M1", provider_id=None, answered=set(), now=NOW,
        )
        assert responses == []

    def test_missing_records_and_ids(self):
        lookup = FakeLookup()
        responses = prepopulate_responses(
            _mapped_questions(), lookup, TENANT_ID,
            member_id="M404", provider_id=None, answered=set(), now=NOW,
        )
        assert responses == []
        # No provider id: provider is never looked up
        assert lookup.calls == [("member", "M404")]

    def test_no_mapped_questions_no_lookup(self):
        lookup = FakeLookup()
        prepopulate_responses(
            [Question(id="free", type="text_input")], lookup, TENANT_ID,
            member_id="M1", provider_id="P1", answered=set(), now=NOW,
        )
        assert lookup.calls == []


def test_create_instance_prepopulates_without_overwriting(db, clock, make_template):
    template = make_template(
        questions=[
            {"id": "first_name", "type": "text_input", "order": 0,
             "pre_population_mapping": "member.first_name"},
            {"id": "last_name", "type": "text_input", "order": 1,
             "pre_population_mapping": "member.last_name"},
        ]
    )
    lookup = FakeLookup(members={"M1": {"first_name": "Ada", "last_name": "Lovelace"}})

    result = create_instance(
        db,
        TENANT_ID,
        {
            "template_id": template.id,
            "member_id": "M1",
            "response_data": [{"question_id": "first_name", "value": "Augusta"}],
        },
        USER_ID,
        lookup=lookup,
        clock=clock,
    )
    assert result.ok
    by_id = {r["question_id"]: r for r in result.data.response_data}
    assert by_id["first_name"]["value"] == "Augusta"
    assert by_id["first_name"]["metadata"] is None
    assert by_id["last_name"]["value"] == "Lovelace"
    assert by_id["last_name"]["metadata"]["source"] == "prepopulation"
