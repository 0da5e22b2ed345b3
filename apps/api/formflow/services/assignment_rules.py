"""Auto-assignment of new instances from template assignment rules."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from formflow.schemas.forms import AssignmentCriteria, AssignmentRule

# Criteria field -> context_data key it is matched against.
CONTEXT_CRITERIA = ("region", "member_panel", "provider_network")


def _same(expected: str, actual: Any) -> bool:
    if actual is None:
        return False
    return str(actual).strip().lower() == expected.strip().lower()


def criteria_match(
    criteria: AssignmentCriteria,
    context: Mapping[str, Any],
    form_type_name: str | None = None,
) -> bool:
    """Every criterion that is set must match; unset criteria are wildcards."""
    for key in CONTEXT_CRITERIA:
        expected = getattr(criteria, key)
        if expected is not None and not _same(expected, context.get(key)):
            return False
    if criteria.form_type is not None and not _same(criteria.form_type, form_type_name):
        return False
    return True


def resolve_assignee(
    rules: Iterable[AssignmentRule],
    context: Mapping[str, Any],
    form_type_name: str | None = None,
) -> AssignmentRule | None:
    """
    First active rule (lowest priority value first, ties in list order)
    whose criteria match and that names a user.
    """
    ordered = sorted((r for r in rules if r.is_active), key=lambda r: r.priority)
    for rule in ordered:
        if not rule.assign_to.user_id:
            continue
        if criteria_match(rule.criteria, context, form_type_name):
            return rule
    return None
