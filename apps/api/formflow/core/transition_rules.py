"""Status transition tables for the form hierarchy.

One table per entity kind. Re-entering the current status is always listed
so repeated calls (e.g. approving twice) are accepted as no-ops.
"""

from formflow.db.enums import EntityStatus, FormStatus, ROLES_CAN_REVIEW, Role

INSTANCE_TRANSITIONS: dict[FormStatus, frozenset[FormStatus]] = {
    FormStatus.DRAFT: frozenset(
        {FormStatus.DRAFT, FormStatus.PENDING, FormStatus.CANCELLED}
    ),
    FormStatus.PENDING: frozenset(
        {
            FormStatus.PENDING,
            FormStatus.APPROVED,
            FormStatus.REJECTED,
            FormStatus.CANCELLED,
        }
    ),
    FormStatus.APPROVED: frozenset(
        {FormStatus.APPROVED, FormStatus.COMPLETED, FormStatus.CANCELLED}
    ),
    # Rejected instances go back to draft for edits or straight to pending.
    FormStatus.REJECTED: frozenset(
        {
            FormStatus.REJECTED,
            FormStatus.DRAFT,
            FormStatus.PENDING,
            FormStatus.CANCELLED,
        }
    ),
    FormStatus.COMPLETED: frozenset({FormStatus.COMPLETED}),
    FormStatus.CANCELLED: frozenset({FormStatus.CANCELLED}),
}

ENTITY_TRANSITIONS: dict[EntityStatus, frozenset[EntityStatus]] = {
    EntityStatus.ACTIVE: frozenset({EntityStatus.ACTIVE, EntityStatus.INACTIVE}),
    EntityStatus.INACTIVE: frozenset({EntityStatus.INACTIVE, EntityStatus.ACTIVE}),
}

# Target status -> roles allowed to move an instance into it.
TRANSITION_ROLES: dict[FormStatus, set[Role]] = {
    FormStatus.APPROVED: ROLES_CAN_REVIEW,
    FormStatus.REJECTED: ROLES_CAN_REVIEW,
    FormStatus.COMPLETED: ROLES_CAN_REVIEW,
}

for _status in FormStatus:
    if _status not in INSTANCE_TRANSITIONS:
        raise RuntimeError(f"No transition row for instance status '{_status.value}'")
for _status in EntityStatus:
    if _status not in ENTITY_TRANSITIONS:
        raise RuntimeError(f"No transition row for entity status '{_status.value}'")


def can_transition_instance(current: FormStatus | str, target: FormStatus | str) -> bool:
    return FormStatus(target) in INSTANCE_TRANSITIONS[FormStatus(current)]


def can_transition_entity(current: EntityStatus | str, target: EntityStatus | str) -> bool:
    return EntityStatus(target) in ENTITY_TRANSITIONS[EntityStatus(current)]


def is_terminal(status: FormStatus | str) -> bool:
    """True when no status other than the current one is reachable."""
    status = FormStatus(status)
    return INSTANCE_TRANSITIONS[status] == frozenset({status})


def role_can_enter(target: FormStatus | str, role: Role | str | None) -> bool:
    """
    Check whether a role may move an instance into ``target``.

    ``None`` means a system call without a role context and is not gated.
    """
    allowed = TRANSITION_ROLES.get(FormStatus(target))
    if allowed is None or role is None:
        return True
    if not Role.has_value(str(getattr(role, "value", role))):
        return False
    return Role(role) in allowed
