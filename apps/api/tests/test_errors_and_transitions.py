"""Tests for the error taxonomy and the status transition tables."""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from formflow.core.errors import (
    ERROR_KINDS,
    ErrorCode,
    ErrorKind,
    ServiceError,
    ServiceResult,
    handles_persistence_errors,
)
from formflow.core.transition_rules import (
    INSTANCE_TRANSITIONS,
    can_transition_entity,
    can_transition_instance,
    is_terminal,
    role_can_enter,
)
from formflow.db.enums import EntityStatus, FormStatus, Role


def test_every_error_code_has_a_kind():
    assert set(ERROR_KINDS) == set(ErrorCode)


def test_service_error_to_dict():
    error = ServiceError(ErrorCode.DUPLICATE_INSTANCE, "busy", {"existing_instance_id": "x"})
    assert error.to_dict() == {
        "code": "DUPLICATE_INSTANCE",
        "kind": "conflict",
        "message": "busy",
        "details": {"existing_instance_id": "x"},
    }
    assert "details" not in ServiceError(ErrorCode.TYPE_NOT_FOUND, "gone").to_dict()


def test_service_result_helpers():
    ok = ServiceResult.success(5)
    assert ok.ok and ok.data == 5

    failed = ServiceResult.failure(ErrorCode.TEMPLATE_VERSION_CONFLICT, "retry")
    assert not failed.ok
    assert failed.error.kind == ErrorKind.TRANSIENT


class _FakeSession:
    def __init__(self):
        self.rolled_back = False

    def rollback(self):
        self.rolled_back = True


def test_persistence_errors_become_results(caplog):
    @handles_persistence_errors("save_widget")
    def save(db):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    session = _FakeSession()
    with caplog.at_level(logging.ERROR):
        result = save(session)

    assert session.rolled_back
    assert result.error.code == ErrorCode.PERSISTENCE_ERROR
    assert result.error.message == "Failed to save widget"
    assert result.error.details == {"error": "OperationalError"}
    assert "Persistence failure during save_widget" in caplog.text


def test_non_database_errors_propagate():
    @handles_persistence_errors("boom")
    def explode(db):
        raise KeyError("bug")

    with pytest.raises(KeyError):
        explode(_FakeSession())


# =============================================================================
# Transitions
# =============================================================================


def test_every_status_can_stay_put():
    for status in FormStatus:
        assert can_transition_instance(status, status)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("draft", "pending", True),
        ("draft", "approved", False),
        ("pending", "approved", True),
        ("pending", "rejected", True),
        ("pending", "draft", False),
        ("approved", "completed", True),
        ("approved", "rejected", False),
        ("rejected", "draft", True),
        ("rejected", "pending", True),
        ("completed", "cancelled", False),
        ("cancelled", "draft", False),
    ],
)
def test_instance_transition_table(current, target, allowed):
    assert can_transition_instance(current, target) is allowed


def test_terminal_statuses():
    terminal = {status for status in INSTANCE_TRANSITIONS if is_terminal(status)}
    assert terminal == {FormStatus.COMPLETED, FormStatus.CANCELLED}


def test_entity_transitions():
    assert can_transition_entity(EntityStatus.ACTIVE, EntityStatus.INACTIVE)
    assert can_transition_entity("inactive", "active")


def test_role_gate():
    assert role_can_enter(FormStatus.PENDING, Role.COMMUNICATIONS_TEAM)
    assert role_can_enter(FormStatus.APPROVED, None)
    assert role_can_enter(FormStatus.APPROVED, Role.QM_STAFF)
    assert role_can_enter("rejected", "manager")
    assert not role_can_enter(FormStatus.COMPLETED, Role.SERVICE_COORDINATOR)
    assert not role_can_enter(FormStatus.APPROVED, "nobody")
