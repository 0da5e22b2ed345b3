"""Enum definitions for application constants."""

from formflow.db.enums.auth import Role
from formflow.db.enums.forms import (
    ConditionOperator,
    DELETABLE_INSTANCE_STATUSES,
    DueDateRuleType,
    EntityStatus,
    FormStatus,
    LIVE_INSTANCE_STATUSES,
    QuestionType,
    ReminderFrequency,
    SELECTION_QUESTION_TYPES,
    ValidationRuleType,
)
from formflow.db.enums.permissions import ROLES_CAN_REVIEW

__all__ = [
    "ConditionOperator",
    "DELETABLE_INSTANCE_STATUSES",
    "DueDateRuleType",
    "EntityStatus",
    "FormStatus",
    "LIVE_INSTANCE_STATUSES",
    "QuestionType",
    "ROLES_CAN_REVIEW",
    "ReminderFrequency",
    "Role",
    "SELECTION_QUESTION_TYPES",
    "ValidationRuleType",
]
