"""Form hierarchy enums."""

from enum import Enum


class FormStatus(str, Enum):
    """Lifecycle status of a form instance."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EntityStatus(str, Enum):
    """Status of a category, type or template."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class QuestionType(str, Enum):
    TEXT_INPUT = "text_input"
    NUMERIC_INPUT = "numeric_input"
    DATE = "date"
    DATETIME = "datetime"
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    YES_NO = "yes_no"
    FILE_UPLOAD = "file_upload"
    SECTION_HEADER = "section_header"


class ValidationRuleType(str, Enum):
    REQUIRED = "required"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    PATTERN = "pattern"
    MIN = "min"
    MAX = "max"
    EMAIL = "email"
    PHONE = "phone"


class ConditionOperator(str, Enum):
    """Operators available to conditional visibility rules."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class DueDateRuleType(str, Enum):
    CALENDAR_DAYS = "calendar_days"
    BUSINESS_DAYS = "business_days"
    DAYS_FROM_CREATION = "days_from_creation"
    DAYS_FROM_ASSIGNMENT = "days_from_assignment"


class ReminderFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


# Instances in these states count as "live" for duplicate detection and
# template deletion.
LIVE_INSTANCE_STATUSES = frozenset(
    {FormStatus.DRAFT, FormStatus.PENDING, FormStatus.APPROVED}
)

# Only these may be deleted (cancelled) by the owner.
DELETABLE_INSTANCE_STATUSES = frozenset({FormStatus.DRAFT, FormStatus.REJECTED})

SELECTION_QUESTION_TYPES = frozenset(
    {QuestionType.SINGLE_SELECT, QuestionType.MULTI_SELECT}
)
