"""Schemas for the form hierarchy (categories, types, templates, instances)."""

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from formflow.db.enums import (
    ConditionOperator,
    DueDateRuleType,
    FormStatus,
    QuestionType,
    ReminderFrequency,
    Role,
    ValidationRuleType,
)


# =============================================================================
# Questions
# =============================================================================


class ValidationRule(BaseModel):
    type: ValidationRuleType
    value: Any = None
    message: str = Field(..., min_length=1, max_length=500)


class QuestionOption(BaseModel):
    id: str | None = None
    label: str = Field(..., min_length=1, max_length=200)
    value: str = Field(..., min_length=1, max_length=200)
    order: int = 0


class ConditionalRule(BaseModel):
    id: str | None = None
    target_question_id: str = Field(..., min_length=1, max_length=100)
    operator: ConditionOperator
    value: Any = None


class Question(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    type: QuestionType
    text: str = Field("", max_length=2000)
    required: bool = False
    validation: list[ValidationRule] = Field(default_factory=list)
    conditional_logic: list[ConditionalRule] | None = None
    options: list[QuestionOption] | None = None
    default_value: Any = None
    help_text: str | None = None
    # "member.<field>" or "provider.<field>"
    pre_population_mapping: str | None = Field(
        None, pattern=r"^(member|provider)\.[A-Za-z_][A-Za-z0-9_]*$"
    )
    order: int = Field(0, ge=0)


class QuestionPatch(BaseModel):
    type: QuestionType | None = None
    text: str | None = Field(None, max_length=2000)
    required: bool | None = None
    validation: list[ValidationRule] | None = None
    conditional_logic: list[ConditionalRule] | None = None
    options: list[QuestionOption] | None = None
    default_value: Any = None
    help_text: str | None = None
    pre_population_mapping: str | None = Field(
        None, pattern=r"^(member|provider)\.[A-Za-z_][A-Za-z0-9_]*$"
    )
    order: int | None = Field(None, ge=0)


class QuestionCreate(Question):
    # Generated when omitted; appended after the last question when order is omitted.
    id: str | None = Field(None, min_length=1, max_length=100)
    order: int | None = Field(None, ge=0)


class QuestionOrderItem(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=100)
    order: int = Field(..., ge=0)


class QuestionReorder(BaseModel):
    orders: list[QuestionOrderItem] = Field(..., min_length=1)


# =============================================================================
# Responses
# =============================================================================


class ResponseItem(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=100)
    value: Any = None
    responded_at: datetime | None = None
    metadata: dict[str, Any] | None = None


# =============================================================================
# Declarative rules
# =============================================================================


class DueDateRule(BaseModel):
    # Unrecognized types are accepted and computed as calendar days.
    type: DueDateRuleType | str = DueDateRuleType.CALENDAR_DAYS
    value: int = Field(..., ge=1)
    exclude_holidays: bool = False


class ReminderConfig(BaseModel):
    enabled: bool = True
    frequency: ReminderFrequency = ReminderFrequency.DAILY
    days_before_due: list[int] = Field(default_factory=list)
    escalation_days: int | None = Field(None, ge=1)


class AssignmentCriteria(BaseModel):
    region: str | None = None
    member_panel: str | None = None
    provider_network: str | None = None
    form_type: str | None = None


class AssignmentTarget(BaseModel):
    role: Role | None = None
    user_id: str | None = None


class AssignmentRule(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    # Lower values are evaluated first.
    priority: int = 0
    criteria: AssignmentCriteria = Field(default_factory=AssignmentCriteria)
    assign_to: AssignmentTarget
    is_active: bool = True


class _BusinessRuleBase(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class DueDateBusinessRule(_BusinessRuleBase):
    rule_type: Literal["due_date"]
    due_date: DueDateRule


class AssignmentBusinessRule(_BusinessRuleBase):
    rule_type: Literal["assignment"]
    assign_to: AssignmentTarget


class ValidationBusinessRule(_BusinessRuleBase):
    rule_type: Literal["validation"]
    actions: dict[str, Any] = Field(default_factory=dict)


class EscalationBusinessRule(_BusinessRuleBase):
    rule_type: Literal["escalation"]
    escalation_days: int = Field(..., ge=1)
    escalate_to: AssignmentTarget


BusinessRule = Annotated[
    DueDateBusinessRule
    | AssignmentBusinessRule
    | ValidationBusinessRule
    | EscalationBusinessRule,
    Field(discriminator="rule_type"),
]


# =============================================================================
# Workflow
# =============================================================================


class WorkflowState(BaseModel):
    id: str
    name: str
    type: Literal["initial", "intermediate", "final"]
    permissions: list[str] = Field(default_factory=list)


class WorkflowTransition(BaseModel):
    id: str
    from_state_id: str
    to_state_id: str
    action: str
    conditions: dict[str, Any] | None = None
    required_role: Role | None = None


class ApprovalStep(BaseModel):
    id: str
    order: int = Field(0, ge=0)
    approver_role: Role
    approver_user_id: str | None = None
    is_required: bool = True
    escalation_time_hours: int | None = Field(None, ge=1)


class WorkflowConfig(BaseModel):
    id: str | None = None
    name: str = Field(..., min_length=1, max_length=200)
    states: list[WorkflowState] = Field(default_factory=list)
    transitions: list[WorkflowTransition] = Field(default_factory=list)
    approval_chain: list[ApprovalStep] | None = None


# =============================================================================
# Category / Type
# =============================================================================


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    is_active: bool | None = None


class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    name: str
    description: str | None
    status: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str


class FormTypeCreate(BaseModel):
    category_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    business_rules: list[BusinessRule] = Field(default_factory=list)


class FormTypeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    business_rules: list[BusinessRule] | None = None
    is_active: bool | None = None


class FormTypeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category_id: UUID
    tenant_id: str
    name: str
    description: str | None
    business_rules: list[BusinessRule]
    status: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str


# =============================================================================
# Template
# =============================================================================


def _check_unique_question_ids(questions: list[Question] | None) -> None:
    if not questions:
        return
    seen: set[str] = set()
    for question in questions:
        if question.id in seen:
            raise ValueError(f"Duplicate question id '{question.id}'")
        seen.add(question.id)


class TemplateCreate(BaseModel):
    type_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    questions: list[Question] = Field(..., min_length=1)
    workflow: WorkflowConfig
    due_date_calculation: DueDateRule | None = None
    reminder_frequency: ReminderConfig | None = None
    auto_assignment_rules: list[AssignmentRule] | None = None
    effective_date: datetime | None = None
    expiration_date: datetime | None = None

    @model_validator(mode="after")
    def _check_template(self) -> "TemplateCreate":
        _check_unique_question_ids(self.questions)
        if (
            self.effective_date is not None
            and self.expiration_date is not None
            and self.expiration_date <= self.effective_date
        ):
            raise ValueError("expiration_date must be after effective_date")
        return self


class TemplateUpdate(BaseModel):
    # Name is part of the version key; copy the template to rename it.
    description: str | None = Field(None, max_length=2000)
    questions: list[Question] | None = Field(None, min_length=1)
    workflow: WorkflowConfig | None = None
    due_date_calculation: DueDateRule | None = None
    reminder_frequency: ReminderConfig | None = None
    auto_assignment_rules: list[AssignmentRule] | None = None
    effective_date: datetime | None = None
    expiration_date: datetime | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _check_questions(self) -> "TemplateUpdate":
        _check_unique_question_ids(self.questions)
        return self


class TemplateCopy(BaseModel):
    new_name: str | None = Field(None, min_length=1, max_length=200)
    target_type_id: UUID | None = None


class TemplateVersionCreate(BaseModel):
    version_notes: str | None = Field(None, max_length=1000)


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type_id: UUID
    tenant_id: str
    name: str
    description: str | None
    version: int
    questions: list[Question]
    workflow: WorkflowConfig
    due_date_calculation: DueDateRule | None
    reminder_frequency: ReminderConfig | None
    auto_assignment_rules: list[AssignmentRule] | None
    status: str
    is_active: bool
    effective_date: datetime
    expiration_date: datetime | None
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str


class TemplatePreview(BaseModel):
    template_id: UUID
    name: str
    version: int
    questions: list[Question]
    visible_question_ids: list[str]
    total_questions: int
    required_questions: int
    conditional_questions: int
    estimated_completion_minutes: int


# =============================================================================
# Instance
# =============================================================================


class InstanceCreate(BaseModel):
    template_id: UUID
    member_id: str | None = Field(None, min_length=1, max_length=100)
    provider_id: str | None = Field(None, min_length=1, max_length=100)
    assigned_to: str | None = Field(None, min_length=1, max_length=100)
    due_date: datetime | None = None
    response_data: list[ResponseItem] = Field(default_factory=list)
    context_data: dict[str, Any] = Field(default_factory=dict)


class InstanceUpdate(BaseModel):
    status: FormStatus | None = None
    response_data: list[ResponseItem] | None = None
    context_data: dict[str, Any] | None = None
    assigned_to: str | None = Field(None, min_length=1, max_length=100)
    due_date: datetime | None = None
    rejection_reason: str | None = Field(None, max_length=2000)


class InstanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    template_id: UUID
    tenant_id: str
    member_id: str | None
    provider_id: str | None
    assigned_to: str | None
    status: FormStatus
    response_data: list[ResponseItem]
    context_data: dict[str, Any]
    due_date: datetime | None
    submitted_at: datetime | None
    approved_at: datetime | None
    rejected_at: datetime | None
    rejection_reason: str | None
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str


class InstanceListResponse(BaseModel):
    items: list[InstanceRead]
    total: int
    page: int
    per_page: int
    pages: int


# =============================================================================
# Summary
# =============================================================================


class HierarchyTemplateSummary(BaseModel):
    id: UUID
    name: str
    version: int
    is_active: bool
    live_instance_count: int


class HierarchyTypeSummary(BaseModel):
    id: UUID
    name: str
    is_active: bool
    templates: list[HierarchyTemplateSummary]


class HierarchyCategorySummary(BaseModel):
    id: UUID
    name: str
    is_active: bool
    types: list[HierarchyTypeSummary]
