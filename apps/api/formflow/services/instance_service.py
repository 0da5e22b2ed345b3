"""Form instance lifecycle: creation, response capture, status transitions.

Status changes go through the transition table in ``core.transition_rules``.
Timestamps for submission, approval and rejection are stamped the first
time the instance enters that status and never overwritten.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from formflow.core.errors import (
    ErrorCode,
    ServiceResult,
    handles_persistence_errors,
    parse_payload,
    validation_failure,
)
from formflow.core.structured_logging import build_log_context
from formflow.core.transition_rules import (
    can_transition_instance,
    is_terminal,
    role_can_enter,
)
from formflow.db.enums import (
    DELETABLE_INSTANCE_STATUSES,
    FormStatus,
    LIVE_INSTANCE_STATUSES,
    Role,
)
from formflow.db.models import FormInstance, FormTemplate
from formflow.schemas.forms import InstanceCreate, InstanceUpdate, Question, ResponseItem
from formflow.services import template_service
from formflow.services.assignment_rules import resolve_assignee
from formflow.services.conditional_logic import response_map, visible_questions
from formflow.services.due_date_service import resolve_due_date
from formflow.services.prepopulation_service import (
    PrePopulationLookup,
    prepopulate_responses,
)
from formflow.services.question_schema import coerce_response_value, validate_response_value
from formflow.utils.datetime_utils import Clock, ensure_utc, now_utc
from formflow.utils.pagination import PaginationParams, paginate_select

logger = logging.getLogger(__name__)

_LIVE_STATUS_VALUES = [status.value for status in LIVE_INSTANCE_STATUSES]

# Status -> timestamp column stamped on first entry.
FIRST_ENTRY_STAMPS: dict[FormStatus, str] = {
    FormStatus.PENDING: "submitted_at",
    FormStatus.APPROVED: "approved_at",
    FormStatus.REJECTED: "rejected_at",
}


# =============================================================================
# Queries
# =============================================================================


def get_instance(db: Session, instance_id: UUID, tenant_id: str) -> FormInstance | None:
    return db.execute(
        select(FormInstance)
        .where(FormInstance.id == instance_id)
        .where(FormInstance.tenant_id == tenant_id)
    ).scalar_one_or_none()


def list_instances(
    db: Session,
    tenant_id: str,
    pagination: PaginationParams | None = None,
    template_id: UUID | None = None,
    statuses: Iterable[FormStatus | str] | None = None,
    member_id: str | None = None,
    provider_id: str | None = None,
    assigned_to: str | None = None,
) -> tuple[list[FormInstance], int]:
    """List instances with filters. Returns (items, total)."""
    stmt = select(FormInstance).where(FormInstance.tenant_id == tenant_id)
    if template_id is not None:
        stmt = stmt.where(FormInstance.template_id == template_id)
    if statuses:
        stmt = stmt.where(
            FormInstance.status.in_([FormStatus(s).value for s in statuses])
        )
    if member_id:
        stmt = stmt.where(FormInstance.member_id == member_id)
    if provider_id:
        stmt = stmt.where(FormInstance.provider_id == provider_id)
    if assigned_to:
        stmt = stmt.where(FormInstance.assigned_to == assigned_to)
    stmt = stmt.order_by(FormInstance.created_at.desc(), FormInstance.id)
    return paginate_select(db, stmt, pagination or PaginationParams())


def find_live_duplicate(
    db: Session,
    template_id: UUID,
    member_id: str | None,
    provider_id: str | None,
    exclude_id: UUID | None = None,
) -> FormInstance | None:
    """Live instance of the template matching every identifier supplied."""
    if not member_id and not provider_id:
        return None
    stmt = (
        select(FormInstance)
        .where(FormInstance.template_id == template_id)
        .where(FormInstance.status.in_(_LIVE_STATUS_VALUES))
    )
    if member_id:
        stmt = stmt.where(FormInstance.member_id == member_id)
    if provider_id:
        stmt = stmt.where(FormInstance.provider_id == provider_id)
    if exclude_id is not None:
        stmt = stmt.where(FormInstance.id != exclude_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none()


# =============================================================================
# Responses
# =============================================================================


def merge_responses(
    questions: list[Question],
    existing: list[Mapping[str, Any]] | None,
    incoming: Iterable[ResponseItem],
    now: datetime,
) -> tuple[list[dict[str, Any]], dict[str, list[str]]]:
    """
    Merge incoming answers over stored ones, keyed by question id.

    Each answer is coerced to its question's type. Returns the merged list
    (stored order, new ids appended) and question id -> errors.
    """
    by_id = {q.id: q for q in questions}
    merged: dict[str, dict[str, Any]] = {
        item["question_id"]: dict(item) for item in existing or []
    }
    errors: dict[str, list[str]] = {}

    for item in incoming:
        question = by_id.get(item.question_id)
        if question is None:
            errors.setdefault(item.question_id, []).append("Unknown question")
            continue
        try:
            value = coerce_response_value(question, item.value)
        except ValueError as exc:
            errors.setdefault(item.question_id, []).append(str(exc))
            continue
        merged[item.question_id] = ResponseItem(
            question_id=item.question_id,
            value=value,
            responded_at=ensure_utc(item.responded_at) or now,
            metadata=item.metadata,
        ).model_dump(mode="json")

    return list(merged.values()), errors


def validate_submission(
    questions: list[Question],
    responses: list[Mapping[str, Any]],
) -> dict[str, list[str]]:
    """Validate every visible question. Hidden questions never block."""
    values = response_map(responses)
    problems: dict[str, list[str]] = {}
    for question in visible_questions(questions, values):
        errors = validate_response_value(question, values.get(question.id))
        if errors:
            problems[question.id] = errors
    return problems


def _response_failure(problems: dict[str, list[str]]) -> ServiceResult[Any]:
    return ServiceResult.failure(
        ErrorCode.RESPONSE_VALIDATION_FAILED,
        "Response validation failed",
        details={"responses": problems},
    )


# =============================================================================
# Commands
# =============================================================================


@handles_persistence_errors("create_instance")
def create_instance(
    db: Session,
    tenant_id: str,
    data: InstanceCreate | Mapping[str, Any],
    user_id: str,
    *,
    lookup: PrePopulationLookup | None = None,
    clock: Clock = now_utc,
) -> ServiceResult[FormInstance]:
    """
    Create a draft instance of an active template.

    The template row is locked for the rest of the transaction so the
    duplicate check and the insert cannot interleave with another creator.
    """
    try:
        payload = parse_payload(InstanceCreate, data)
    except ValidationError as exc:
        return validation_failure(exc)

    template = db.execute(
        select(FormTemplate)
        .where(FormTemplate.id == payload.template_id)
        .where(FormTemplate.tenant_id == tenant_id)
        .with_for_update()
    ).scalar_one_or_none()
    if not template or not template.is_active:
        db.rollback()
        return ServiceResult.failure(
            ErrorCode.TEMPLATE_NOT_FOUND,
            "Template not found or inactive",
        )

    duplicate = find_live_duplicate(db, template.id, payload.member_id, payload.provider_id)
    if duplicate:
        db.rollback()
        return ServiceResult.failure(
            ErrorCode.DUPLICATE_INSTANCE,
            "A form instance for this template is already in progress",
            details={"existing_instance_id": str(duplicate.id), "status": duplicate.status},
        )

    now = clock()
    questions = template_service.template_questions(template)

    responses, problems = merge_responses(questions, [], payload.response_data, now)
    if problems:
        db.rollback()
        return _response_failure(problems)

    if lookup is not None and (payload.member_id or payload.provider_id):
        prefilled = prepopulate_responses(
            questions,
            lookup,
            tenant_id,
            member_id=payload.member_id,
            provider_id=payload.provider_id,
            answered={item["question_id"] for item in responses},
            now=now,
        )
        responses.extend(item.model_dump(mode="json") for item in prefilled)

    assigned_to = payload.assigned_to
    if assigned_to is None:
        rule = resolve_assignee(
            template_service.template_assignment_rules(template),
            payload.context_data,
            form_type_name=template.form_type.name,
        )
        if rule is not None:
            assigned_to = rule.assign_to.user_id

    due_date = resolve_due_date(
        ensure_utc(payload.due_date),
        template.due_date_calculation,
        now,
    )

    instance = FormInstance(
        template_id=template.id,
        tenant_id=tenant_id,
        member_id=payload.member_id,
        provider_id=payload.provider_id,
        assigned_to=assigned_to,
        status=FormStatus.DRAFT.value,
        response_data=responses,
        context_data=dict(payload.context_data),
        due_date=due_date,
        created_at=now,
        updated_at=now,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(instance)
    db.commit()
    db.refresh(instance)

    logger.info(
        "Form instance created",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="create_instance",
            entity_type="form_instance",
            entity_id=instance.id,
            status=instance.status,
        ),
    )
    return ServiceResult.success(instance)


@handles_persistence_errors("update_instance")
def update_instance(
    db: Session,
    instance_id: UUID,
    tenant_id: str,
    patch: InstanceUpdate | Mapping[str, Any],
    user_id: str,
    *,
    role: Role | str | None = None,
    clock: Clock = now_utc,
) -> ServiceResult[FormInstance]:
    """
    Apply response/context edits and an optional status transition.

    Re-entering the current status is accepted and does not re-stamp.
    """
    try:
        payload = parse_payload(InstanceUpdate, patch)
    except ValidationError as exc:
        return validation_failure(exc)

    instance = db.execute(
        select(FormInstance)
        .where(FormInstance.id == instance_id)
        .where(FormInstance.tenant_id == tenant_id)
        .with_for_update()
    ).scalar_one_or_none()
    if not instance:
        return ServiceResult.failure(ErrorCode.INSTANCE_NOT_FOUND, "Form instance not found")

    fields = payload.model_fields_set
    current = FormStatus(instance.status)
    target = payload.status or current
    edits = fields - {"status"}

    if is_terminal(current):
        if edits or target != current:
            db.rollback()
            return ServiceResult.failure(
                ErrorCode.INSTANCE_NOT_EDITABLE,
                f"Form instance is {current.value} and can no longer be changed",
            )
        db.rollback()
        return ServiceResult.success(instance)

    if not can_transition_instance(current, target):
        db.rollback()
        return ServiceResult.failure(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot move form instance from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )

    if payload.status is not None and not role_can_enter(target, role):
        db.rollback()
        return ServiceResult.failure(
            ErrorCode.TRANSITION_NOT_PERMITTED,
            f"Role is not allowed to move form instances to {target.value}",
            details={"to": target.value},
        )

    # Reopening a rejected instance must not create a second live one.
    if current not in LIVE_INSTANCE_STATUSES and target in LIVE_INSTANCE_STATUSES:
        duplicate = find_live_duplicate(
            db,
            instance.template_id,
            instance.member_id,
            instance.provider_id,
            exclude_id=instance.id,
        )
        if duplicate:
            db.rollback()
            return ServiceResult.failure(
                ErrorCode.DUPLICATE_INSTANCE,
                "A form instance for this template is already in progress",
                details={"existing_instance_id": str(duplicate.id), "status": duplicate.status},
            )

    now = clock()
    questions = template_service.template_questions(instance.template)

    responses = list(instance.response_data or [])
    if "response_data" in fields and payload.response_data is not None:
        responses, problems = merge_responses(questions, responses, payload.response_data, now)
        if problems:
            db.rollback()
            return _response_failure(problems)

    if target == FormStatus.PENDING and (target != current or "response_data" in fields):
        problems = validate_submission(questions, responses)
        if problems:
            db.rollback()
            return _response_failure(problems)

    # JSON columns are reassigned so the ORM sees the change.
    if "response_data" in fields and payload.response_data is not None:
        instance.response_data = responses
    if "context_data" in fields and payload.context_data is not None:
        instance.context_data = {**(instance.context_data or {}), **payload.context_data}
    if "assigned_to" in fields:
        instance.assigned_to = payload.assigned_to
    if "due_date" in fields:
        instance.due_date = ensure_utc(payload.due_date)
    if "rejection_reason" in fields:
        instance.rejection_reason = payload.rejection_reason

    stamp = FIRST_ENTRY_STAMPS.get(target)
    if stamp and getattr(instance, stamp) is None:
        setattr(instance, stamp, now)

    instance.status = target.value
    instance.updated_at = now
    instance.updated_by = user_id
    db.commit()
    db.refresh(instance)

    logger.info(
        "Form instance updated (%s -> %s)",
        current.value,
        target.value,
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="update_instance",
            entity_type="form_instance",
            entity_id=instance.id,
            status=instance.status,
        ),
    )
    return ServiceResult.success(instance)


def transition_instance(
    db: Session,
    instance_id: UUID,
    tenant_id: str,
    status: FormStatus | str,
    user_id: str,
    *,
    role: Role | str | None = None,
    rejection_reason: str | None = None,
    clock: Clock = now_utc,
) -> ServiceResult[FormInstance]:
    """Status-only convenience wrapper around ``update_instance``."""
    patch: dict[str, Any] = {"status": status}
    if rejection_reason is not None:
        patch["rejection_reason"] = rejection_reason
    return update_instance(
        db, instance_id, tenant_id, patch, user_id, role=role, clock=clock
    )


@handles_persistence_errors("delete_instance")
def delete_instance(
    db: Session,
    instance_id: UUID,
    tenant_id: str,
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[None]:
    """Cancel a draft or rejected instance; instances are never removed."""
    instance = get_instance(db, instance_id, tenant_id)
    if not instance:
        return ServiceResult.failure(ErrorCode.INSTANCE_NOT_FOUND, "Form instance not found")

    current = FormStatus(instance.status)
    if current not in DELETABLE_INSTANCE_STATUSES or not can_transition_instance(
        current, FormStatus.CANCELLED
    ):
        return ServiceResult.failure(
            ErrorCode.INSTANCE_CANNOT_DELETE,
            "Only draft or rejected form instances can be deleted",
            details={"status": current.value},
        )

    instance.status = FormStatus.CANCELLED.value
    instance.updated_at = clock()
    instance.updated_by = user_id
    db.commit()

    logger.info(
        "Form instance cancelled",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="delete_instance",
            entity_type="form_instance",
            entity_id=instance_id,
            status=FormStatus.CANCELLED.value,
        ),
    )
    return ServiceResult.success(None)
