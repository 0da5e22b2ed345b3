"""Form template service: creation, versioning, copying and soft deletion.

Versions are sequenced per (type_id, name) starting at 1. The unique
constraint on (type_id, name, version) serializes concurrent writers: the
insert runs under a savepoint and a writer that loses the race recomputes
the next version and tries again.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from formflow.core.config import settings
from formflow.core.errors import (
    ErrorCode,
    ServiceResult,
    handles_persistence_errors,
    parse_payload,
    validation_failure,
)
from formflow.core.structured_logging import build_log_context
from formflow.core.transition_rules import can_transition_entity
from formflow.db.enums import EntityStatus
from formflow.db.models import FormTemplate, FormType
from formflow.schemas.forms import (
    AssignmentRule,
    Question,
    TemplateCreate,
    TemplateUpdate,
)
from formflow.services import form_type_service, hierarchy_guard
from formflow.services.question_schema import validate_question_set
from formflow.utils.datetime_utils import Clock, ensure_utc, now_utc

logger = logging.getLogger(__name__)

VERSION_CONSTRAINT = "uq_form_template_version"


# =============================================================================
# Queries
# =============================================================================


def get_template(db: Session, template_id: UUID, tenant_id: str) -> FormTemplate | None:
    return db.execute(
        select(FormTemplate)
        .where(FormTemplate.id == template_id)
        .where(FormTemplate.tenant_id == tenant_id)
    ).scalar_one_or_none()


def list_templates(
    db: Session,
    tenant_id: str,
    type_id: UUID | None = None,
    name: str | None = None,
    active_only: bool = False,
) -> list[FormTemplate]:
    stmt = select(FormTemplate).where(FormTemplate.tenant_id == tenant_id)
    if type_id is not None:
        stmt = stmt.where(FormTemplate.type_id == type_id)
    if name:
        stmt = stmt.where(FormTemplate.name == name)
    if active_only:
        stmt = stmt.where(FormTemplate.is_active)
    return list(
        db.execute(
            stmt.order_by(FormTemplate.name, FormTemplate.version.desc())
        ).scalars().all()
    )


def get_latest_template_version(
    db: Session,
    name: str,
    type_id: UUID,
    tenant_id: str,
) -> ServiceResult[FormTemplate]:
    """Highest version of (type_id, name) in the tenant, active or not."""
    template = db.execute(
        select(FormTemplate)
        .where(FormTemplate.tenant_id == tenant_id)
        .where(FormTemplate.type_id == type_id)
        .where(FormTemplate.name == name)
        .order_by(FormTemplate.version.desc())
        .limit(1)
    ).scalar_one_or_none()
    if not template:
        return ServiceResult.failure(
            ErrorCode.TEMPLATE_NOT_FOUND,
            f"No template named '{name}' in this form type",
        )
    return ServiceResult.success(template)


def get_template_version_history(
    db: Session,
    name: str,
    type_id: UUID,
    tenant_id: str,
    limit: int = 50,
) -> list[FormTemplate]:
    """All versions of (type_id, name), newest first."""
    return list(
        db.execute(
            select(FormTemplate)
            .where(FormTemplate.tenant_id == tenant_id)
            .where(FormTemplate.type_id == type_id)
            .where(FormTemplate.name == name)
            .order_by(FormTemplate.version.desc())
            .limit(limit)
        ).scalars().all()
    )


def template_questions(template: FormTemplate) -> list[Question]:
    return [Question.model_validate(q) for q in template.questions or []]


def template_assignment_rules(template: FormTemplate) -> list[AssignmentRule]:
    return [AssignmentRule.model_validate(r) for r in template.auto_assignment_rules or []]


# =============================================================================
# Versioned insert
# =============================================================================


def next_version(db: Session, type_id: UUID, name: str) -> int:
    current_max = db.execute(
        select(func.max(FormTemplate.version))
        .where(FormTemplate.type_id == type_id)
        .where(FormTemplate.name == name)
    ).scalar() or 0
    return current_max + 1


def _is_version_conflict(error: IntegrityError) -> bool:
    constraint_name = getattr(getattr(error.orig, "diag", None), "constraint_name", None)
    if constraint_name:
        return constraint_name == VERSION_CONSTRAINT
    message = str(error.orig) if error.orig else str(error)
    return VERSION_CONSTRAINT in message or (
        "form_templates" in message and "version" in message
    )


def _insert_versioned(
    db: Session,
    type_id: UUID,
    name: str,
    build: Callable[[int], FormTemplate],
) -> FormTemplate | None:
    """
    Insert the template built for the next free version.

    Returns None when every attempt lost the race.
    """
    max_attempts = max(1, settings.TEMPLATE_VERSION_MAX_ATTEMPTS)
    for attempt in range(max_attempts):
        template = build(next_version(db, type_id, name))
        try:
            with db.begin_nested():
                db.add(template)
                db.flush()
            return template
        except IntegrityError as exc:
            if not _is_version_conflict(exc):
                raise
            logger.warning(
                "Template version conflict on attempt %s/%s",
                attempt + 1,
                max_attempts,
                extra={"type_id": str(type_id)},
            )
    return None


def _version_conflict() -> ServiceResult[FormTemplate]:
    return ServiceResult.failure(
        ErrorCode.TEMPLATE_VERSION_CONFLICT,
        "Concurrent template versioning; retry the request",
    )


def _question_failure(problems: dict[str, list[str]]) -> ServiceResult[Any]:
    return ServiceResult.failure(
        ErrorCode.VALIDATION_ERROR,
        "Invalid question configuration",
        details={"questions": problems},
    )


def _dump(model_or_list: Any) -> Any:
    if model_or_list is None:
        return None
    if isinstance(model_or_list, list):
        return [item.model_dump(mode="json") for item in model_or_list]
    return model_or_list.model_dump(mode="json")


# =============================================================================
# Commands
# =============================================================================


@handles_persistence_errors("create_template")
def create_template(
    db: Session,
    tenant_id: str,
    data: TemplateCreate | Mapping[str, Any],
    user_id: str,
    *,
    require_active_type: bool = False,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """Create the next version of (type_id, name)."""
    try:
        payload = parse_payload(TemplateCreate, data)
    except ValidationError as exc:
        return validation_failure(exc)

    form_type = form_type_service.get_type(db, payload.type_id, tenant_id)
    if not form_type:
        return ServiceResult.failure(ErrorCode.TYPE_NOT_FOUND, "Form type not found")
    if require_active_type and not form_type.is_active:
        return ServiceResult.failure(ErrorCode.TYPE_NOT_FOUND, "Form type is inactive")

    problems = validate_question_set(payload.questions)
    if problems:
        return _question_failure(problems)

    now = clock()
    effective_date = ensure_utc(payload.effective_date) or now
    expiration_date = ensure_utc(payload.expiration_date)
    if expiration_date is not None and expiration_date <= effective_date:
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            "expiration_date must be after effective_date",
        )

    def build(version: int) -> FormTemplate:
        return FormTemplate(
            type_id=form_type.id,
            tenant_id=tenant_id,
            name=payload.name,
            description=payload.description,
            version=version,
            questions=_dump(payload.questions),
            workflow=_dump(payload.workflow),
            due_date_calculation=_dump(payload.due_date_calculation),
            reminder_frequency=_dump(payload.reminder_frequency),
            auto_assignment_rules=_dump(payload.auto_assignment_rules),
            status=EntityStatus.ACTIVE.value,
            effective_date=effective_date,
            expiration_date=expiration_date,
            created_at=now,
            updated_at=now,
            created_by=user_id,
            updated_by=user_id,
        )

    template = _insert_versioned(db, form_type.id, payload.name, build)
    if template is None:
        db.rollback()
        return _version_conflict()
    db.commit()
    db.refresh(template)

    logger.info(
        "Form template created (version %s)",
        template.version,
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="create_template",
            entity_type="form_template",
            entity_id=template.id,
        ),
    )
    return ServiceResult.success(template)


@handles_persistence_errors("update_template")
def update_template(
    db: Session,
    template_id: UUID,
    tenant_id: str,
    patch: TemplateUpdate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """
    Update a template in place.

    Edits are live: existing instances render against the current
    questions and workflow.
    """
    try:
        payload = parse_payload(TemplateUpdate, patch)
    except ValidationError as exc:
        return validation_failure(exc)

    template = get_template(db, template_id, tenant_id)
    if not template:
        return ServiceResult.failure(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")

    fields = payload.model_fields_set

    if "questions" in fields and payload.questions is not None:
        problems = validate_question_set(payload.questions)
        if problems:
            return _question_failure(problems)

    effective_date: datetime = template.effective_date
    expiration_date: datetime | None = template.expiration_date
    if "effective_date" in fields and payload.effective_date is not None:
        effective_date = ensure_utc(payload.effective_date)
    if "expiration_date" in fields:
        expiration_date = ensure_utc(payload.expiration_date)
    # Stored dates are only re-validated when one of them changes.
    dates_changed = bool(fields & {"effective_date", "expiration_date"})
    if dates_changed and expiration_date is not None and expiration_date <= effective_date:
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            "expiration_date must be after effective_date",
        )

    if payload.is_active is not None:
        target = EntityStatus.ACTIVE if payload.is_active else EntityStatus.INACTIVE
        if target == EntityStatus.INACTIVE and template.is_active:
            guard = hierarchy_guard.check_template_deletable(db, template.id)
            if not guard.ok:
                return guard
        if can_transition_entity(template.status, target):
            template.status = target.value

    # JSON columns are reassigned so the ORM sees the change.
    if "description" in fields:
        template.description = payload.description
    if "questions" in fields and payload.questions is not None:
        template.questions = _dump(payload.questions)
    if "workflow" in fields and payload.workflow is not None:
        template.workflow = _dump(payload.workflow)
    if "due_date_calculation" in fields:
        template.due_date_calculation = _dump(payload.due_date_calculation)
    if "reminder_frequency" in fields:
        template.reminder_frequency = _dump(payload.reminder_frequency)
    if "auto_assignment_rules" in fields:
        template.auto_assignment_rules = _dump(payload.auto_assignment_rules)
    template.effective_date = effective_date
    template.expiration_date = expiration_date

    template.updated_at = clock()
    template.updated_by = user_id
    db.commit()
    db.refresh(template)

    logger.info(
        "Form template updated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="update_template",
            entity_type="form_template",
            entity_id=template.id,
            status=template.status,
        ),
    )
    return ServiceResult.success(template)


@handles_persistence_errors("delete_template")
def delete_template(
    db: Session,
    template_id: UUID,
    tenant_id: str,
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[None]:
    """Soft-delete a template (refused while instances are live)."""
    template = get_template(db, template_id, tenant_id)
    if not template:
        return ServiceResult.failure(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")

    guard = hierarchy_guard.check_template_deletable(db, template.id)
    if not guard.ok:
        return guard

    template.status = EntityStatus.INACTIVE.value
    template.updated_at = clock()
    template.updated_by = user_id
    db.commit()

    logger.info(
        "Form template deactivated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="delete_template",
            entity_type="form_template",
            entity_id=template_id,
        ),
    )
    return ServiceResult.success(None)


def _copy_from(
    db: Session,
    source: FormTemplate,
    target_type: FormType,
    name: str,
    description: str | None,
    user_id: str,
    now: datetime,
) -> FormTemplate | None:
    """Insert a copy of ``source`` as the next version of (target_type, name)."""

    def build(version: int) -> FormTemplate:
        return FormTemplate(
            type_id=target_type.id,
            tenant_id=source.tenant_id,
            name=name,
            description=description,
            version=version,
            questions=list(source.questions or []),
            workflow=dict(source.workflow or {}),
            due_date_calculation=source.due_date_calculation,
            reminder_frequency=source.reminder_frequency,
            auto_assignment_rules=source.auto_assignment_rules,
            status=EntityStatus.ACTIVE.value,
            effective_date=now,
            # Carried over verbatim; may already be in the past.
            expiration_date=source.expiration_date,
            created_at=now,
            updated_at=now,
            created_by=user_id,
            updated_by=user_id,
        )

    return _insert_versioned(db, target_type.id, name, build)


@handles_persistence_errors("copy_template")
def copy_template(
    db: Session,
    source_id: UUID,
    tenant_id: str,
    new_name: str | None = None,
    target_type_id: UUID | None = None,
    user_id: str | None = None,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """
    Copy a template, optionally renamed and/or into another type.

    The copy is active, effective now and versioned against its own
    (type, name) pair.
    """
    source = get_template(db, source_id, tenant_id)
    if not source:
        return ServiceResult.failure(ErrorCode.TEMPLATE_NOT_FOUND, "Source template not found")

    if target_type_id is not None:
        target_type = form_type_service.get_type(db, target_type_id, tenant_id)
        if not target_type:
            return ServiceResult.failure(ErrorCode.TYPE_NOT_FOUND, "Target form type not found")
    else:
        target_type = source.form_type

    name = new_name or f"{source.name}{settings.COPY_NAME_SUFFIX}"
    actor = user_id or source.created_by
    now = clock()

    template = _copy_from(db, source, target_type, name, source.description, actor, now)
    if template is None:
        db.rollback()
        return _version_conflict()
    db.commit()
    db.refresh(template)

    logger.info(
        "Form template copied (version %s)",
        template.version,
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=actor,
            operation="copy_template",
            entity_type="form_template",
            entity_id=template.id,
        ),
    )
    return ServiceResult.success(template)


@handles_persistence_errors("create_template_version")
def create_template_version(
    db: Session,
    source_id: UUID,
    tenant_id: str,
    version_notes: str | None = None,
    user_id: str | None = None,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """Copy a template under the same name and type, i.e. its next version."""
    source = get_template(db, source_id, tenant_id)
    if not source:
        return ServiceResult.failure(ErrorCode.TEMPLATE_NOT_FOUND, "Source template not found")

    description = source.description
    if version_notes:
        description = f"{source.description or ''}\n\nVersion Notes: {version_notes}".strip()

    actor = user_id or source.created_by
    now = clock()

    template = _copy_from(db, source, source.form_type, source.name, description, actor, now)
    if template is None:
        db.rollback()
        return _version_conflict()
    db.commit()
    db.refresh(template)

    logger.info(
        "Form template version %s created",
        template.version,
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=actor,
            operation="create_template_version",
            entity_type="form_template",
            entity_id=template.id,
        ),
    )
    return ServiceResult.success(template)
