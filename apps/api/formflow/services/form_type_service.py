"""Form type CRUD."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from uuid import UUID

from pydantic import TypeAdapter, ValidationError
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
from formflow.core.transition_rules import can_transition_entity
from formflow.db.enums import EntityStatus
from formflow.db.models import FormType
from formflow.schemas.forms import BusinessRule, FormTypeCreate, FormTypeUpdate
from formflow.services import category_service, hierarchy_guard
from formflow.utils.datetime_utils import Clock, now_utc

logger = logging.getLogger(__name__)

_business_rules_adapter = TypeAdapter(list[BusinessRule])


def _dump_business_rules(rules: list) -> list[dict[str, Any]]:
    return _business_rules_adapter.dump_python(rules, mode="json")


def get_type(db: Session, type_id: UUID, tenant_id: str) -> FormType | None:
    return db.execute(
        select(FormType)
        .where(FormType.id == type_id)
        .where(FormType.tenant_id == tenant_id)
    ).scalar_one_or_none()


def list_types(
    db: Session,
    tenant_id: str,
    category_id: UUID | None = None,
    active_only: bool = False,
) -> list[FormType]:
    stmt = select(FormType).where(FormType.tenant_id == tenant_id)
    if category_id is not None:
        stmt = stmt.where(FormType.category_id == category_id)
    if active_only:
        stmt = stmt.where(FormType.is_active)
    return list(db.execute(stmt.order_by(FormType.name)).scalars().all())


def _name_taken(
    db: Session,
    category_id: UUID,
    name: str,
    exclude_id: UUID | None = None,
) -> bool:
    stmt = (
        select(FormType.id)
        .where(FormType.category_id == category_id)
        .where(FormType.name == name)
    )
    if exclude_id is not None:
        stmt = stmt.where(FormType.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


@handles_persistence_errors("create_type")
def create_type(
    db: Session,
    tenant_id: str,
    data: FormTypeCreate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormType]:
    try:
        payload = parse_payload(FormTypeCreate, data)
    except ValidationError as exc:
        return validation_failure(exc)

    category = category_service.get_category(db, payload.category_id, tenant_id)
    if not category:
        return ServiceResult.failure(ErrorCode.CATEGORY_NOT_FOUND, "Category not found")

    if _name_taken(db, category.id, payload.name):
        return ServiceResult.failure(
            ErrorCode.TYPE_EXISTS,
            f"Form type '{payload.name}' already exists in this category",
        )

    now = clock()
    form_type = FormType(
        category_id=category.id,
        tenant_id=tenant_id,
        name=payload.name,
        description=payload.description,
        business_rules=_dump_business_rules(payload.business_rules),
        status=EntityStatus.ACTIVE.value,
        created_at=now,
        updated_at=now,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(form_type)
    db.commit()
    db.refresh(form_type)

    logger.info(
        "Form type created",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="create_type",
            entity_type="form_type",
            entity_id=form_type.id,
        ),
    )
    return ServiceResult.success(form_type)


@handles_persistence_errors("update_type")
def update_type(
    db: Session,
    type_id: UUID,
    tenant_id: str,
    patch: FormTypeUpdate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormType]:
    try:
        payload = parse_payload(FormTypeUpdate, patch)
    except ValidationError as exc:
        return validation_failure(exc)

    form_type = get_type(db, type_id, tenant_id)
    if not form_type:
        return ServiceResult.failure(ErrorCode.TYPE_NOT_FOUND, "Form type not found")

    fields = payload.model_fields_set

    if "name" in fields and payload.name and payload.name != form_type.name:
        if _name_taken(db, form_type.category_id, payload.name, exclude_id=form_type.id):
            return ServiceResult.failure(
                ErrorCode.TYPE_EXISTS,
                f"Form type '{payload.name}' already exists in this category",
            )
        form_type.name = payload.name

    if "description" in fields:
        form_type.description = payload.description

    if "business_rules" in fields and payload.business_rules is not None:
        form_type.business_rules = _dump_business_rules(payload.business_rules)

    if payload.is_active is not None:
        target = EntityStatus.ACTIVE if payload.is_active else EntityStatus.INACTIVE
        if target == EntityStatus.INACTIVE and form_type.is_active:
            guard = hierarchy_guard.check_type_deletable(db, form_type.id)
            if not guard.ok:
                db.rollback()
                return guard
        if can_transition_entity(form_type.status, target):
            form_type.status = target.value

    form_type.updated_at = clock()
    form_type.updated_by = user_id
    db.commit()
    db.refresh(form_type)

    logger.info(
        "Form type updated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="update_type",
            entity_type="form_type",
            entity_id=form_type.id,
            status=form_type.status,
        ),
    )
    return ServiceResult.success(form_type)


@handles_persistence_errors("delete_type")
def delete_type(
    db: Session,
    type_id: UUID,
    tenant_id: str,
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[None]:
    """Soft-delete a form type (refused while it has active templates)."""
    form_type = get_type(db, type_id, tenant_id)
    if not form_type:
        return ServiceResult.failure(ErrorCode.TYPE_NOT_FOUND, "Form type not found")

    guard = hierarchy_guard.check_type_deletable(db, form_type.id)
    if not guard.ok:
        return guard

    form_type.status = EntityStatus.INACTIVE.value
    form_type.updated_at = clock()
    form_type.updated_by = user_id
    db.commit()

    logger.info(
        "Form type deactivated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="delete_type",
            entity_type="form_type",
            entity_id=type_id,
        ),
    )
    return ServiceResult.success(None)
