"""Form category CRUD and hierarchy summary."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Mapping
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import func, select
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
from formflow.db.enums import EntityStatus, LIVE_INSTANCE_STATUSES
from formflow.db.models import FormCategory, FormInstance, FormTemplate, FormType
from formflow.schemas.forms import (
    CategoryCreate,
    CategoryUpdate,
    HierarchyCategorySummary,
    HierarchyTemplateSummary,
    HierarchyTypeSummary,
)
from formflow.services import hierarchy_guard
from formflow.utils.datetime_utils import Clock, now_utc

logger = logging.getLogger(__name__)


def get_category(db: Session, category_id: UUID, tenant_id: str) -> FormCategory | None:
    return db.execute(
        select(FormCategory)
        .where(FormCategory.id == category_id)
        .where(FormCategory.tenant_id == tenant_id)
    ).scalar_one_or_none()


def list_categories(
    db: Session,
    tenant_id: str,
    active_only: bool = False,
) -> list[FormCategory]:
    stmt = select(FormCategory).where(FormCategory.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(FormCategory.is_active)
    return list(db.execute(stmt.order_by(FormCategory.name)).scalars().all())


def _name_taken(
    db: Session,
    tenant_id: str,
    name: str,
    exclude_id: UUID | None = None,
) -> bool:
    stmt = (
        select(FormCategory.id)
        .where(FormCategory.tenant_id == tenant_id)
        .where(FormCategory.name == name)
    )
    if exclude_id is not None:
        stmt = stmt.where(FormCategory.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


@handles_persistence_errors("create_category")
def create_category(
    db: Session,
    tenant_id: str,
    data: CategoryCreate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormCategory]:
    try:
        payload = parse_payload(CategoryCreate, data)
    except ValidationError as exc:
        return validation_failure(exc)

    if _name_taken(db, tenant_id, payload.name):
        return ServiceResult.failure(
            ErrorCode.CATEGORY_EXISTS,
            f"Category '{payload.name}' already exists",
        )

    now = clock()
    category = FormCategory(
        tenant_id=tenant_id,
        name=payload.name,
        description=payload.description,
        status=EntityStatus.ACTIVE.value,
        created_at=now,
        updated_at=now,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(category)
    db.commit()
    db.refresh(category)

    logger.info(
        "Form category created",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="create_category",
            entity_type="form_category",
            entity_id=category.id,
        ),
    )
    return ServiceResult.success(category)


@handles_persistence_errors("update_category")
def update_category(
    db: Session,
    category_id: UUID,
    tenant_id: str,
    patch: CategoryUpdate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormCategory]:
    try:
        payload = parse_payload(CategoryUpdate, patch)
    except ValidationError as exc:
        return validation_failure(exc)

    category = get_category(db, category_id, tenant_id)
    if not category:
        return ServiceResult.failure(ErrorCode.CATEGORY_NOT_FOUND, "Category not found")

    changes = payload.model_dump(exclude_unset=True)

    if "name" in changes and changes["name"] != category.name:
        if _name_taken(db, tenant_id, changes["name"], exclude_id=category.id):
            return ServiceResult.failure(
                ErrorCode.CATEGORY_EXISTS,
                f"Category '{changes['name']}' already exists",
            )
        category.name = changes["name"]

    if "description" in changes:
        category.description = changes["description"]

    if changes.get("is_active") is not None:
        target = EntityStatus.ACTIVE if changes["is_active"] else EntityStatus.INACTIVE
        if target == EntityStatus.INACTIVE and category.is_active:
            guard = hierarchy_guard.check_category_deletable(db, category.id)
            if not guard.ok:
                db.rollback()
                return guard
        if can_transition_entity(category.status, target):
            category.status = target.value

    category.updated_at = clock()
    category.updated_by = user_id
    db.commit()
    db.refresh(category)

    logger.info(
        "Form category updated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="update_category",
            entity_type="form_category",
            entity_id=category.id,
            status=category.status,
        ),
    )
    return ServiceResult.success(category)


@handles_persistence_errors("delete_category")
def delete_category(
    db: Session,
    category_id: UUID,
    tenant_id: str,
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[None]:
    """Soft-delete a category (refused while it has active types)."""
    category = get_category(db, category_id, tenant_id)
    if not category:
        return ServiceResult.failure(ErrorCode.CATEGORY_NOT_FOUND, "Category not found")

    guard = hierarchy_guard.check_category_deletable(db, category.id)
    if not guard.ok:
        return guard

    category.status = EntityStatus.INACTIVE.value
    category.updated_at = clock()
    category.updated_by = user_id
    db.commit()

    logger.info(
        "Form category deactivated",
        extra=build_log_context(
            tenant_id=tenant_id,
            user_id=user_id,
            operation="delete_category",
            entity_type="form_category",
            entity_id=category_id,
        ),
    )
    return ServiceResult.success(None)


def get_hierarchy_summary(
    db: Session,
    tenant_id: str,
    active_only: bool = False,
) -> list[HierarchyCategorySummary]:
    """Category -> type -> template tree with live instance counts."""
    categories = list_categories(db, tenant_id, active_only=active_only)

    type_stmt = select(FormType).where(FormType.tenant_id == tenant_id)
    template_stmt = select(FormTemplate).where(FormTemplate.tenant_id == tenant_id)
    if active_only:
        type_stmt = type_stmt.where(FormType.is_active)
        template_stmt = template_stmt.where(FormTemplate.is_active)

    types_by_category: dict[UUID, list[FormType]] = defaultdict(list)
    for form_type in db.execute(type_stmt.order_by(FormType.name)).scalars():
        types_by_category[form_type.category_id].append(form_type)

    templates_by_type: dict[UUID, list[FormTemplate]] = defaultdict(list)
    for template in db.execute(
        template_stmt.order_by(FormTemplate.name, FormTemplate.version)
    ).scalars():
        templates_by_type[template.type_id].append(template)

    live_counts: dict[UUID, int] = dict(
        db.execute(
            select(FormInstance.template_id, func.count(FormInstance.id))
            .where(FormInstance.tenant_id == tenant_id)
            .where(
                FormInstance.status.in_([status.value for status in LIVE_INSTANCE_STATUSES])
            )
            .group_by(FormInstance.template_id)
        ).all()
    )

    return [
        HierarchyCategorySummary(
            id=category.id,
            name=category.name,
            is_active=category.is_active,
            types=[
                HierarchyTypeSummary(
                    id=form_type.id,
                    name=form_type.name,
                    is_active=form_type.is_active,
                    templates=[
                        HierarchyTemplateSummary(
                            id=template.id,
                            name=template.name,
                            version=template.version,
                            is_active=template.is_active,
                            live_instance_count=live_counts.get(template.id, 0),
                        )
                        for template in templates_by_type.get(form_type.id, [])
                    ],
                )
                for form_type in types_by_category.get(category.id, [])
            ],
        )
        for category in categories
    ]
