"""Deletion-safety checks across the form hierarchy.

A parent cannot be soft-deleted while it still has active (or, for
templates, live) children.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from formflow.core.errors import ErrorCode, ServiceResult
from formflow.db.enums import LIVE_INSTANCE_STATUSES
from formflow.db.models import FormInstance, FormTemplate, FormType

_LIVE_STATUS_VALUES = [status.value for status in LIVE_INSTANCE_STATUSES]


def count_active_types(db: Session, category_id: UUID) -> int:
    return db.execute(
        select(func.count(FormType.id))
        .where(FormType.category_id == category_id)
        .where(FormType.is_active)
    ).scalar_one()


def count_active_templates(db: Session, type_id: UUID) -> int:
    return db.execute(
        select(func.count(FormTemplate.id))
        .where(FormTemplate.type_id == type_id)
        .where(FormTemplate.is_active)
    ).scalar_one()


def count_live_instances(db: Session, template_id: UUID) -> int:
    return db.execute(
        select(func.count(FormInstance.id))
        .where(FormInstance.template_id == template_id)
        .where(FormInstance.status.in_(_LIVE_STATUS_VALUES))
    ).scalar_one()


def check_category_deletable(db: Session, category_id: UUID) -> ServiceResult[None]:
    active = count_active_types(db, category_id)
    if active:
        return ServiceResult.failure(
            ErrorCode.CATEGORY_HAS_ACTIVE_TYPES,
            "Cannot delete category with active form types",
            details={"active_types": active},
        )
    return ServiceResult.success()


def check_type_deletable(db: Session, type_id: UUID) -> ServiceResult[None]:
    active = count_active_templates(db, type_id)
    if active:
        return ServiceResult.failure(
            ErrorCode.TYPE_HAS_ACTIVE_TEMPLATES,
            "Cannot delete form type with active templates",
            details={"active_templates": active},
        )
    return ServiceResult.success()


def check_template_deletable(db: Session, template_id: UUID) -> ServiceResult[None]:
    live = count_live_instances(db, template_id)
    if live:
        return ServiceResult.failure(
            ErrorCode.TEMPLATE_HAS_ACTIVE_INSTANCES,
            "Cannot delete template with active instances",
            details={"active_instances": live},
        )
    return ServiceResult.success()
