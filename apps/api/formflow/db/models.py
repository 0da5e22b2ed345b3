"""SQLAlchemy ORM models for the form hierarchy."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formflow.db.base import Base
from formflow.db.enums import EntityStatus, FormStatus
from formflow.utils.datetime_utils import now_utc

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class AuditMixin:
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(100), nullable=False)


class StatusFlagMixin:
    """Explicit active/inactive status with a derived ``is_active`` flag."""

    status: Mapped[str] = mapped_column(
        String(20), default=EntityStatus.ACTIVE.value, nullable=False
    )

    @hybrid_property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE.value

    @is_active.inplace.expression
    @classmethod
    def _is_active_expression(cls):
        return cls.status == EntityStatus.ACTIVE.value


class FormCategory(StatusFlagMixin, AuditMixin, Base):
    """Top-level grouping (e.g. "cases", "assessments")."""

    __tablename__ = "form_categories"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_form_category_name"),
        Index("idx_form_categories_tenant_status", "tenant_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    types: Mapped[list["FormType"]] = relationship(back_populates="category")


class FormType(StatusFlagMixin, AuditMixin, Base):
    """Form type within a category (e.g. "appeals")."""

    __tablename__ = "form_types"
    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_form_type_name"),
        Index("idx_form_types_category_status", "category_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form_categories.id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Declarative rules; interpreted, never executed
    business_rules: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )

    category: Mapped[FormCategory] = relationship(back_populates="types")
    templates: Mapped[list["FormTemplate"]] = relationship(back_populates="form_type")


class FormTemplate(StatusFlagMixin, AuditMixin, Base):
    """Versioned question set for a form type."""

    __tablename__ = "form_templates"
    __table_args__ = (
        UniqueConstraint("type_id", "name", "version", name="uq_form_template_version"),
        CheckConstraint("version >= 1", name="ck_form_template_version_positive"),
        Index("idx_form_templates_type_name", "type_id", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form_types.id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # JSON columns are replaced wholesale on update, never mutated in place.
    questions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    workflow: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    due_date_calculation: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    reminder_frequency: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    auto_assignment_rules: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )

    effective_date: Mapped[datetime] = mapped_column(nullable=False)
    expiration_date: Mapped[datetime | None] = mapped_column(nullable=True)

    form_type: Mapped[FormType] = relationship(back_populates="templates")
    instances: Mapped[list["FormInstance"]] = relationship(back_populates="template")


class FormInstance(AuditMixin, Base):
    """A filled-in (or in-progress) form."""

    __tablename__ = "form_instances"
    __table_args__ = (
        Index("idx_form_instances_template_status", "template_id", "status"),
        Index("idx_form_instances_member", "member_id"),
        Index("idx_form_instances_provider", "provider_id"),
        Index("idx_form_instances_assignee", "tenant_id", "assigned_to"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form_templates.id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    member_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    provider_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=FormStatus.DRAFT.value, nullable=False
    )

    response_data: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    context_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=dict, nullable=False
    )

    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    template: Mapped[FormTemplate] = relationship(back_populates="instances")
