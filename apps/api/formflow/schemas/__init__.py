"""Pydantic schemas for API request/response models."""

from formflow.schemas.forms import (
    BusinessRule,
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    FormTypeCreate,
    FormTypeRead,
    FormTypeUpdate,
    InstanceCreate,
    InstanceListResponse,
    InstanceRead,
    InstanceUpdate,
    Question,
    ResponseItem,
    TemplateCreate,
    TemplateRead,
    TemplateUpdate,
)

__all__ = [
    "BusinessRule",
    "CategoryCreate",
    "CategoryRead",
    "CategoryUpdate",
    "FormTypeCreate",
    "FormTypeRead",
    "FormTypeUpdate",
    "InstanceCreate",
    "InstanceListResponse",
    "InstanceRead",
    "InstanceUpdate",
    "Question",
    "ResponseItem",
    "TemplateCreate",
    "TemplateRead",
    "TemplateUpdate",
]
