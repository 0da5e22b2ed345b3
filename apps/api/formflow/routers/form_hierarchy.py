"""Form hierarchy endpoints: categories, types, templates and instances."""

from typing import Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from formflow.core.deps import IdentityContext, get_db, get_identity, get_prepopulation_lookup
from formflow.core.errors import ErrorCode, ErrorKind, ServiceError, ServiceResult
from formflow.db.enums import FormStatus
from formflow.schemas.forms import (
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    FormTypeCreate,
    FormTypeRead,
    FormTypeUpdate,
    HierarchyCategorySummary,
    InstanceCreate,
    InstanceListResponse,
    InstanceRead,
    InstanceUpdate,
    QuestionCreate,
    QuestionPatch,
    QuestionReorder,
    TemplateCopy,
    TemplateCreate,
    TemplatePreview,
    TemplateRead,
    TemplateUpdate,
    TemplateVersionCreate,
)
from formflow.services import (
    category_service,
    form_type_service,
    instance_service,
    question_builder_service,
    template_service,
)
from formflow.services.prepopulation_service import PrePopulationLookup
from formflow.utils.pagination import PaginationParams, get_pagination

router = APIRouter(prefix="/forms", tags=["forms"])

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTEGRITY_VIOLATION: 409,
    ErrorKind.VALIDATION: 422,
    ErrorKind.PERMISSION: 403,
    ErrorKind.TRANSIENT: 503,
}


def _raise(error: ServiceError) -> NoReturn:
    raise HTTPException(status_code=STATUS_BY_KIND[error.kind], detail=error.to_dict())


def _unwrap(result: ServiceResult[Any]) -> Any:
    if not result.ok:
        _raise(result.error)
    return result.data


def _not_found(code: ErrorCode, message: str) -> NoReturn:
    _raise(ServiceError(code=code, message=message))


# =============================================================================
# Categories
# =============================================================================


@router.get("/categories", response_model=list[CategoryRead])
def list_categories(
    active_only: bool = Query(False),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return category_service.list_categories(db, identity.tenant_id, active_only=active_only)


@router.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(
    body: CategoryCreate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        category_service.create_category(db, identity.tenant_id, body, identity.user_id)
    )


@router.get("/hierarchy", response_model=list[HierarchyCategorySummary])
def get_hierarchy_summary(
    active_only: bool = Query(False),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return category_service.get_hierarchy_summary(db, identity.tenant_id, active_only=active_only)


@router.get("/categories/{category_id}", response_model=CategoryRead)
def get_category(
    category_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    category = category_service.get_category(db, category_id, identity.tenant_id)
    if not category:
        _not_found(ErrorCode.CATEGORY_NOT_FOUND, "Category not found")
    return category


@router.patch("/categories/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: UUID,
    body: CategoryUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        category_service.update_category(
            db, category_id, identity.tenant_id, body, identity.user_id
        )
    )


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _unwrap(category_service.delete_category(db, category_id, identity.tenant_id, identity.user_id))
    return Response(status_code=204)


# =============================================================================
# Types
# =============================================================================


@router.get("/types", response_model=list[FormTypeRead])
def list_types(
    category_id: UUID | None = Query(None),
    active_only: bool = Query(False),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return form_type_service.list_types(
        db, identity.tenant_id, category_id=category_id, active_only=active_only
    )


@router.post("/types", response_model=FormTypeRead, status_code=201)
def create_type(
    body: FormTypeCreate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(form_type_service.create_type(db, identity.tenant_id, body, identity.user_id))


@router.get("/types/{type_id}", response_model=FormTypeRead)
def get_type(
    type_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    form_type = form_type_service.get_type(db, type_id, identity.tenant_id)
    if not form_type:
        _not_found(ErrorCode.TYPE_NOT_FOUND, "Form type not found")
    return form_type


@router.patch("/types/{type_id}", response_model=FormTypeRead)
def update_type(
    type_id: UUID,
    body: FormTypeUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        form_type_service.update_type(db, type_id, identity.tenant_id, body, identity.user_id)
    )


@router.delete("/types/{type_id}", status_code=204)
def delete_type(
    type_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _unwrap(form_type_service.delete_type(db, type_id, identity.tenant_id, identity.user_id))
    return Response(status_code=204)


# =============================================================================
# Templates
# =============================================================================


@router.get("/templates", response_model=list[TemplateRead])
def list_templates(
    type_id: UUID | None = Query(None),
    name: str | None = Query(None),
    active_only: bool = Query(False),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return template_service.list_templates(
        db, identity.tenant_id, type_id=type_id, name=name, active_only=active_only
    )


@router.post("/templates", response_model=TemplateRead, status_code=201)
def create_template(
    body: TemplateCreate,
    require_active_type: bool = Query(True),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        template_service.create_template(
            db,
            identity.tenant_id,
            body,
            identity.user_id,
            require_active_type=require_active_type,
        )
    )


@router.get("/templates/latest", response_model=TemplateRead)
def get_latest_template_version(
    name: str = Query(..., min_length=1),
    type_id: UUID = Query(...),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        template_service.get_latest_template_version(db, name, type_id, identity.tenant_id)
    )


@router.get("/templates/history", response_model=list[TemplateRead])
def get_template_version_history(
    name: str = Query(..., min_length=1),
    type_id: UUID = Query(...),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return template_service.get_template_version_history(db, name, type_id, identity.tenant_id)


@router.get("/templates/{template_id}", response_model=TemplateRead)
def get_template(
    template_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    template = template_service.get_template(db, template_id, identity.tenant_id)
    if not template:
        _not_found(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")
    return template


@router.patch("/templates/{template_id}", response_model=TemplateRead)
def update_template(
    template_id: UUID,
    body: TemplateUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        template_service.update_template(
            db, template_id, identity.tenant_id, body, identity.user_id
        )
    )


@router.delete("/templates/{template_id}", status_code=204)
def delete_template(
    template_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _unwrap(
        template_service.delete_template(db, template_id, identity.tenant_id, identity.user_id)
    )
    return Response(status_code=204)


@router.post("/templates/{template_id}/copy", response_model=TemplateRead, status_code=201)
def copy_template(
    template_id: UUID,
    body: TemplateCopy,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        template_service.copy_template(
            db,
            template_id,
            identity.tenant_id,
            new_name=body.new_name,
            target_type_id=body.target_type_id,
            user_id=identity.user_id,
        )
    )


@router.post("/templates/{template_id}/versions", response_model=TemplateRead, status_code=201)
def create_template_version(
    template_id: UUID,
    body: TemplateVersionCreate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        template_service.create_template_version(
            db,
            template_id,
            identity.tenant_id,
            version_notes=body.version_notes,
            user_id=identity.user_id,
        )
    )


@router.post("/templates/{template_id}/preview", response_model=TemplatePreview)
def preview_template(
    template_id: UUID,
    sample_responses: dict[str, Any] | None = Body(None),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.generate_preview(
            db, template_id, identity.tenant_id, sample_responses
        )
    )


@router.get("/templates/{template_id}/validation", response_model=dict[str, list[str]])
def validate_template_questions(
    template_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.validate_conditional_references(
            db, template_id, identity.tenant_id
        )
    )


@router.post("/templates/{template_id}/questions", response_model=TemplateRead, status_code=201)
def add_question(
    template_id: UUID,
    body: QuestionCreate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.add_question(
            db, template_id, identity.tenant_id, body, identity.user_id
        )
    )


@router.post("/templates/{template_id}/questions/reorder", response_model=TemplateRead)
def reorder_questions(
    template_id: UUID,
    body: QuestionReorder,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.reorder_questions(
            db, template_id, identity.tenant_id, body, identity.user_id
        )
    )


@router.patch("/templates/{template_id}/questions/{question_id}", response_model=TemplateRead)
def update_question(
    template_id: UUID,
    question_id: str,
    body: QuestionPatch,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.update_question(
            db, template_id, question_id, identity.tenant_id, body, identity.user_id
        )
    )


@router.delete("/templates/{template_id}/questions/{question_id}", response_model=TemplateRead)
def remove_question(
    template_id: UUID,
    question_id: str,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        question_builder_service.remove_question(
            db, template_id, question_id, identity.tenant_id, identity.user_id
        )
    )


# =============================================================================
# Instances
# =============================================================================


@router.get("/instances", response_model=InstanceListResponse)
def list_instances(
    template_id: UUID | None = Query(None),
    status: list[FormStatus] | None = Query(None),
    member_id: str | None = Query(None),
    provider_id: str | None = Query(None),
    assigned_to: str | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    items, total = instance_service.list_instances(
        db,
        identity.tenant_id,
        pagination,
        template_id=template_id,
        statuses=status,
        member_id=member_id,
        provider_id=provider_id,
        assigned_to=assigned_to,
    )
    return InstanceListResponse(
        items=[InstanceRead.model_validate(item) for item in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.page_count(total),
    )


@router.post("/instances", response_model=InstanceRead, status_code=201)
def create_instance(
    body: InstanceCreate,
    identity: IdentityContext = Depends(get_identity),
    lookup: PrePopulationLookup | None = Depends(get_prepopulation_lookup),
    db: Session = Depends(get_db),
):
    return _unwrap(
        instance_service.create_instance(
            db, identity.tenant_id, body, identity.user_id, lookup=lookup
        )
    )


@router.get("/instances/{instance_id}", response_model=InstanceRead)
def get_instance(
    instance_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    instance = instance_service.get_instance(db, instance_id, identity.tenant_id)
    if not instance:
        _not_found(ErrorCode.INSTANCE_NOT_FOUND, "Form instance not found")
    return instance


@router.patch("/instances/{instance_id}", response_model=InstanceRead)
def update_instance(
    instance_id: UUID,
    body: InstanceUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return _unwrap(
        instance_service.update_instance(
            db,
            instance_id,
            identity.tenant_id,
            body,
            identity.user_id,
            role=identity.role,
        )
    )


@router.delete("/instances/{instance_id}", status_code=204)
def delete_instance(
    instance_id: UUID,
    identity: IdentityContext = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _unwrap(
        instance_service.delete_instance(db, instance_id, identity.tenant_id, identity.user_id)
    )
    return Response(status_code=204)
