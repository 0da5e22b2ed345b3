"""Question editing on an existing template, plus preview."""

from __future__ import annotations

import logging
import math
import uuid
from typing import Any, Mapping
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from formflow.core.errors import (
    ErrorCode,
    ServiceResult,
    handles_persistence_errors,
    parse_payload,
    validation_failure,
)
from formflow.core.structured_logging import build_log_context
from formflow.db.enums import QuestionType
from formflow.db.models import FormTemplate
from formflow.schemas.forms import (
    Question,
    QuestionCreate,
    QuestionPatch,
    QuestionReorder,
    TemplatePreview,
)
from formflow.services import template_service
from formflow.services.conditional_logic import visible_questions
from formflow.services.question_schema import (
    is_required,
    sort_questions,
    validate_question_set,
)
from formflow.utils.datetime_utils import Clock, now_utc

logger = logging.getLogger(__name__)

# Minutes per question type; anything else counts as DEFAULT_MINUTES.
COMPLETION_MINUTES: dict[QuestionType, float] = {
    QuestionType.TEXT_INPUT: 0.5,
    QuestionType.SINGLE_SELECT: 0.25,
    QuestionType.YES_NO: 0.25,
    QuestionType.SECTION_HEADER: 0.1,
}
DEFAULT_MINUTES = 0.5
# Loading and submitting the form
BASE_MINUTES = 1


def estimate_completion_minutes(questions: list[Question]) -> int:
    total = sum(COMPLETION_MINUTES.get(q.type, DEFAULT_MINUTES) for q in questions)
    return math.ceil(total + BASE_MINUTES)


def _template_not_found() -> ServiceResult[Any]:
    return ServiceResult.failure(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")


def _question_not_found(question_id: str) -> ServiceResult[Any]:
    return ServiceResult.failure(
        ErrorCode.QUESTION_NOT_FOUND,
        f"Question '{question_id}' not found",
        details={"question_id": question_id},
    )


def _save_questions(
    db: Session,
    template: FormTemplate,
    questions: list[Question],
    user_id: str,
    operation: str,
    clock: Clock,
) -> ServiceResult[FormTemplate]:
    problems = validate_question_set(questions)
    if problems:
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            "Invalid question configuration",
            details={"questions": problems},
        )

    template.questions = [q.model_dump(mode="json") for q in questions]
    template.updated_at = clock()
    template.updated_by = user_id
    db.commit()
    db.refresh(template)

    logger.info(
        "Template questions changed",
        extra=build_log_context(
            tenant_id=template.tenant_id,
            user_id=user_id,
            operation=operation,
            entity_type="form_template",
            entity_id=template.id,
        ),
    )
    return ServiceResult.success(template)


@handles_persistence_errors("add_question")
def add_question(
    db: Session,
    template_id: UUID,
    tenant_id: str,
    data: QuestionCreate | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    try:
        payload = parse_payload(QuestionCreate, data)
    except ValidationError as exc:
        return validation_failure(exc)

    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()

    questions = template_service.template_questions(template)
    question_id = payload.id or f"q_{uuid.uuid4().hex[:12]}"
    if any(q.id == question_id for q in questions):
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Question '{question_id}' already exists",
        )

    order = payload.order
    if order is None:
        order = max((q.order for q in questions), default=-1) + 1

    new_question = Question.model_validate(
        {**payload.model_dump(), "id": question_id, "order": order}
    )
    return _save_questions(
        db, template, questions + [new_question], user_id, "add_question", clock
    )


@handles_persistence_errors("update_question")
def update_question(
    db: Session,
    template_id: UUID,
    question_id: str,
    tenant_id: str,
    patch: QuestionPatch | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    try:
        payload = parse_payload(QuestionPatch, patch)
    except ValidationError as exc:
        return validation_failure(exc)

    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()

    questions = template_service.template_questions(template)
    index = next((i for i, q in enumerate(questions) if q.id == question_id), None)
    if index is None:
        return _question_not_found(question_id)

    try:
        questions[index] = Question.model_validate(
            {**questions[index].model_dump(), **payload.model_dump(exclude_unset=True)}
        )
    except ValidationError as exc:
        return validation_failure(exc)

    return _save_questions(db, template, questions, user_id, "update_question", clock)


@handles_persistence_errors("remove_question")
def remove_question(
    db: Session,
    template_id: UUID,
    question_id: str,
    tenant_id: str,
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """Remove a question. Refused if it is the last one or others depend on it."""
    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()

    questions = template_service.template_questions(template)
    remaining = [q for q in questions if q.id != question_id]
    if len(remaining) == len(questions):
        return _question_not_found(question_id)
    if not remaining:
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            "A template must keep at least one question",
        )

    dependents = [
        q.id for q in remaining
        if any(rule.target_question_id == question_id for rule in q.conditional_logic or [])
    ]
    if dependents:
        return ServiceResult.failure(
            ErrorCode.VALIDATION_ERROR,
            "Other questions' conditional logic references this question",
            details={"dependent_question_ids": dependents},
        )

    return _save_questions(db, template, remaining, user_id, "remove_question", clock)


@handles_persistence_errors("reorder_questions")
def reorder_questions(
    db: Session,
    template_id: UUID,
    tenant_id: str,
    data: QuestionReorder | Mapping[str, Any],
    user_id: str,
    *,
    clock: Clock = now_utc,
) -> ServiceResult[FormTemplate]:
    """Set new ``order`` values; unlisted questions keep theirs."""
    try:
        payload = parse_payload(QuestionReorder, data)
    except ValidationError as exc:
        return validation_failure(exc)

    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()

    questions = template_service.template_questions(template)
    known = {q.id for q in questions}
    for item in payload.orders:
        if item.question_id not in known:
            return _question_not_found(item.question_id)

    new_orders = {item.question_id: item.order for item in payload.orders}
    reordered = sort_questions(
        q.model_copy(update={"order": new_orders.get(q.id, q.order)}) for q in questions
    )
    return _save_questions(db, template, reordered, user_id, "reorder_questions", clock)


def generate_preview(
    db: Session,
    template_id: UUID,
    tenant_id: str,
    sample_responses: Mapping[str, Any] | None = None,
) -> ServiceResult[TemplatePreview]:
    """Render order, visibility against sample answers, and time estimate."""
    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()

    questions = sort_questions(template_service.template_questions(template))
    visible = visible_questions(questions, sample_responses or {})

    return ServiceResult.success(
        TemplatePreview(
            template_id=template.id,
            name=template.name,
            version=template.version,
            questions=questions,
            visible_question_ids=[q.id for q in visible],
            total_questions=len(questions),
            required_questions=sum(1 for q in questions if is_required(q)),
            conditional_questions=sum(1 for q in questions if q.conditional_logic),
            estimated_completion_minutes=estimate_completion_minutes(questions),
        )
    )


def validate_conditional_references(
    db: Session,
    template_id: UUID,
    tenant_id: str,
) -> ServiceResult[dict[str, list[str]]]:
    """Configuration problems of a stored template, keyed by question id."""
    template = template_service.get_template(db, template_id, tenant_id)
    if not template:
        return _template_not_found()
    return ServiceResult.success(
        validate_question_set(template_service.template_questions(template))
    )
