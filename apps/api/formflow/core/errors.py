"""Error taxonomy and result wrapper for the form hierarchy services.

Service operations never raise for business outcomes. They return a
``ServiceResult`` carrying either ``data`` or a ``ServiceError`` whose
``kind`` tells the caller how to map it to a transport status.
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Mapping, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorKind(str, Enum):
    """Coarse error categories."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTEGRITY_VIOLATION = "integrity_violation"
    VALIDATION = "validation"
    PERMISSION = "permission"
    TRANSIENT = "transient"


class ErrorCode(str, Enum):
    """Stable error codes returned to callers."""

    # Not found (absent or owned by another tenant)
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    TYPE_NOT_FOUND = "TYPE_NOT_FOUND"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"

    # Conflict
    CATEGORY_EXISTS = "CATEGORY_EXISTS"
    TYPE_EXISTS = "TYPE_EXISTS"
    DUPLICATE_INSTANCE = "DUPLICATE_INSTANCE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    INSTANCE_NOT_EDITABLE = "INSTANCE_NOT_EDITABLE"

    # Integrity violation (blocked destructive operation)
    CATEGORY_HAS_ACTIVE_TYPES = "CATEGORY_HAS_ACTIVE_TYPES"
    TYPE_HAS_ACTIVE_TEMPLATES = "TYPE_HAS_ACTIVE_TEMPLATES"
    TEMPLATE_HAS_ACTIVE_INSTANCES = "TEMPLATE_HAS_ACTIVE_INSTANCES"
    INSTANCE_CANNOT_DELETE = "INSTANCE_CANNOT_DELETE"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESPONSE_VALIDATION_FAILED = "RESPONSE_VALIDATION_FAILED"

    # Permission
    TRANSITION_NOT_PERMITTED = "TRANSITION_NOT_PERMITTED"

    # Transient (safe for the caller to retry)
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    TEMPLATE_VERSION_CONFLICT = "TEMPLATE_VERSION_CONFLICT"


ERROR_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.CATEGORY_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.TYPE_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.TEMPLATE_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.INSTANCE_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.QUESTION_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.CATEGORY_EXISTS: ErrorKind.CONFLICT,
    ErrorCode.TYPE_EXISTS: ErrorKind.CONFLICT,
    ErrorCode.DUPLICATE_INSTANCE: ErrorKind.CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: ErrorKind.CONFLICT,
    ErrorCode.INSTANCE_NOT_EDITABLE: ErrorKind.CONFLICT,
    ErrorCode.CATEGORY_HAS_ACTIVE_TYPES: ErrorKind.INTEGRITY_VIOLATION,
    ErrorCode.TYPE_HAS_ACTIVE_TEMPLATES: ErrorKind.INTEGRITY_VIOLATION,
    ErrorCode.TEMPLATE_HAS_ACTIVE_INSTANCES: ErrorKind.INTEGRITY_VIOLATION,
    ErrorCode.INSTANCE_CANNOT_DELETE: ErrorKind.INTEGRITY_VIOLATION,
    ErrorCode.VALIDATION_ERROR: ErrorKind.VALIDATION,
    ErrorCode.RESPONSE_VALIDATION_FAILED: ErrorKind.VALIDATION,
    ErrorCode.TRANSITION_NOT_PERMITTED: ErrorKind.PERMISSION,
    ErrorCode.PERSISTENCE_ERROR: ErrorKind.TRANSIENT,
    ErrorCode.TEMPLATE_VERSION_CONFLICT: ErrorKind.TRANSIENT,
}

_missing = set(ErrorCode) - set(ERROR_KINDS)
if _missing:
    raise RuntimeError(f"Error codes without a kind: {sorted(c.value for c in _missing)}")


@dataclass(frozen=True)
class ServiceError:
    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None

    @property
    def kind(self) -> ErrorKind:
        return ERROR_KINDS[self.code]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code.value,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Tagged result of a service operation."""

    data: T | None = None
    error: ServiceError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T | None = None) -> "ServiceResult[T]":
        return cls(data=data)

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> "ServiceResult[T]":
        return cls(error=ServiceError(code=code, message=message, details=details))


def parse_payload(schema: type[ModelT], payload: ModelT | Mapping[str, Any]) -> ModelT:
    """Return payload as a validated schema instance (raises pydantic ValidationError)."""
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    return schema.model_validate(payload)


def validation_failure(exc: ValidationError) -> ServiceResult[Any]:
    """Convert a pydantic ValidationError into a VALIDATION_ERROR result."""
    errors = json.loads(exc.json(include_url=False))
    return ServiceResult.failure(
        ErrorCode.VALIDATION_ERROR,
        "Invalid input",
        details={"errors": errors},
    )


def handles_persistence_errors(operation: str) -> Callable:
    """
    Wrap a write-path service function whose first argument is the Session.

    SQLAlchemy errors roll the session back, are logged with the stack and
    come back as a PERSISTENCE_ERROR result.
    """

    def decorator(func: Callable[..., ServiceResult[Any]]) -> Callable[..., ServiceResult[Any]]:
        @functools.wraps(func)
        def wrapper(db: Session, *args: Any, **kwargs: Any) -> ServiceResult[Any]:
            try:
                return func(db, *args, **kwargs)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception(
                    "Persistence failure during %s", operation, extra={"operation": operation}
                )
                return ServiceResult.failure(
                    ErrorCode.PERSISTENCE_ERROR,
                    f"Failed to {operation.replace('_', ' ')}",
                    details={"error": exc.__class__.__name__},
                )

        return wrapper

    return decorator
