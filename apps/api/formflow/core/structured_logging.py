"""Structured logging helpers (PHI-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    tenant_id: str | None = None,
    user_id: str | None = None,
    operation: str | None = None,
    entity_type: str | None = None,
    entity_id: UUID | str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    """
    Return a PHI-safe log context dict.

    Member/provider identifiers and response values are never accepted here.
    """
    context: dict[str, Any] = {}
    if tenant_id:
        context["tenant_id"] = tenant_id
    if user_id:
        context["user_id"] = user_id
    if operation:
        context["operation"] = operation
    if entity_type:
        context["entity_type"] = entity_type
    if entity_id:
        context["entity_id"] = str(entity_id)
    if status:
        context["status"] = status
    return context
