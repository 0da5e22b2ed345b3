"""FastAPI dependencies for identity and database access."""

from dataclasses import dataclass
from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from formflow.db.enums import Role
from formflow.db.session import SessionLocal
from formflow.services.prepopulation_service import PrePopulationLookup


@dataclass(frozen=True)
class IdentityContext:
    """Acting tenant/user resolved by the upstream auth layer."""

    tenant_id: str
    user_id: str
    role: Role | None = None


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_identity(
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", min_length=1, max_length=100),
    x_user_id: str = Header(..., alias="X-User-ID", min_length=1, max_length=100),
    x_user_role: str | None = Header(None, alias="X-User-Role"),
) -> IdentityContext:
    """
    Build the identity context from headers set by the auth gateway.

    Raises:
        HTTPException 403: Unknown role
    """
    role = None
    if x_user_role:
        if not Role.has_value(x_user_role):
            raise HTTPException(status_code=403, detail=f"Unknown role: {x_user_role}")
        role = Role(x_user_role)
    return IdentityContext(tenant_id=x_tenant_id, user_id=x_user_id, role=role)


def get_prepopulation_lookup() -> PrePopulationLookup | None:
    """
    Member/provider lookup used to pre-populate new instances.

    None disables pre-population; deployments override this dependency.
    """
    return None
