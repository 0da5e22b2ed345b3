"""Page/per-page handling for list endpoints backed by 2.0-style selects."""

import math
from dataclasses import dataclass

from fastapi import Query
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from formflow.core.config import settings

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class PaginationParams:
    page: int = 1
    per_page: int = settings.DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def page_count(self, total: int) -> int:
        return math.ceil(total / self.per_page) if self.per_page > 0 else 0


def get_pagination(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    per_page: int = Query(
        settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PER_PAGE,
        description=f"Items per page (max {MAX_PER_PAGE})",
    ),
) -> PaginationParams:
    """Pagination dependency for list routes."""
    return PaginationParams(page=page, per_page=per_page)


def paginate_select(db: Session, stmt: Select, pagination: PaginationParams) -> tuple[list, int]:
    """Run one page of ``stmt``. Returns (items, total matching rows)."""
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.execute(stmt.offset(pagination.offset).limit(pagination.per_page)).scalars()
    return list(rows), total
