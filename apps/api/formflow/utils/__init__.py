"""Utility modules."""

from formflow.utils.business_days import add_business_days, is_business_day
from formflow.utils.datetime_utils import Clock, ensure_utc, now_utc
from formflow.utils.pagination import (
    PaginationParams,
    get_pagination,
    paginate_select,
)

__all__ = [
    "Clock",
    "PaginationParams",
    "add_business_days",
    "ensure_utc",
    "get_pagination",
    "is_business_day",
    "now_utc",
    "paginate_select",
]
