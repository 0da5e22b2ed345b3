"""API routers."""

from formflow.routers.form_hierarchy import router as form_hierarchy_router

__all__ = ["form_hierarchy_router"]
