"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from sqlalchemy import text

from formflow.core.config import settings
from formflow.db.session import engine
from formflow.routers import form_hierarchy

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Formflow API",
    description="Form hierarchy engine: categories, types, versioned templates and instances",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

app.include_router(form_hierarchy.router)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
