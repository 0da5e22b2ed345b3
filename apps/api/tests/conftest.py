"""
Test configuration and fixtures.

Provides:
- In-memory SQLite engine per test (SAVEPOINT-capable)
- Frozen clock injected into services
- Factories for categories, types, templates and instances
- HTTPX AsyncClient with identity headers
"""
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Must be set before formflow.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from formflow.core.deps import get_db
from formflow.db import models  # noqa: F401
from formflow.db.base import Base
from formflow.main import app
from formflow.services import category_service, form_type_service, template_service


TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"
USER_ID = "user-1"

# Monday
MONDAY = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(MONDAY)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """
    Fresh in-memory database for each test.

    pysqlite's own transaction handling breaks SAVEPOINT; the listeners
    hand BEGIN back to SQLAlchemy so begin_nested() works.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine: Engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


# =============================================================================
# Payload helpers
# =============================================================================


def text_question(question_id: str, order: int, **overrides) -> dict:
    return {"id": question_id, "type": "text_input", "text": question_id, "order": order, **overrides}


def default_questions() -> list[dict]:
    return [
        {
            "id": "has_symptoms",
            "type": "yes_no",
            "text": "Any symptoms?",
            "required": True,
            "order": 0,
        },
        text_question(
            "symptom_details",
            1,
            required=True,
            conditional_logic=[
                {"target_question_id": "has_symptoms", "operator": "equals", "value": True}
            ],
        ),
        text_question("notes", 2),
    ]


def default_workflow() -> dict:
    return {
        "name": "Standard review",
        "states": [
            {"id": "s1", "name": "Draft", "type": "initial"},
            {"id": "s2", "name": "Done", "type": "final"},
        ],
        "transitions": [
            {"id": "t1", "from_state_id": "s1", "to_state_id": "s2", "action": "submit"}
        ],
    }


# =============================================================================
# Hierarchy factories
# =============================================================================


@pytest.fixture
def make_category(db: Session, clock: FrozenClock):
    def _make(name: str = "Cases", tenant_id: str = TENANT_ID):
        result = category_service.create_category(
            db, tenant_id, {"name": name}, USER_ID, clock=clock
        )
        assert result.ok, result.error
        return result.data

    return _make


@pytest.fixture
def make_type(db: Session, clock: FrozenClock, make_category):
    def _make(name: str = "Appeals", category=None, tenant_id: str = TENANT_ID, **fields):
        category = category or make_category(tenant_id=tenant_id)
        result = form_type_service.create_type(
            db,
            tenant_id,
            {"category_id": category.id, "name": name, **fields},
            USER_ID,
            clock=clock,
        )
        assert result.ok, result.error
        return result.data

    return _make


@pytest.fixture
def make_template(db: Session, clock: FrozenClock, make_type):
    def _make(name: str = "Intake", form_type=None, tenant_id: str = TENANT_ID, **fields):
        form_type = form_type or make_type(tenant_id=tenant_id)
        payload = {
            "type_id": form_type.id,
            "name": name,
            "questions": default_questions(),
            "workflow": default_workflow(),
            **fields,
        }
        result = template_service.create_template(db, tenant_id, payload, USER_ID, clock=clock)
        assert result.ok, result.error
        return result.data

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================


def identity_headers(
    tenant_id: str = TENANT_ID,
    user_id: str = USER_ID,
    role: str | None = "administrator",
) -> dict[str, str]:
    headers = {"X-Tenant-ID": tenant_id, "X-User-ID": user_id}
    if role:
        headers["X-User-Role"] = role
    return headers


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with administrator identity headers."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=identity_headers(),
    ) as c:
        yield c

    app.dependency_overrides.clear()
