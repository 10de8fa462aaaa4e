"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (leave, reimbursements, accrual, audit, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.

All sessions share one in-memory connection (StaticPool), and the workflow
engine commits or rolls back that connection as part of every operation, so
the factories below commit what they insert.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrflow.common.constants import UserRole
from hrflow.config import settings
from hrflow.database import Base, get_db
from hrflow.main import create_app
from hrflow.notifications.service import InboxNotifier
from hrflow.workflow.engine import Actor, build_workflow_engine
from hrflow.workflow.events import EventBus, TransitionEvent

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → EmployeeBalance, Notification, etc.)
import hrflow.core_hr.models  # noqa: F401
import hrflow.common.audit  # noqa: F401
import hrflow.leave.models  # noqa: F401
import hrflow.reimbursements.models  # noqa: F401
import hrflow.holidays.models  # noqa: F401
import hrflow.accrual.models  # noqa: F401
import hrflow.notifications.models  # noqa: F401

from hrflow.core_hr.models import Department, Employee

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hrflow.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Notification capture ────────────────────────────────────────────


class RecordingDispatcher:
    """Keeps every event it receives; optionally fails after recording."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[TransitionEvent] = []
        self.fail = fail

    async def dispatch(self, event: TransitionEvent) -> None:
        self.events.append(event)
        if self.fail:
            raise ConnectionError("notification channel unavailable")


@pytest.fixture
def recorder() -> RecordingDispatcher:
    return RecordingDispatcher()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(recorder):
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app(
        event_bus=EventBus([recorder, InboxNotifier(TestSessionFactory)]),
    )
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture
def workflow(db, recorder):
    """WorkflowEngine on the test session, notifying the recorder."""
    return build_workflow_engine(db, recorder)


# ── Model factories ─────────────────────────────────────────────────

def _make_department(*, name: str = "Engineering", code: str = "ENG") -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        code=code,
        created_at=datetime.now(timezone.utc),
    )


def _make_employee(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.employee,
    department_id: Optional[uuid.UUID] = None,
    date_of_joining: date = date(2024, 1, 15),
    is_active: bool = True,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"HF-{code}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{code.lower()}@example.com",
        role=role,
        department_id=department_id,
        date_of_joining=date_of_joining,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )


async def seed_department(db: AsyncSession, *, name: str = "Engineering", code: str = "ENG") -> Department:
    dept = Department(**_make_department(name=name, code=code))
    db.add(dept)
    await db.commit()
    return dept


async def seed_employee(
    db: AsyncSession,
    *,
    role: UserRole = UserRole.employee,
    department: Optional[Department] = None,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    date_of_joining: date = date(2024, 1, 15),
    is_active: bool = True,
) -> Employee:
    emp = Employee(**_make_employee(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        department_id=department.id if department else None,
        date_of_joining=date_of_joining,
        is_active=is_active,
    ))
    db.add(emp)
    await db.commit()
    return emp


def actor_for(employee: Employee, department: Optional[Department] = None) -> Actor:
    """Actor built from plain values so it survives session rollbacks."""
    return Actor(
        id=employee.id,
        role=employee.role,
        department_id=department.id if department else None,
        department_name=department.name if department else None,
    )


@pytest.fixture
async def department(db) -> Department:
    return await seed_department(db)


@pytest.fixture
async def staff(db, department) -> dict[str, Actor]:
    """One actor per role; employee and manager share ``department``."""
    employee = await seed_employee(db, department=department, first_name="Asha")
    manager = await seed_employee(db, role=UserRole.manager, department=department, first_name="Mira")
    admin = await seed_employee(db, role=UserRole.admin, first_name="Hari")
    finance = await seed_employee(db, role=UserRole.finance, first_name="Farah")
    return {
        "employee": actor_for(employee, department),
        "manager": actor_for(manager, department),
        "admin": actor_for(admin),
        "finance": actor_for(finance),
    }


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(employee_id: uuid.UUID, expired: bool = False) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor.id)}"}
