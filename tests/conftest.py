"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of jobless.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively; render it as TEXT and let the
# JSON bind/result processors handle (de)serialization.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from jobless.database.models import Base, Badge, Role, Tweet, User, user_roles  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

# Fixed clock used across service tests (a Wednesday)
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Jobless tables.

    Uses StaticPool so the TestClient's worker threads share the same
    in-memory database.  pysqlite's own transaction handling is disabled
    so SAVEPOINTs (award inserts, duplicate engagements) behave as on
    PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    username: str = "alice",
    *,
    roles: tuple[str, ...] = (),
    created_at: datetime = datetime(2026, 1, 1, tzinfo=UTC),
    **fields,
) -> int:
    """Insert a user (and any missing roles) and return its id."""
    with Session(engine) as session:
        user = User(username=username, created_at=created_at, joined_at=created_at, **fields)
        session.add(user)
        session.flush()
        for name in roles:
            role = session.query(Role).filter_by(name=name).one_or_none()
            if role is None:
                role = Role(name=name)
                session.add(role)
                session.flush()
            session.execute(user_roles.insert().values(user_id=user.id, role_id=role.id))
        session.commit()
        return user.id


def make_badge(engine: Engine, name: str, **fields) -> int:
    fields.setdefault("display_name", name.replace("_", " ").title())
    fields.setdefault("type", "activity")
    fields.setdefault("category", "hub")
    with Session(engine) as session:
        badge = Badge(name=name, **fields)
        session.add(badge)
        session.commit()
        return badge.id


def make_tweet(
    engine: Engine,
    author_id: int,
    *,
    posted_at: datetime = datetime(2026, 3, 4, 6, 0, tzinfo=UTC),
) -> int:
    with Session(engine) as session:
        tweet = Tweet(author_id=author_id, text="gm", posted_at=posted_at)
        session.add(tweet)
        session.commit()
        return tweet.id


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def make_token(sub: int | str, *, is_admin: bool = False, username: str = "fixture") -> str:
    """Create a JWT the way the login service does."""
    import jwt

    from jobless.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(sub), "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    return make_token(sub, is_admin=True, username=username)


@pytest.fixture
def admin_token():
    return make_admin_token()


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient wired to the in-memory database and a fixed config."""
    from fastapi.testclient import TestClient

    from jobless.api.deps import get_config, get_engine
    from jobless.api.main import app
    from jobless.config import JoblessConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: JoblessConfig(
        community_name="Test", api_port=8000,
    )
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
