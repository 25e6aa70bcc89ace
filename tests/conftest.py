"""Shared pytest fixtures for the PlayConnect test suite.

Provides:
- engine / db: in-memory SQLite database with every table, one per test
- client: TestClient with get_db overridden to use the test session
- make_parent / make_activity: factories for rows the engine only reads
- auth_headers: Bearer header carrying a Supabase-style token
"""

import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"
os.environ["JWT_AUDIENCE"] = "authenticated"
os.environ["ADMIN_PARENT_UUIDS"] = "00000000-0000-4000-8000-00000000a0a0"

import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from playconnect.database import Base, get_db
from playconnect.main import app
from playconnect.core.identity import IdentityStore
from playconnect.models.activity import Activity

ADMIN_UUID = "00000000-0000-4000-8000-00000000a0a0"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(eng, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# --------------------------------------------------
# FACTORIES
# --------------------------------------------------
@pytest.fixture
def make_parent(db):
    counter = {"n": 0}

    def _make(name="Parent", children=("Kid",), email=None, phone=None, parent_uuid=None):
        counter["n"] += 1
        if email is None and phone is None:
            email = f"{name.lower().replace(' ', '.')}{counter['n']}@example.com"

        store = IdentityStore(db)
        parent = store.create_parent(
            display_name=name, email=email, phone=phone, parent_uuid=parent_uuid
        )
        for child_name in children:
            store.create_child(parent, child_name)
        db.commit()
        db.refresh(parent)
        return parent

    return _make


@pytest.fixture
def make_activity(db):
    def _make(host, host_child=None, name="Park playdate", start_date=None, auto_notify=True):
        activity = Activity(
            host_parent_id=host.id,
            host_child_id=(host_child or host.children[0]).id,
            name=name,
            start_date=start_date,
            auto_notify_new_connections=auto_notify,
        )
        db.add(activity)
        db.commit()
        db.refresh(activity)
        return activity

    return _make


# --------------------------------------------------
# AUTH
# --------------------------------------------------
def make_token(sub, email=None, secret="test-secret", audience="authenticated"):
    claims = {"sub": sub, "aud": audience, "exp": int(time.time()) + 3600}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(parent_or_uuid, email=None):
        sub = getattr(parent_or_uuid, "uuid", parent_or_uuid)
        return {"Authorization": f"Bearer {make_token(sub, email)}"}

    return _headers
