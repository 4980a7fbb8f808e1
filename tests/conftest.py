import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["AUTH_DISABLED"] = "true"

from datetime import date, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from lesson_scheduling.db import Base, get_db  # noqa: E402
import lesson_scheduling.models  # noqa: E402,F401
from lesson_scheduling.core.rbac import Actor, Role  # noqa: E402
from lesson_scheduling.models import Aircraft, CFI, Student  # noqa: E402

LESSON_DAY = date(2030, 3, 4)
NINE = time(9, 0)
TEN = time(10, 0)

ADMIN = Actor(user_id="admin-1", role=Role.ADMINISTRATOR)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db(engine) -> Session:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_student(db):
    def _make(first_name="Amelia", last_name="Earhart", user_id=None, is_active=True):
        student = Student(first_name=first_name, last_name=last_name, user_id=user_id, is_active=is_active)
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    return _make


@pytest.fixture()
def make_cfi(db):
    def _make(name="Chuck Yeager", user_id=None, is_active=True):
        cfi = CFI(name=name, user_id=user_id, is_active=is_active)
        db.add(cfi)
        db.commit()
        db.refresh(cfi)
        return cfi

    return _make


@pytest.fixture()
def make_aircraft(db):
    def _make(tail_number="N172SP", model="C172", is_active=True):
        aircraft = Aircraft(tail_number=tail_number, model=model, is_active=is_active)
        db.add(aircraft)
        db.commit()
        db.refresh(aircraft)
        return aircraft

    return _make


@pytest.fixture()
def roster(make_student, make_cfi, make_aircraft):
    """One student, CFI and aircraft, each linked to a login."""
    return {
        "student": make_student(user_id="student-1"),
        "cfi": make_cfi(user_id="cfi-1"),
        "aircraft": make_aircraft(),
    }


@pytest.fixture()
def student_actor():
    return Actor(user_id="student-1", role=Role.STUDENT)


@pytest.fixture()
def cfi_actor():
    return Actor(user_id="cfi-1", role=Role.INSTRUCTOR)


@pytest.fixture()
def admin_actor():
    return ADMIN


@pytest.fixture()
def client(db):
    from lesson_scheduling.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def headers_for():
    def _headers(actor: Actor) -> dict:
        return {"X-User-Id": actor.user_id, "X-User-Role": actor.role.value}

    return _headers
