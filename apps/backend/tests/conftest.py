from __future__ import annotations

import os
import tempfile
from datetime import datetime
from typing import Generator, Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.database import Base, get_db
from app.core.deps import get_now
from app.main import app
from app import models
from app.services import EmailService, get_email_service

# Friday
FIXED_NOW = datetime(2024, 3, 15, 10, 30)


class RecordingSender:
    """EmailSender that keeps messages instead of talking to SMTP."""

    def __init__(self) -> None:
        self.messages = []
        self.fail_for: set[str] = set()

    def send(self, message) -> None:
        if message["To"] in self.fail_for:
            raise OSError("connection refused")
        self.messages.append(message)


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # temp file sqlite so the developer database is never touched
    fd, path = tempfile.mkstemp(prefix="spendwise_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    # demo user first so it is the default user without an X-User-Id header
    session.add(models.User(email="demo@example.com", external_id="demo", display_name="Demo"))
    session.add(models.User(email="other@example.com", external_id="other"))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())


@pytest.fixture()
def demo_user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(external_id="demo").one()


@pytest.fixture()
def other_user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(external_id="other").one()


@pytest.fixture()
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture(autouse=True)
def override_dependency(db_session, sender):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_now] = lambda: FIXED_NOW
    app.dependency_overrides[get_email_service] = lambda: EmailService(sender=sender)
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_category(db_session, demo_user):
    """Insert a category with a controlled creation time (the recurrence anchor)."""

    def _make(name="Milk", *, user=None, created_at=datetime(2024, 1, 1, 9, 0), **fields):
        fields.setdefault("color", "#06B6D4")
        fields.setdefault("frequency", models.Frequency.DAILY)
        fields.setdefault("specific_days", [])
        cat = models.Category(
            user_id=(user or demo_user).id,
            name=name,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        db_session.add(cat)
        db_session.commit()
        db_session.refresh(cat)
        return cat

    return _make


@pytest.fixture()
def make_expense(db_session, demo_user):
    def _make(amount, when: datetime, *, category=None, user=None, **fields):
        item = models.Expense(
            user_id=(user or demo_user).id,
            category_id=category.id if category is not None else None,
            amount=amount,
            date=when,
            **fields,
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make
