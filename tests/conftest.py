"""Pytest configuration and fixtures."""

import json
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eventstore.database.schema import Base
from eventstore.messaging.models import Message
from eventstore.templates.store import TemplateStore

CATALOG = {
    "billing": {
        "invoice": {
            "overdue": {
                "level": "WARN",
                "title": "Invoice {{ parameters.invoice_id }} is overdue",
                "message": "Pay {{ parameters.amount }} by {{ parameters.due_date }}",
            },
        },
    },
    "account": {
        "greeting": {
            "level": "INFO",
            "title": "Hello {{parameters.name}}",
            "message": "Welcome back, {{ parameters.user.name }}",
        },
        "locked": {
            "level": "CRITICAL",
            "title": "Account locked",
            "message": "Too many attempts",
        },
    },
}


@pytest.fixture
def engine():
    """In-memory database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def session(session_factory):
    """Create a temporary in-memory database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store():
    return TemplateStore.from_catalog(CATALOG)


@pytest.fixture
def event_date():
    return datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_message():
    """Build a bus envelope; dict entities are JSON-encoded."""

    def _make(entity, source="event", type="create") -> Message:
        if isinstance(entity, dict):
            entity = json.dumps(entity).encode("utf-8")
        return Message(source=source, type=type, entity=entity)

    return _make
