"""
Pytest configuration and shared fixtures for the carpool scheduler tests.
"""
import os
import sys
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock, AsyncMock

import pytest

# Tests run against in-memory SQLite, never the configured database or broker.
os.environ.setdefault("USE_DATABASE", "false")
os.environ.setdefault("CELERY_ENABLED", "false")
os.environ.setdefault("WEBSOCKET_ENABLED", "false")

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import crud, models
from services.notification_service import NotificationService


FIXED_NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)  # Monday


def make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    return engine


# ============================================================
# FIXTURES FOR DATABASE
# ============================================================

@pytest.fixture
def db_engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Session on a fresh in-memory database."""
    Session = sessionmaker(bind=db_engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    """Frozen 'now' used by the services."""
    return lambda: FIXED_NOW


# ============================================================
# FIXTURES FOR SEED DATA
# ============================================================

@pytest.fixture
def seed(db_session):
    """
    Two families sharing a Paris group.

    - Martin family (owner, ADMIN alice, MEMBER bob): Minivan (5 seats),
      children Emma, Lucas, Lea, Hugo
    - Dubois family (member, ADMIN carol): Sedan (4 seats), child Noah
    - Outsider family (dave): no access to the group
    """
    db = db_session
    alice = crud.create_user(db, "alice@example.com", "Alice Martin", timezone="Europe/Paris")
    bob = crud.create_user(db, "bob@example.com", "Bob Martin", timezone="Europe/Paris")
    carol = crud.create_user(db, "carol@example.com", "Carol Dubois", timezone="Europe/Paris")
    dave = crud.create_user(db, "dave@example.com", "Dave Outsider", timezone="UTC")

    martin = crud.create_family(db, "Martin", admin_user_id=alice.id)
    crud.add_family_member(db, martin.id, bob.id, role=crud.MEMBER)
    dubois = crud.create_family(db, "Dubois", admin_user_id=carol.id)
    outsider = crud.create_family(db, "Outsider", admin_user_id=dave.id)

    group = crud.create_group(db, "Ecole Voltaire", martin.id, timezone="Europe/Paris")
    crud.add_group_family_member(db, group.id, dubois.id)

    minivan = crud.create_vehicle(db, martin.id, "Minivan", capacity=5)
    sedan = crud.create_vehicle(db, dubois.id, "Sedan", capacity=4)
    coupe = crud.create_vehicle(db, martin.id, "Coupe", capacity=2)

    children = [
        crud.create_child(db, martin.id, name, age=8)
        for name in ("Emma", "Lucas", "Lea", "Hugo")
    ]
    noah = crud.create_child(db, dubois.id, "Noah", age=9)
    db.commit()

    return SimpleNamespace(
        alice=alice,
        bob=bob,
        carol=carol,
        dave=dave,
        martin=martin,
        dubois=dubois,
        outsider=outsider,
        group=group,
        minivan=minivan,
        sedan=sedan,
        coupe=coupe,
        children=children,
        noah=noah,
    )


# ============================================================
# FIXTURES FOR NOTIFICATIONS
# ============================================================

@pytest.fixture
def dispatcher():
    """Dispatcher double recording every payload handed off."""
    mock = Mock()
    mock.dispatch = Mock(return_value="thread")
    return mock


@pytest.fixture
def notifications(db_session, dispatcher):
    return NotificationService(db_session, dispatcher=dispatcher)


# ============================================================
# FIXTURES FOR ASYNC TESTING (CELERY + WEBSOCKET)
# ============================================================

@pytest.fixture
def celery_worker():
    """Configure Celery app for eager execution in tests."""
    try:
        from celery_app import celery_app
    except ImportError:
        pytest.skip("Celery not available")

    original_always_eager = celery_app.conf.task_always_eager
    original_propagates = celery_app.conf.task_eager_propagates

    # Eager results are not stored, so no broker or backend is needed
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True

    yield celery_app

    celery_app.conf.task_always_eager = original_always_eager
    celery_app.conf.task_eager_propagates = original_propagates


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket for testing."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    ws.send_text = AsyncMock()
    ws.send_json = AsyncMock()
    ws.receive_text = AsyncMock()
    return ws


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line("markers", "api: tests going through the FastAPI app")
