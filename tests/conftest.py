import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANALYSIS_ENABLED", "false")

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import chatbridge.models  # noqa: F401
from chatbridge.database import Base, get_db
from chatbridge.services.dialogue_service import get_orchestrator
from chatbridge.services.fanout import get_operator_hub
from chatbridge.services.inactivity import get_inactivity_timers
from chatbridge.services.transport import get_transport
from tests.fakes import FakeTransport


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hub():
    hub = Mock()
    hub.notify.return_value = True
    return hub


@pytest.fixture
def timers():
    return Mock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def orchestrator():
    return Mock()


@pytest.fixture
def client(session_factory, hub, timers, transport, orchestrator):
    from chatbridge.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_operator_hub] = lambda: hub
    app.dependency_overrides[get_inactivity_timers] = lambda: timers
    app.dependency_overrides[get_transport] = lambda: transport
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()
