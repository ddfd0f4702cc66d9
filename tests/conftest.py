# tests/conftest.py

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payout_service.db.base_class import Base
from payout_service import models  # noqa: F401
from payout_service.api import deps
from payout_service.api.deps import get_db
from payout_service.main import app
from tests.utils.payout import FakeTransferClient, build_orchestrator

# --- In-memory test database, rebuilt for every test ---
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def transfer_client():
    return FakeTransferClient()


@pytest.fixture(scope="function")
def test_client(db_session, transfer_client):
    """
    Provides a TestClient backed by the in-memory database with a fake
    transfer client. Admin authentication is mocked.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_admin_actor] = lambda: "admin_1"
    app.dependency_overrides[deps.get_payout_orchestrator] = lambda: build_orchestrator(
        db_session, transfer_client
    )

    with patch("payout_service.main.engine", engine):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_client(db_session):
    """TestClient with real admin authentication."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with patch("payout_service.main.engine", engine):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()
