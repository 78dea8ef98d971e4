"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from api.auth import get_current_user_id
from api.open_banking import get_gateway, get_state_store
from services.authorization_state_store import AuthorizationStateStore
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import bank_connection_fixture, clock_fixture  # noqa: F401
from tests.fixtures.mocks import MockAggregatorGateway

TEST_USER_ID = "user-1"


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="state_store")
def state_store_fixture(clock):
    """An isolated state store driven by the test clock."""
    return AuthorizationStateStore(clock=clock)


@pytest.fixture(name="mock_gateway")
def mock_gateway_fixture():
    return MockAggregatorGateway()


@pytest.fixture(name="client")
def client_fixture(db, state_store, mock_gateway):
    """Create a test client with the test database, a mock aggregator and user-1 logged in."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: mock_gateway
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_current_user_id] = lambda: TEST_USER_ID
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="anonymous_client")
def anonymous_client_fixture(db, state_store, mock_gateway):
    """Test client without the current-user override (real bearer auth)."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: mock_gateway
    app.dependency_overrides[get_state_store] = lambda: state_store
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
