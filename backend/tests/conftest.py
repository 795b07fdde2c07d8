"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from api.dependencies import get_health_connection_service, get_webhook_service
from services.health_connection_service import HealthConnectionService
from services.webhook_service import FastenWebhookService, WebhookAuthConfig
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    admin_actor,
    connection,
    patient,
    patient_actor,
    provider_actor,
    provider_assignment,
)
from tests.fixtures.mocks import TEST_WEBHOOK_SECRET, MockFastenClient


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


@pytest.fixture(name="mock_fasten_client")
def mock_fasten_client_fixture():
    """Create a configured mock Fasten client."""
    return MockFastenClient()


@pytest.fixture(name="client")
def client_fixture(db, mock_fasten_client):
    """Create a test client with the test database and a mock Fasten client."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_health_connection_service():
        return HealthConnectionService(client=mock_fasten_client)

    def override_get_webhook_service():
        return FastenWebhookService(
            client=mock_fasten_client,
            auth_config=WebhookAuthConfig(secret=TEST_WEBHOOK_SECRET),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_health_connection_service] = override_get_health_connection_service
    app.dependency_overrides[get_webhook_service] = override_get_webhook_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
