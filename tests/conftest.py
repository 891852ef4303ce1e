"""Test configuration and fixtures."""

import json
import os
from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.settings import Settings
from db.models import Base, PaymentPlatform, PlatformIntegration
from main import app
from payments.registry import registry

KIWIFY_SETTINGS = {
    "api_key": "kw_live_key",
    "secret_key": "store-123",
    "webhook_secret": "whsec_kiwify",
    "sandbox": True,
}


def json_response(status_code: int = 200, body=None) -> requests.Response:
    """A real ``requests.Response`` carrying ``body`` as JSON."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response.encoding = "utf-8"
    response.headers["Content-Type"] = "application/json"
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    return response


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    # Store original env vars
    original_env = dict(os.environ)

    # Set test environment variables
    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",  # Use in-memory for faster tests
            "APP_NAME": "Test Payment Hub",
            "ENVIRONMENT": "development",  # Use development environment for tests
            "DEBUG": "true",
            "DISABLE_TRACING": "true",
            "PAYMENT_RETRY_MIN_WAIT": "0",
            "PAYMENT_RETRY_MAX_WAIT": "0",
        }
    )

    yield

    # Restore original env vars
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings(tmp_path):
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        APP_NAME="Test Payment Hub",
        DEBUG=True,
        ENVIRONMENT="development",
        PAYMENT_RETRY_MIN_WAIT=0,
        PAYMENT_RETRY_MAX_WAIT=0,
        REPORTS_DIR=str(tmp_path / "reports"),
    )


@pytest.fixture
def test_db_engine(mock_settings):
    """Create a test database engine and setup tables."""
    # Use StaticPool and check_same_thread=False for SQLite testing
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session using the shared engine."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def http_session():
    """Stand-in for the adapters' ``requests.Session``; set ``request`` results per test."""
    session = MagicMock(spec=requests.Session)
    session.request.return_value = json_response(200, {})
    return session


@pytest.fixture(autouse=True)
def platform_registry(http_session):
    """Route every registry-built adapter through ``http_session`` with no retry waits."""
    original_factory = registry.session_factory
    original_options = dict(registry.options)
    registry.session_factory = lambda: http_session
    registry.configure(
        timeout=5, max_retries=3, retry_min_wait=0, retry_max_wait=0, status_cache_ttl=300
    )
    yield registry
    registry.session_factory = original_factory
    registry.configure(**original_options)


@pytest.fixture
def kiwify_integration(test_db_session):
    integration = PlatformIntegration(
        platform_id="kiwify-main",
        user_id="user-1",
        name="Kiwify store",
        platform_type=PaymentPlatform.kiwify,
        settings=dict(KIWIFY_SETTINGS),
        is_active=True,
    )
    test_db_session.add(integration)
    test_db_session.commit()
    return integration


@pytest.fixture
def client(mock_settings, test_db_engine, monkeypatch):
    """Test client with proper database setup."""
    from db.session import get_db, reset_engines

    # Reset engines to ensure clean state
    reset_engines()
    monkeypatch.setenv("REPORTS_DIR", mock_settings.REPORTS_DIR)

    # Create a session factory bound to the test engine
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    def override_get_db(request: Request):
        db = TestingSessionLocal()
        request.state.db = db
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Override dependencies
    app.dependency_overrides[get_db] = override_get_db

    with patch("core.dependencies._settings", mock_settings):
        with TestClient(app) as test_client:
            # Startup reapplies settings to the registry; keep tests offline and fast
            registry.configure(
                timeout=5,
                max_retries=3,
                retry_min_wait=0,
                retry_max_wait=0,
                status_cache_ttl=300,
            )
            yield test_client

    # Clean up
    app.dependency_overrides.clear()
    reset_engines()


# Pytest markers for different test types
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (SQLite)")
    config.addinivalue_line("markers", "slow: marks tests as slow running")
