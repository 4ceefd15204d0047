"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import reportflow.models  # noqa: F401  (registers tables on Base.metadata)
from fakes import TEST_TOKEN
from reportflow.auth import access_limiter, generate_limiter, hash_token
from reportflow.database import Base, get_db
from reportflow.models.user import User
from reportflow.services.cancellation import CancellationRegistry, get_cancellations


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate-limit windows are module state; start each test clean."""
    generate_limiter.reset()
    access_limiter.reset()
    yield
    generate_limiter.reset()
    access_limiter.reset()


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a fresh in-memory database."""
    # One shared connection so every session sees the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def user(test_db):
    """Active user with three credits, authenticated by TEST_TOKEN."""
    user = User(
        email="analyst@example.com",
        name="Analyst",
        api_token_hash=hash_token(TEST_TOKEN),
        credits=3,
        is_active=True,
    )
    test_db.add(user)
    test_db.commit()
    test_db.refresh(user)
    return user


@pytest.fixture
def registry():
    return CancellationRegistry()


@pytest.fixture
def client(session_factory, registry):
    """API client wired to the test database and registry."""
    from reportflow.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cancellations] = lambda: registry

    # Not used as a context manager: startup hooks (migrations, worker) stay off
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    """Bearer header for the ``user`` fixture."""
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
