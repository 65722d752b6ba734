"""
Pytest configuration and fixtures for forum tests.
"""
import os
import sys
from typing import Generator

os.environ.setdefault("JWT_SECRET", "forum-test-secret")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.database import Base, get_db, install_sqlite_functions
from app.core.security import create_access_token
from app.services.forum_persistence import InMemoryPostPersistence
from main import app

# Use in-memory SQLite shared across threads for tests
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)
install_sqlite_functions(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> TestClient:
    """Create a test client with overridden database dependency."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def persistence() -> InMemoryPostPersistence:
    """In-memory persistence for engine-level tests."""
    return InMemoryPostPersistence()


def _headers(user_id: str, role: str = "user") -> dict:
    token = create_access_token(data={"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice_headers():
    """Post author in most scenarios."""
    return _headers("user-a")


@pytest.fixture
def bob_headers():
    return _headers("user-b")


@pytest.fixture
def carol_headers():
    return _headers("user-c")


@pytest.fixture
def admin_headers():
    return _headers("admin-1", role="admin")


@pytest.fixture
def test_post_data():
    """Sample post data for testing."""
    return {
        "title": "Hem finishing",
        "content": "What is the cleanest way to finish a hem on lightweight linen?",
        "category": "techniques",
        "tags": ["hem", "linen", "hem"],
    }
