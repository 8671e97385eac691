import random
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from testpilot.core.database import get_database
from testpilot.models.database import Base
from testpilot.template import build_context, build_default_registry

# Test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2024, 3, 5, 14, 7, 9, 123000, tzinfo=timezone.utc)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_database] = override_get_db


@pytest.fixture(scope="session", autouse=True)
def database():
    """Create the test tables once for the whole session"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest_asyncio.fixture
async def client():
    """Async client talking to the app in-process"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def test_client():
    """Synchronous test client for simple tests"""
    return TestClient(app)


@pytest.fixture
def fixed_registry():
    """Function registry with a frozen clock and a seeded random source"""
    return build_default_registry(clock=lambda: FIXED_NOW, rng=random.Random(42))


@pytest.fixture
def context(fixed_registry):
    return build_context(
        responses={
            "login": {
                "status": 200,
                "body": {
                    "token": "abc123",
                    "user": {"id": 42, "name": "Ada", "active": True, "nickname": None},
                    "roles": ["admin", "editor"],
                },
                "headers": {"x-request-id": "req-1"},
            },
            "step1-0": {"data": [{"id": 1}, {"id": 2}, {"id": 3}]},
        },
        processed={"totals": {"count": 3, "items": [10, 20]}},
        parameters={"x": "A", "y": "B", "limit": 25, "tags": ["a", "b"]},
        environment={"BASE_URL": "https://api.example.com", "RETRIES": 3},
        environment_defaults={"REGION": "eu-west-1"},
        functions=fixed_registry,
    )


@pytest.fixture
def fixed_now():
    return FIXED_NOW
