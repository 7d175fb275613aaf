import contextlib
import os

os.environ["ENV"] = "test"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

import app.models  # noqa: F401  (registers tables on Base.metadata)
from app.config import get_settings
from app.db import Base, SessionLocal, engine, get_db
from app.main import create_app

pytest_plugins = [
    "tests.fixtures.user_fixtures",
    "tests.fixtures.message_fixtures",
]


def make_token(user_id, email=None, secret=None) -> str:
    settings = get_settings()
    return jwt.encode(
        {"id": str(user_id), "email": email},
        secret or settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture(scope="function")
def db():
    """Fresh schema per test on the shared in-memory SQLite engine."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db):
    """Lets the live channel write through the test session."""
    return lambda: contextlib.nullcontext(db)


@pytest.fixture
def test_app(db, session_factory):
    application = create_app(session_factory=session_factory)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(test_app):
    with TestClient(test_app) as c:
        yield c


@pytest.fixture
def dispatcher(test_app):
    return test_app.state.dispatcher


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {make_token(user.id, user.email)}"}

    return _headers
