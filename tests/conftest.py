import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_repo
from app.core.config import settings
from app.db.base_class import Base
from app.main import app
from app.repositories.user_repo import InMemoryUserRepository, SqlUserRepository
from app.services.facebook import encode_signed_request

TEST_FACEBOOK_SECRET = "test-facebook-app-secret"


@pytest.fixture
def memory_repo():
    """Empty in-memory user store."""
    return InMemoryUserRepository()


@pytest.fixture
def engine():
    """Create a SQLAlchemy engine on a private in-memory SQLite database."""
    import app.models  # noqa: F401

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
def db_session(engine):
    """Create a SQLAlchemy session for tests."""
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def sql_repo(db_session):
    return SqlUserRepository(db_session)


@pytest.fixture(params=["memory", "sql"])
def repo(request):
    """Run a test against every store backend."""
    if request.param == "memory":
        return InMemoryUserRepository()
    return request.getfixturevalue("sql_repo")


@pytest.fixture
def facebook_secret(monkeypatch):
    monkeypatch.setattr(settings, "FACEBOOK_CLIENT_SECRET", TEST_FACEBOOK_SECRET)
    return TEST_FACEBOOK_SECRET


@pytest.fixture
def make_signed_request():
    """Build a Facebook-style signed request with the test secret."""
    def _make(payload, secret=TEST_FACEBOOK_SECRET):
        return encode_signed_request(payload, secret)
    return _make


@pytest.fixture
def client(memory_repo):
    """Create a FastAPI test client backed by a fresh in-memory store."""
    def override_get_repo():
        yield memory_repo

    app.dependency_overrides[get_repo] = override_get_repo
    with TestClient(app) as test_client:
        yield test_client
    # Clear dependency overrides
    app.dependency_overrides = {}
