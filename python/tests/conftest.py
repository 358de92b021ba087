"""Pytest configuration and fixtures for rendezvous tests.

Test isolation strategy:
- Every test gets its own in-memory SQLite database (schema from Base.metadata)
- Set RENDEZVOUS_TEST_DATABASE_URL to run the same suite against PostgreSQL
- The app under test resolves bearer credentials against the test database
- The rate limiter is reset to the no-op limiter around each test
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Settings are read at import time by rendezvous.celery; configure before importing.
os.environ["DATABASE_URL"] = os.environ.get("RENDEZVOUS_TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ["RENDEZVOUS_ENV"] = "test"
os.environ["RENDEZVOUS_INTERNAL_SECRET"] = "test-internal-secret"
os.environ.pop("REDIS_URL", None)

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from rendezvous.app import add_request_id_middleware, create_app
from rendezvous.auth.verifier import DatabaseCredentialVerifier
from rendezvous.config import clear_settings_cache
from rendezvous.db.engine import create_db_engine
from rendezvous.db.models import Base
from rendezvous.db.session import create_session_factory, get_db
from rendezvous.services.rate_limit import set_rate_limiter
from tests.factories import SeededUser, create_test_user


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Fresh settings and the no-op rate limiter for every test."""
    clear_settings_cache()
    set_rate_limiter(None)
    yield
    set_rate_limiter(None)
    clear_settings_cache()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create an engine with a freshly built schema."""
    engine = create_db_engine(os.environ["DATABASE_URL"])
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a database session for direct service calls and assertions.

    Service functions commit their own transactions; call db_session.expire_all()
    before reading rows the API may have changed.
    """
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app(session_factory: sessionmaker[Session]) -> FastAPI:
    """Provide the full app (auth + request-id middleware) bound to the test database."""
    app = create_app(credential_verifier=DatabaseCredentialVerifier(session_factory))

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a test client. Authenticate per request with auth_headers()."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def alice(db_session: Session) -> SeededUser:
    return create_test_user(db_session, "alice")


@pytest.fixture
def bob(db_session: Session) -> SeededUser:
    return create_test_user(db_session, "bob")


@pytest.fixture
def carol(db_session: Session) -> SeededUser:
    return create_test_user(db_session, "carol")
