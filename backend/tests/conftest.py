import os

os.environ.setdefault("CODE_HASH_SECRET", "test-secret")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import charmclaim.main as main_module  # noqa: E402
from charmclaim.auth import create_session_token  # noqa: E402
from charmclaim.config import settings  # noqa: E402
from charmclaim.database import Base, get_db  # noqa: E402
from charmclaim.main import app  # noqa: E402
from charmclaim.middleware.rate_limit import rate_limiter  # noqa: E402
from charmclaim.services.abuse_logger import AbuseLogger, get_abuse_logger  # noqa: E402
from charmclaim.services.claim_store import create_unit  # noqa: E402
from charmclaim.services.crypto_utils import CodeHasher  # noqa: E402

SAMPLE_UNITS = {
    "CHARM-XPAL-001": "red-dash",
    "CHARM-XPAL-002": "blue-dash",
    "CHARM-XPAL-003": "pink-dash",
}


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
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


@pytest.fixture
def hasher():
    """Code hasher keyed with the same secret the app uses."""
    return CodeHasher(settings.code_hash_secret)


@pytest.fixture
def units(db_session, hasher):
    """Provision the sample units. Returns {code: PhysicalUnit}."""
    return {
        code: create_unit(db_session, hasher, code, character_id)
        for code, character_id in SAMPLE_UNITS.items()
    }


@pytest.fixture
def abuse_events():
    """Abuse events recorded during the test."""
    return []


@pytest.fixture
def abuse_logger(abuse_events):
    return AbuseLogger(sink=abuse_events.append)


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user id."""

    def build(user_id: str) -> dict:
        token, _ = create_session_token(user_id)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def client(db_session, abuse_logger):
    """Create a test client with the test database, inline abuse logging and no rate limiting."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_abuse_logger] = lambda: abuse_logger

    # Disable rate limiting for tests
    rate_limiter.enabled = False
    rate_limiter.reset()

    # Override the engine used by check_database_tables() so it checks the test database
    original_engine = main_module.engine
    main_module.engine = db_session.get_bind()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    rate_limiter.enabled = True
    rate_limiter.reset()
    main_module.engine = original_engine
