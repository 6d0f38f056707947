"""
Central pytest configuration for the commission engine tests.

Provides the in-memory SQLite database, a Flask test client and the
markers used to split unit from integration tests.
"""

import os
import uuid

# Test database configuration (set early so import-time settings use it)
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["TESTING"] = "true"
os.environ.setdefault("LOG_TO_FILE", "0")

import pytest  # noqa: E402

from commission_engine.db.session import Base, SessionLocal, create_tables, get_engine  # noqa: E402


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# =====================================================
# DATABASE FIXTURES
# =====================================================


@pytest.fixture
def db_engine():
    """Fresh schema for every test on the shared in-memory engine."""
    engine = get_engine()
    create_tables()
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =====================================================
# FLASK APPLICATION FIXTURES
# =====================================================


@pytest.fixture
def app(db_engine):
    from commission_engine.main import create_app

    app = create_app()
    app.config.update({"TESTING": True, "PROPAGATE_EXCEPTIONS": True})
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


# =====================================================
# IDENTIFIERS
# =====================================================


@pytest.fixture
def tenant_id():
    return str(uuid.uuid4())


@pytest.fixture
def professional_id():
    return str(uuid.uuid4())


@pytest.fixture
def user_id():
    return str(uuid.uuid4())
