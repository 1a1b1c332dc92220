"""
Shared test fixtures
====================

Every DB-backed test gets a fresh SQLite file and a fresh local storage
root under pytest's tmp_path.
"""

from pathlib import Path

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.tests.helpers import TEST_WORKFLOW_AUTH, auth_headers_for

_TEST_ENV = {
    "NOTEBOOK_CHAT_URL": "http://workflow.local/webhook/notebook-chat",
    "LEGAL_CHAT_WEBHOOK_URL": "http://workflow.local/webhook/legal-chat",
    "NOTEBOOK_GENERATION_URL": "http://workflow.local/webhook/generate",
    "NOTEBOOK_GENERATION_AUTH": TEST_WORKFLOW_AUTH,
    "STORAGE_BACKEND": "local",
    "PUBLIC_API_URL": "http://testserver",
}


@pytest.fixture
def sqlalchemy_db(tmp_path, monkeypatch):
    """Configure a fresh SQLAlchemy SQLite DB and local storage for tests."""
    from insights_backend.config import get_settings
    from insights_backend.db.session import reset_engine, init_db
    from insights_backend.storage import reset_storage

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'insights.db'}")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for key, value in _TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    reset_storage()
    reset_engine()
    init_db()

    yield

    reset_engine()
    reset_storage()
    get_settings.cache_clear()


@pytest.fixture
def db(sqlalchemy_db):
    """Plain session for service-level tests"""
    from insights_backend.db.session import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(sqlalchemy_db):
    from fastapi.testclient import TestClient
    from insights_backend.api import app

    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    return auth_headers_for(client)


@pytest.fixture
def user(db):
    from insights_backend.auth import get_auth_service

    return get_auth_service(db).register_user("jan@example.pl", "tajne-haslo", "Jan Kowalski")
