# archilex/conftest.py
import pytest
from datetime import datetime
from unittest.mock import patch

from fastapi.testclient import TestClient

from archilex.core.config import settings
from archilex.core.database import create_all_tables, dispose_engine, init_engine
from archilex.tests.mocks import NOW, RecordingTransport


@pytest.fixture(scope="function", autouse=True)
def db():
    """
    Fresh in-memory SQLite database per test.

    The engine uses a static pool so every session sees the same
    connection (and therefore the same in-memory database).
    """
    dispose_engine()
    engine = init_engine("sqlite://")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture
def outbox():
    """Capture every e-mail the notifier would send."""
    transport = RecordingTransport()
    with patch("archilex.features.notifications.service.get_transport", return_value=transport):
        yield transport


@pytest.fixture
def make_account():
    """Factory: create an account, optionally on a plan with usage already recorded."""
    from sqlalchemy import update
    from archilex.core.database import get_db_session, accounts
    from archilex.features.accounts.service import create_account, get_account

    counter = {"n": 0}

    def _make(plan: str = "free", usage_count: int = 0, period_anchor: datetime = NOW, email: str = None):
        counter["n"] += 1
        account = create_account(
            email or f"user{counter['n']}@example.gr",
            f"Test User {counter['n']}",
            now=period_anchor,
        )
        with get_db_session() as session:
            session.execute(
                update(accounts)
                .where(accounts.c.account_id == account.account_id)
                .values(plan=plan, usage_count=usage_count, period_anchor=period_anchor)
            )
        return get_account(account.account_id)

    return _make


@pytest.fixture
def client():
    from archilex.main import app
    return TestClient(app)


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_KEY", "test-admin-key-123")
    return "test-admin-key-123"
