import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ["SUPABASE_DISABLED"] = "1"
os.environ["USE_LOCAL_DB"] = "0"
os.environ.pop("LOYALTY_INITIAL_AUTH_TOKEN", None)

APP_ID = "test-app"


@pytest.fixture()
def settings():
    from src.infrastructure.config import LoyaltySettings

    return LoyaltySettings(app_id=APP_ID)


@pytest.fixture()
def store():
    from src.infrastructure.database.document_store import DocumentStore

    return DocumentStore(None)


@pytest.fixture()
def deferred_store():
    from src.infrastructure.database.document_store import DocumentStore

    return DocumentStore(None, deferred=True)


@pytest.fixture()
def make_session(store, settings):
    """Build sessions sharing ``store``, like several clients on one backend."""
    from src.application.use_cases.session import LoyaltySession
    from src.infrastructure.database.repositories.profile_repository import ProfileRepository
    from src.infrastructure.database.repositories.summary_repository import SummaryRepository
    from src.infrastructure.database.supabase_client import SupabaseIdentityProvider

    opened = []

    def factory(target_store=None):
        s = target_store or store
        session = LoyaltySession(
            provider=SupabaseIdentityProvider(),
            profiles=ProfileRepository(s, APP_ID),
            summaries=SummaryRepository(s, APP_ID),
            settings=settings,
        )
        opened.append(session)
        return session

    yield factory
    for session in opened:
        session.close()


@pytest.fixture()
def client(store) -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app(store=store)
    return TestClient(app)


@pytest.fixture()
def fail_writes(monkeypatch):
    """Make store writes raise for matching paths/ops, like a revoked permission."""

    def install(target_store, *, op=None, fragment=""):
        real = target_store._apply

        def flaky(path, operation, data):
            if fragment in path and (op is None or operation == op):
                raise RuntimeError("permission denied")
            return real(path, operation, data)

        monkeypatch.setattr(target_store, "_apply", flaky)
        return real

    return install
