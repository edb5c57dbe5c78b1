import os
import sys
from pathlib import Path

# Add project root (2 levels up from tests/) to sys.path so tests can import 'callplane'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

# Never touch a real Postgres/Redis/LiveKit from tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STALE_SWEEP_ENABLED", "false")
os.environ.setdefault("SUPABASE_URL", "")
os.environ.setdefault("TILEDESK_API_URL", "")

import pytest
from callplane.models import build_engine, build_session_factory, init_db
from callplane.services.call import CallLifecycleManager, SessionStore
from callplane.services.quota import AdmissionController, QuotaStore
from tests.helpers import (
    FakeRoomProvider,
    FakeCredentialIssuer,
    FakeFeatureStore,
    FakeAgentDirectory,
    WS_URL,
)


@pytest.fixture
async def session_factory(tmp_path):
    """
    File-backed SQLite per test. A file (not :memory:) lets concurrent
    tasks use separate connections against the same database.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'callplane.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def quota_store(session_factory):
    return QuotaStore(session_factory)


@pytest.fixture
def session_store(session_factory):
    return SessionStore(session_factory)


@pytest.fixture
def features():
    return FakeFeatureStore()


@pytest.fixture
def rooms():
    return FakeRoomProvider()


@pytest.fixture
def credentials():
    return FakeCredentialIssuer()


@pytest.fixture
def directory():
    return FakeAgentDirectory({"req_1": "agent_1"})


@pytest.fixture
def admission(quota_store, features):
    return AdmissionController(quota_store, features)


@pytest.fixture
def lifecycle(session_store, admission, rooms, credentials, features, directory):
    return CallLifecycleManager(
        sessions=session_store,
        admission=admission,
        rooms=rooms,
        credentials=credentials,
        features=features,
        directory=directory,
        ws_url=WS_URL,
    )
