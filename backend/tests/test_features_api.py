import pytest
from fastapi.testclient import TestClient

from callplane.api.deps import get_feature_store
from callplane.main import app
from tests.helpers import FakeFeatureStore, all_features


@pytest.fixture
def store():
    fake = FakeFeatureStore()
    fake.agents["agent_1"] = all_features(video=False, image_share=True)
    app.dependency_overrides[get_feature_store] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_feature_store, None)


@pytest.fixture
def client():
    return TestClient(app)


def test_get_agent_features(client, store):
    r = client.get("/api/features/agent_1")

    assert r.status_code == 200
    body = r.json()
    assert body["plan"] == "custom"
    assert body["source"] == "test"
    assert body["features"]["audio"] is True
    assert body["features"]["video"] is False
    assert body["features"]["max_participants"] == 2


def test_unknown_agent_gets_fallback_features(client, store):
    r = client.get("/api/features/agent_new")
    assert r.status_code == 200
    assert r.json()["agent_id"] == "agent_new"


def test_check_permission(client, store):
    r = client.get("/api/features/check-permission", params={"agent_id": "agent_1", "permission": "video"})
    assert r.status_code == 200
    assert r.json() == {"agent_id": "agent_1", "permission": "video", "allowed": False}

    r = client.get("/api/features/check-permission", params={"agent_id": "agent_1", "permission": "image_share"})
    assert r.json()["allowed"] is True


def test_check_permission_requires_both_params(client, store):
    assert client.get("/api/features/check-permission", params={"agent_id": "agent_1"}).status_code == 400
    r = client.get("/api/features/check-permission", params={"agent_id": "agent_1", "permission": "teleport"})
    assert r.status_code == 400


def test_update_merges_changes(client, store):
    r = client.put("/api/features/agent_1", json={"plan": "pro", "features": {"video": True}})

    assert r.status_code == 200
    body = r.json()
    assert body["plan"] == "pro"
    assert body["features"]["video"] is True
    assert body["features"]["image_share"] is True
    assert store.agents["agent_1"].video is True


def test_update_rejects_unknown_feature(client, store):
    r = client.put("/api/features/agent_1", json={"features": {"hologram": True}})
    assert r.status_code == 400


def test_update_failure_is_502(client, store):
    store.fail_update = True
    r = client.put("/api/features/agent_1", json={"features": {"video": True}})
    assert r.status_code == 502
