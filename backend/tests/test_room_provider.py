import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from livekit import api
from tenacity import wait_none

from callplane.services.exceptions import UpstreamError
from callplane.services.livekit import LiveKitRoomProvider


def make_provider():
    client = MagicMock()
    client.room = MagicMock()
    client.room.create_room = AsyncMock()
    client.room.delete_room = AsyncMock()
    client.room.list_rooms = AsyncMock()
    client.room.list_participants = AsyncMock()
    client.aclose = AsyncMock()
    return LiveKitRoomProvider("wss://livekit.test", "key", "secret", client=client), client


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(LiveKitRoomProvider._create.retry, "wait", wait_none())


@pytest.mark.asyncio
async def test_create_room_sends_size_timeout_and_metadata():
    provider, client = make_provider()
    client.room.create_room.return_value = SimpleNamespace(name="td_call_call_1", sid="RM_1")

    handle = await provider.create_room("td_call_call_1", 2, 300, {"call_id": "call_1"})

    request = client.room.create_room.await_args.args[0]
    assert request.name == "td_call_call_1"
    assert request.max_participants == 2
    assert request.empty_timeout == 300
    assert json.loads(request.metadata) == {"call_id": "call_1"}
    assert handle.name == "td_call_call_1"
    assert handle.sid == "RM_1"


@pytest.mark.asyncio
async def test_create_room_retries_transient_failures():
    provider, client = make_provider()
    client.room.create_room.side_effect = [
        ConnectionError("reset"),
        SimpleNamespace(name="td_call_call_1", sid="RM_1"),
    ]

    handle = await provider.create_room("td_call_call_1", 2, 300, {})

    assert handle.sid == "RM_1"
    assert client.room.create_room.await_count == 2


@pytest.mark.asyncio
async def test_create_room_gives_up_with_upstream_error():
    provider, client = make_provider()
    client.room.create_room.side_effect = ConnectionError("down")

    with pytest.raises(UpstreamError):
        await provider.create_room("td_call_call_1", 2, 300, {})
    assert client.room.create_room.await_count == 3


@pytest.mark.asyncio
async def test_delete_missing_room_succeeds():
    provider, client = make_provider()
    client.room.delete_room.side_effect = api.TwirpError("not_found", "room not found")

    await provider.delete_room("td_call_call_1")


@pytest.mark.asyncio
async def test_delete_room_failure_is_upstream_error():
    provider, client = make_provider()
    client.room.delete_room.side_effect = api.TwirpError("internal", "boom")

    with pytest.raises(UpstreamError):
        await provider.delete_room("td_call_call_1")


@pytest.mark.asyncio
async def test_list_rooms_maps_live_state():
    provider, client = make_provider()
    client.room.list_rooms.return_value = SimpleNamespace(rooms=[
        SimpleNamespace(name="td_call_call_1", num_participants=1,
                        creation_time=1767225600, metadata='{"call_id": "call_1"}'),
    ])

    rooms = await provider.list_rooms(["td_call_call_1"])

    assert len(rooms) == 1
    assert rooms[0].num_participants == 1
    assert rooms[0].metadata == {"call_id": "call_1"}
    assert rooms[0].created_at.year == 2026


@pytest.mark.asyncio
async def test_participants_of_missing_room_is_empty():
    provider, client = make_provider()
    client.room.list_participants.side_effect = api.TwirpError("not_found", "room not found")

    assert await provider.list_participants("td_call_call_1") == []


@pytest.mark.asyncio
async def test_aclose_releases_client():
    provider, client = make_provider()
    await provider.aclose()
    client.aclose.assert_awaited_once()
