import pytest
from sqlalchemy import select

from callplane.config.constants import CREDENTIAL_TTL
from callplane.models import CallSession
from callplane.services.exceptions import (
    AdmissionDeniedError,
    AgentNotFoundError,
    CallNotFoundError,
    FeatureDisabledError,
    InvalidTransitionError,
    NotAssignedError,
    PermissionDeniedError,
    UpstreamError,
    ValidationError,
)
from tests.helpers import PROJECT, WS_URL, all_features


async def concurrent_now(admission):
    return (await admission.get_quota(PROJECT)).concurrent_calls_now


# === agent_initiate ===

@pytest.mark.asyncio
async def test_agent_initiate_creates_pending_call(lifecycle, admission, rooms, credentials, session_store):
    result = await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    assert result["call_id"].startswith("call_")
    assert result["room_name"] == f"td_call_{result['call_id']}"
    assert result["status"] == "pending"
    assert result["ws_url"] == WS_URL
    assert result["token"] == f"token:agent_agent_1:{result['room_name']}"

    assert rooms.rooms[result["room_name"]]["max_participants"] == 2
    assert rooms.rooms[result["room_name"]]["empty_timeout"] == 300

    issued = credentials.issued[-1]
    assert issued["is_admin"] is True
    assert issued["display_name"] == "Support Agent"
    assert issued["ttl"] == CREDENTIAL_TTL

    stored = await session_store.get(result["call_id"])
    assert stored.room_name == result["room_name"]
    assert stored.admission_state == "reserved"
    assert stored.participants[0].identity == "agent_agent_1"
    assert stored.participants[0].joined_at is None
    assert await concurrent_now(admission) == 1


@pytest.mark.asyncio
async def test_agent_initiate_room_sized_to_agent_features(lifecycle, features, rooms):
    features.agents["agent_big"] = all_features(max_participants=6)
    result = await lifecycle.agent_initiate("agent_big", "req_1", "video", PROJECT)
    assert rooms.rooms[result["room_name"]]["max_participants"] == 6


@pytest.mark.asyncio
async def test_agent_initiate_feature_disabled_creates_nothing(lifecycle, features, admission, session_store, rooms):
    features.agents["agent_1"] = all_features(audio=False)

    with pytest.raises(PermissionDeniedError) as exc:
        await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    assert isinstance(exc.value, FeatureDisabledError)
    assert await session_store.list_active("agent_1", 10) == []
    assert rooms.rooms == {}
    assert await concurrent_now(admission) == 0


@pytest.mark.asyncio
async def test_agent_initiate_denied_by_quota(lifecycle, admission, session_store):
    await admission.update_settings(PROJECT, {"max_concurrent_calls": 0})

    with pytest.raises(AdmissionDeniedError) as exc:
        await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    assert exc.value.reason == "concurrent limit reached"
    assert await session_store.list_active("agent_1", 10) == []


@pytest.mark.asyncio
async def test_agent_initiate_room_failure_releases_reservation(lifecycle, admission, rooms, session_store, session_factory):
    rooms.fail_create = True

    with pytest.raises(UpstreamError):
        await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    assert await concurrent_now(admission) == 0
    assert await session_store.list_active("agent_1", 10) == []

    async with session_factory() as db:
        sessions = (await db.execute(select(CallSession))).scalars().all()
    assert len(sessions) == 1
    assert sessions[0].status == "cancelled"
    assert sessions[0].ended_by == "provisioning_failure"
    assert sessions[0].admission_state == "released"


@pytest.mark.asyncio
async def test_agent_initiate_credential_failure_deletes_room(lifecycle, admission, rooms, credentials):
    def boom(*args, **kwargs):
        raise UpstreamError("signing failed")
    credentials.issue_credential = boom

    with pytest.raises(UpstreamError):
        await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    assert rooms.rooms == {}
    assert len(rooms.deleted) == 1
    assert await concurrent_now(admission) == 0


@pytest.mark.asyncio
async def test_initiate_validates_input(lifecycle):
    with pytest.raises(ValidationError):
        await lifecycle.agent_initiate("", "req_1", "audio", PROJECT)
    with pytest.raises(ValidationError):
        await lifecycle.agent_initiate("agent_1", "req_1", "hologram", PROJECT)
    with pytest.raises(ValidationError):
        await lifecycle.ai_initiate_call("ai_1", "req_1", "audio", None)


# === user_request_call / agent_accept_call ===

@pytest.mark.asyncio
async def test_user_request_rings_assigned_agent_without_reserving(lifecycle, admission, credentials):
    result = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)

    assert result["status"] == "ringing"
    assert result["agent_id"] == "agent_1"
    assert credentials.issued[-1]["is_admin"] is False
    assert credentials.issued[-1]["identity"] == "user_user_9"
    assert len(result["session"]["participants"]) == 1
    assert await concurrent_now(admission) == 0


@pytest.mark.asyncio
async def test_user_request_without_assigned_agent(lifecycle):
    with pytest.raises(AgentNotFoundError):
        await lifecycle.user_request_call("user_9", "req_unassigned", "audio", PROJECT)


@pytest.mark.asyncio
async def test_user_request_agent_rejects_call_type(lifecycle, features):
    features.agents["agent_1"] = all_features(video=False)
    with pytest.raises(FeatureDisabledError):
        await lifecycle.user_request_call("user_9", "req_1", "video", PROJECT)


@pytest.mark.asyncio
async def test_user_request_checks_admission(lifecycle, admission):
    await admission.update_settings(PROJECT, {"enabled": False})
    with pytest.raises(AdmissionDeniedError) as exc:
        await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)
    assert exc.value.reason == "calls disabled"


@pytest.mark.asyncio
async def test_agent_accept_activates_and_reserves(lifecycle, admission, credentials):
    requested = await lifecycle.user_request_call("user_9", "req_1", "video", PROJECT)

    accepted = await lifecycle.agent_accept_call("agent_1", requested["call_id"])

    assert accepted["status"] == "active"
    assert accepted["session"]["started_at"] is not None
    agent = accepted["session"]["participants"][-1]
    assert agent["identity"] == "agent_agent_1"
    assert agent["joined_at"] is not None
    assert credentials.issued[-1]["is_admin"] is True
    assert await concurrent_now(admission) == 1


@pytest.mark.asyncio
async def test_agent_accept_by_wrong_agent(lifecycle):
    requested = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)
    with pytest.raises(NotAssignedError):
        await lifecycle.agent_accept_call("agent_2", requested["call_id"])


@pytest.mark.asyncio
async def test_agent_accept_unknown_call(lifecycle):
    with pytest.raises(CallNotFoundError):
        await lifecycle.agent_accept_call("agent_1", "call_missing")


@pytest.mark.asyncio
async def test_agent_accept_denied_leaves_call_ringing(lifecycle, admission, session_store):
    requested = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)
    await admission.update_settings(PROJECT, {"max_concurrent_calls": 0})

    with pytest.raises(AdmissionDeniedError):
        await lifecycle.agent_accept_call("agent_1", requested["call_id"])

    stored = await session_store.get(requested["call_id"])
    assert stored.status == "ringing"
    assert stored.admission_state == "none"


@pytest.mark.asyncio
async def test_agent_accept_twice_is_invalid_transition(lifecycle, admission):
    requested = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)
    await lifecycle.agent_accept_call("agent_1", requested["call_id"])

    with pytest.raises(InvalidTransitionError):
        await lifecycle.agent_accept_call("agent_1", requested["call_id"])
    assert await concurrent_now(admission) == 1


# === ai_initiate_call ===

@pytest.mark.asyncio
async def test_ai_initiate_starts_active(lifecycle, admission, rooms):
    result = await lifecycle.ai_initiate_call("ai_7", "req_1", "audio", PROJECT)

    assert result["status"] == "active"
    assert result["session"]["started_at"] is not None
    ai = result["session"]["participants"][0]
    assert ai["identity"] == "ai_ai_7"
    assert ai["display_name"] == "AI Assistant"
    assert ai["joined_at"] is not None
    assert rooms.rooms[result["room_name"]]["max_participants"] == 2
    assert await concurrent_now(admission) == 1


@pytest.mark.asyncio
async def test_ai_initiate_room_failure_releases(lifecycle, admission, rooms):
    rooms.fail_create = True
    with pytest.raises(UpstreamError):
        await lifecycle.ai_initiate_call("ai_7", "req_1", "audio", PROJECT)
    assert await concurrent_now(admission) == 0


# === user_join_call ===

@pytest.mark.asyncio
async def test_user_joins_agent_initiated_call(lifecycle, credentials):
    started = await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)

    joined = await lifecycle.user_join_call("user_9", started["call_id"])

    assert joined["status"] == "pending"
    assert credentials.issued[-1]["is_admin"] is False
    user = joined["session"]["participants"][-1]
    assert user["identity"] == "user_user_9"
    assert user["display_name"] == "Customer"
    assert user["joined_at"] is not None


@pytest.mark.asyncio
async def test_user_rejoin_reuses_open_participant(lifecycle):
    requested = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)
    await lifecycle.agent_accept_call("agent_1", requested["call_id"])

    first = await lifecycle.user_join_call("user_9", requested["call_id"])
    second = await lifecycle.user_join_call("user_9", requested["call_id"])

    identities = [p["identity"] for p in second["session"]["participants"]]
    assert identities.count("user_user_9") == 1
    assert first["session"]["participants"][0]["joined_at"] == second["session"]["participants"][0]["joined_at"]


@pytest.mark.asyncio
async def test_user_cannot_join_ended_call(lifecycle):
    started = await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)
    await lifecycle.end_call(started["call_id"], "agent")

    with pytest.raises(CallNotFoundError):
        await lifecycle.user_join_call("user_9", started["call_id"])


# === reject / cancel ===

@pytest.mark.asyncio
async def test_reject_ringing_call(lifecycle, rooms, admission):
    requested = await lifecycle.user_request_call("user_9", "req_1", "audio", PROJECT)

    result = await lifecycle.reject_call("agent_1", requested["call_id"])

    assert result["status"] == "rejected"
    assert requested["room_name"] in rooms.deleted
    assert await concurrent_now(admission) == 0


@pytest.mark.asyncio
async def test_reject_active_call_is_invalid(lifecycle):
    started = await lifecycle.ai_initiate_call("agent_1", "req_1", "audio", PROJECT)
    with pytest.raises(InvalidTransitionError):
        await lifecycle.reject_call("agent_1", started["call_id"])


@pytest.mark.asyncio
async def test_cancel_pending_call_releases(lifecycle, admission, session_store):
    started = await lifecycle.agent_initiate("agent_1", "req_1", "audio", PROJECT)
    assert await concurrent_now(admission) == 1

    result = await lifecycle.cancel_call(started["call_id"], "agent")

    assert result["status"] == "cancelled"
    assert await concurrent_now(admission) == 0
    stored = await session_store.get(started["call_id"])
    assert stored.ended_by == "agent"
    assert stored.admission_state == "released"


@pytest.mark.asyncio
async def test_cancel_active_call_is_invalid(lifecycle):
    started = await lifecycle.ai_initiate_call("ai_7", "req_1", "audio", PROJECT)
    with pytest.raises(InvalidTransitionError):
        await lifecycle.cancel_call(started["call_id"])
