from datetime import datetime, timedelta

import pytest

from callplane.config.constants import CALL_ID_PREFIX
from callplane.models import CallParticipant, CallSession, CallStatus
from callplane.models.call_session import new_call_id
from callplane.services.call.state import ALLOWED_TRANSITIONS, can_transition, ensure_transition, sources_for
from callplane.services.exceptions import InvalidTransitionError, ValidationError

T0 = datetime(2026, 3, 1, 12, 0, 0)


def test_terminal_states_have_no_exits():
    for status in ("ended", "missed", "rejected", "cancelled"):
        for target in CallStatus:
            assert not can_transition(status, target.value)


def test_allowed_transitions_table():
    assert ALLOWED_TRANSITIONS["pending"] == {"active", "ended", "cancelled"}
    assert ALLOWED_TRANSITIONS["ringing"] == {"active", "ended", "missed", "rejected", "cancelled"}
    assert ALLOWED_TRANSITIONS["active"] == {"ended"}


def test_invalid_transition_is_a_validation_error():
    with pytest.raises(ValidationError) as exc:
        ensure_transition("call_1", "active", "ringing")
    assert isinstance(exc.value, InvalidTransitionError)
    assert exc.value.current == "active"
    assert exc.value.target == "ringing"


def test_sources_for_ended():
    assert set(sources_for("ended")) == {"pending", "ringing", "active"}
    assert set(sources_for("missed")) == {"ringing"}


def test_participant_leave_floors_duration():
    p = CallParticipant(identity="user_1", role="user", joined_at=T0)
    p.leave(T0 + timedelta(seconds=59, milliseconds=999))
    assert p.duration_seconds == 59


def test_finalize_closes_joined_participants_only():
    session = CallSession(call_id="call_1", request_id="r", agent_id="a", initiator="agent",
                          call_type="audio", status="ended", created_at=T0, started_at=T0)
    early = CallParticipant(identity="user_1", role="user", joined_at=T0,
                            left_at=T0 + timedelta(seconds=5), duration_seconds=5)
    open_ = CallParticipant(identity="agent_a", role="agent", joined_at=T0 + timedelta(seconds=1))
    never = CallParticipant(identity="user_2", role="user")
    for participant in (early, open_, never):
        session.participants.append(participant)

    session.finalize(T0 + timedelta(seconds=30, milliseconds=500))

    assert session.duration_seconds == 30
    assert early.left_at == T0 + timedelta(seconds=5)
    assert open_.left_at == session.ended_at
    assert open_.duration_seconds == 29
    assert never.left_at is None
    assert [p.position for p in session.participants] == [0, 1, 2]


def test_finalize_without_start_has_no_duration():
    session = CallSession(call_id="call_1", request_id="r", agent_id="a", initiator="user",
                          call_type="audio", status="ended", created_at=T0)
    session.finalize(T0 + timedelta(seconds=30))
    assert session.duration_seconds is None


def test_room_name_is_assigned_once():
    session = CallSession(call_id="call_1")
    session.assign_room("td_call_call_1")
    session.assign_room("td_call_call_1")
    with pytest.raises(ValueError):
        session.assign_room("other")


def test_unsettled_terminal_session():
    session = CallSession(call_id="call_1", status="ended", created_at=T0, started_at=T0,
                          ended_at=T0 + timedelta(seconds=40))
    session.participants.append(CallParticipant(identity="ai_1", role="ai", joined_at=T0))
    assert not session.is_settled

    session.finalize(session.ended_at)

    assert session.is_settled


def test_open_sessions_are_settled():
    session = CallSession(call_id="call_1", status="active", created_at=T0, started_at=T0)
    assert session.is_settled


def test_call_ids_are_prefixed_and_unique():
    first, second = new_call_id(), new_call_id()
    assert first.startswith(CALL_ID_PREFIX)
    assert first != second
