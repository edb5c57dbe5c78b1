"""
Call Lifecycle Management - the call-session state machine.

Single Responsibility: drive a CallSession through its states while keeping
the project quota consistent. Admission is reserved before any side effect
and released exactly once when the session terminates; every failure after a
reservation runs the compensating release.
"""
import logging
from typing import List, Optional

from callplane.config.constants import (
    ROOM_NAME_PREFIX,
    ROOM_EMPTY_TIMEOUT_SEC,
    DEFAULT_MAX_PARTICIPANTS,
    AI_CALL_MAX_PARTICIPANTS,
    CREDENTIAL_TTL,
    AGENT_DISPLAY_NAME,
    USER_DISPLAY_NAME,
    AI_DISPLAY_NAME,
    ACTIVE_QUERY_LIMIT,
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    OPEN_CALL_STATUSES,
)
from callplane.models.call_participant import CallParticipant
from callplane.models.call_session import (
    CallSession,
    CallStatus,
    CallType,
    ParticipantRole,
    AdmissionState,
    new_call_id,
)
from callplane.models.database import utcnow
from callplane.services import metrics
from callplane.services.exceptions import (
    CallServiceError,
    ValidationError,
    InvalidTransitionError,
    CallNotFoundError,
    AgentNotFoundError,
    FeatureDisabledError,
    NotAssignedError,
    AdmissionDeniedError,
    UpstreamError,
)
from callplane.services.protocols import (
    RoomProvider,
    CredentialIssuer,
    FeatureStore,
    AgentDirectory,
)
from callplane.services.quota.admission import AdmissionController
from callplane.services.call.state import can_transition, sources_for
from callplane.services.call.store import SessionStore

logger = logging.getLogger(__name__)

PROVISIONING_FAILURE = "provisioning_failure"
CALL_TYPES = frozenset(t.value for t in CallType)


def _require(**values) -> None:
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required")


def _require_call_type(call_type: str) -> None:
    if call_type not in CALL_TYPES:
        raise ValidationError(f"Unsupported call type: {call_type!r}")


def identity_for(role: str, participant_id: str) -> str:
    return f"{role}_{participant_id}"


def room_name_for(call_id: str) -> str:
    return f"{ROOM_NAME_PREFIX}{call_id}"


class CallLifecycleManager:
    """
    Orchestrates call sessions across the session store, admission control
    and the room/credential provider.

    All collaborators are injected; nothing is looked up at call time.
    """

    def __init__(
        self,
        sessions: SessionStore,
        admission: AdmissionController,
        rooms: RoomProvider,
        credentials: CredentialIssuer,
        features: FeatureStore,
        directory: AgentDirectory,
        ws_url: str,
    ):
        self.sessions = sessions
        self.admission = admission
        self.rooms = rooms
        self.credentials = credentials
        self.features = features
        self.directory = directory
        self.ws_url = ws_url

    # === Helpers ===

    async def _load(self, call_id: str) -> CallSession:
        _require(call_id=call_id)
        session = await self.sessions.get(call_id)
        if session is None:
            raise CallNotFoundError(f"Call {call_id} not found")
        return session

    def _credential(self, session: CallSession, role: str, participant_id: str, display_name: str, is_admin: bool) -> str:
        return self.credentials.issue_credential(
            identity_for(role, participant_id),
            display_name,
            session.room_name,
            is_admin,
            session.call_type,
            CREDENTIAL_TTL,
        )

    def _grant(self, session: CallSession, token: str, **extra) -> dict:
        result = {
            "call_id": session.call_id,
            "room_name": session.room_name,
            "status": session.status,
            "token": token,
            "ws_url": self.ws_url,
        }
        result.update(extra)
        result["session"] = session.to_dict()
        return result

    async def _delete_room_quietly(self, room_name: Optional[str]) -> None:
        if not room_name:
            return
        try:
            await self.rooms.delete_room(room_name)
        except UpstreamError as e:
            logger.warning(f"[Lifecycle] Could not delete room {room_name}: {e}")

    async def _release_once(self, call_id: str, project_id: Optional[str]) -> bool:
        """Release the call's admission slot if it still holds one."""
        if not project_id:
            return False
        if await self.sessions.claim_release(call_id):
            await self.admission.release(project_id)
            return True
        return False

    async def _compensate(
        self,
        session: Optional[CallSession],
        project_id: Optional[str],
        reserved: bool,
        room_name: Optional[str],
    ) -> None:
        """
        Undo a partially provisioned call.

        Runs while another error is propagating, so its own failures are
        logged and never replace the original error.
        """
        try:
            if session is not None and session.call_id:
                if reserved:
                    await self._release_once(session.call_id, session.project_id)
                target = (
                    CallStatus.CANCELLED.value
                    if can_transition(session.status, CallStatus.CANCELLED.value)
                    else CallStatus.ENDED.value
                )
                await self.sessions.claim_termination(
                    session.call_id, target, utcnow(), PROVISIONING_FAILURE, OPEN_CALL_STATUSES
                )
            elif reserved and project_id:
                await self.admission.release(project_id)
        except CallServiceError as e:
            logger.error(f"[Lifecycle] Compensation incomplete for project {project_id}: {e}")
        await self._delete_room_quietly(room_name)

    async def _provision(
        self,
        session: CallSession,
        max_participants: int,
        role: str,
        participant_id: str,
        display_name: str,
        is_admin: bool,
        reserved: bool,
    ):
        """
        Persist a new session, create its room and mint the first credential.

        Returns (session, token). Any failure rolls the call back.
        """
        persisted = None
        room_name = None
        try:
            persisted = await self.sessions.create(session)
            handle = await self.rooms.create_room(
                room_name_for(session.call_id),
                max_participants,
                ROOM_EMPTY_TIMEOUT_SEC,
                {
                    "call_id": session.call_id,
                    "request_id": session.request_id,
                    "call_type": session.call_type,
                    "initiator": session.initiator,
                },
            )
            room_name = handle.name
            persisted.assign_room(handle.name)
            token = self._credential(persisted, role, participant_id, display_name, is_admin)
            saved = await self.sessions.save(persisted)
            return saved, token
        except Exception:
            logger.error(f"❌ [Lifecycle] Provisioning failed for call {session.call_id}, rolling back")
            await self._compensate(persisted, session.project_id, reserved, room_name)
            raise

    async def _check_agent_accepts(self, agent_id: str, call_type: str):
        features = await self.features.get_agent_features(agent_id)
        if not features.allows(call_type):
            raise FeatureDisabledError(f"Agent does not have {call_type} calls enabled")
        return features

    async def _reserve(self, project_id: str, call_type: str):
        decision = await self.admission.reserve(project_id, call_type)
        if not decision.allowed:
            raise AdmissionDeniedError(project_id, decision.reason)
        return decision

    # === Initiation ===

    async def agent_initiate(self, agent_id: str, request_id: str, call_type: str, project_id: str) -> dict:
        """Agent starts a call for a support request; the session waits in `pending`."""
        _require(agent_id=agent_id, request_id=request_id, project_id=project_id)
        _require_call_type(call_type)

        features = await self._check_agent_accepts(agent_id, call_type)
        decision = await self._reserve(project_id, call_type)

        session = CallSession(
            call_id=new_call_id(),
            request_id=request_id,
            agent_id=agent_id,
            project_id=project_id,
            initiator=ParticipantRole.AGENT.value,
            initiator_id=agent_id,
            call_type=call_type,
            status=CallStatus.PENDING.value,
            recording_enabled=decision.recording_enabled,
            admission_state=AdmissionState.RESERVED.value,
            created_at=utcnow(),
        )
        session.participants.append(CallParticipant(
            identity=identity_for(ParticipantRole.AGENT.value, agent_id),
            display_name=AGENT_DISPLAY_NAME,
            role=ParticipantRole.AGENT.value,
        ))

        session, token = await self._provision(
            session,
            features.max_participants or DEFAULT_MAX_PARTICIPANTS,
            ParticipantRole.AGENT.value, agent_id, AGENT_DISPLAY_NAME,
            is_admin=True, reserved=True,
        )
        metrics.calls_started.labels(call_type=call_type, initiator="agent").inc()
        logger.info(f"✅ [Lifecycle] Agent {agent_id} initiated {call_type} call {session.call_id}")
        return self._grant(session, token)

    async def user_request_call(self, user_id: str, request_id: str, call_type: str, project_id: str) -> dict:
        """
        Customer asks for a call; the assigned agent is rung.

        Only a read-only admission check happens here; the slot is reserved
        when the agent accepts.
        """
        _require(user_id=user_id, request_id=request_id, project_id=project_id)
        _require_call_type(call_type)

        agent_id = await self.directory.find_assigned_agent(project_id, request_id)
        if not agent_id:
            raise AgentNotFoundError(f"No agent assigned to request {request_id}")

        features = await self.features.get_agent_features(agent_id)
        if not features.allows(call_type):
            raise FeatureDisabledError(f"Agent does not accept {call_type} calls")

        decision = await self.admission.check_admission(project_id, call_type)
        if not decision.allowed:
            raise AdmissionDeniedError(project_id, decision.reason)

        session = CallSession(
            call_id=new_call_id(),
            request_id=request_id,
            agent_id=agent_id,
            project_id=project_id,
            initiator=ParticipantRole.USER.value,
            initiator_id=user_id,
            call_type=call_type,
            status=CallStatus.RINGING.value,
            admission_state=AdmissionState.NONE.value,
            created_at=utcnow(),
        )
        session.participants.append(CallParticipant(
            identity=identity_for(ParticipantRole.USER.value, user_id),
            display_name=USER_DISPLAY_NAME,
            role=ParticipantRole.USER.value,
        ))

        session, token = await self._provision(
            session,
            features.max_participants or DEFAULT_MAX_PARTICIPANTS,
            ParticipantRole.USER.value, user_id, USER_DISPLAY_NAME,
            is_admin=False, reserved=False,
        )
        metrics.calls_started.labels(call_type=call_type, initiator="user").inc()
        logger.info(f"📞 [Lifecycle] User {user_id} requested call {session.call_id}, ringing agent {agent_id}")
        return self._grant(session, token, agent_id=agent_id)

    async def ai_initiate_call(self, ai_agent_id: str, request_id: str, call_type: str, project_id: str) -> dict:
        """AI assistant opens a call that is active from the start."""
        _require(ai_agent_id=ai_agent_id, request_id=request_id, project_id=project_id)
        _require_call_type(call_type)

        decision = await self._reserve(project_id, call_type)

        now = utcnow()
        session = CallSession(
            call_id=new_call_id(),
            request_id=request_id,
            agent_id=ai_agent_id,
            project_id=project_id,
            initiator=ParticipantRole.AI.value,
            initiator_id=ai_agent_id,
            call_type=call_type,
            status=CallStatus.ACTIVE.value,
            recording_enabled=decision.recording_enabled,
            admission_state=AdmissionState.RESERVED.value,
            created_at=now,
            started_at=now,
        )
        session.participants.append(CallParticipant(
            identity=identity_for(ParticipantRole.AI.value, ai_agent_id),
            display_name=AI_DISPLAY_NAME,
            role=ParticipantRole.AI.value,
            joined_at=now,
        ))

        session, token = await self._provision(
            session,
            AI_CALL_MAX_PARTICIPANTS,
            ParticipantRole.AI.value, ai_agent_id, AI_DISPLAY_NAME,
            is_admin=True, reserved=True,
        )
        metrics.calls_started.labels(call_type=call_type, initiator="ai").inc()
        logger.info(f"🤖 [Lifecycle] AI {ai_agent_id} started {call_type} call {session.call_id}")
        return self._grant(session, token)

    # === Joining ===

    async def agent_accept_call(self, agent_id: str, call_id: str) -> dict:
        """Assigned agent answers a ringing call; the call becomes active."""
        _require(agent_id=agent_id)
        session = await self._load(call_id)

        if session.agent_id != agent_id:
            raise NotAssignedError(f"Agent {agent_id} is not assigned to call {call_id}")
        if session.status != CallStatus.RINGING.value:
            raise InvalidTransitionError(call_id, session.status, CallStatus.ACTIVE.value)

        decision = await self._reserve(session.project_id, session.call_type)

        try:
            now = utcnow()
            session.status = CallStatus.ACTIVE.value
            session.started_at = now
            session.recording_enabled = decision.recording_enabled
            session.participants.append(CallParticipant(
                identity=identity_for(ParticipantRole.AGENT.value, agent_id),
                display_name=AGENT_DISPLAY_NAME,
                role=ParticipantRole.AGENT.value,
                joined_at=now,
            ))
            token = self._credential(session, ParticipantRole.AGENT.value, agent_id, AGENT_DISPLAY_NAME, True)
            saved = await self.sessions.save(
                session, expected_status=CallStatus.RINGING.value, hold_reservation=True
            )
        except Exception:
            await self.admission.release(session.project_id)
            raise

        if saved is None:
            # Cancelled or timed out while we were reserving
            await self.admission.release(session.project_id)
            current = await self.sessions.get(call_id)
            raise InvalidTransitionError(
                call_id, current.status if current else "unknown", CallStatus.ACTIVE.value
            )

        logger.info(f"✅ [Lifecycle] Agent {agent_id} accepted call {call_id}")
        return self._grant(saved, token)

    async def user_join_call(self, user_id: str, call_id: str) -> dict:
        """Customer joins an existing call; the status does not change."""
        _require(user_id=user_id)
        session = await self._load(call_id)

        if session.is_terminal:
            raise CallNotFoundError(f"Call {call_id} has already {session.status}")
        if not session.room_name:
            raise ValidationError(f"Call {call_id} has no room yet")

        identity = identity_for(ParticipantRole.USER.value, user_id)
        participant = session.find_open_participant(identity)
        if participant is None:
            session.participants.append(CallParticipant(
                identity=identity,
                display_name=USER_DISPLAY_NAME,
                role=ParticipantRole.USER.value,
                joined_at=utcnow(),
            ))
        elif participant.joined_at is None:
            participant.joined_at = utcnow()

        token = self._credential(session, ParticipantRole.USER.value, user_id, USER_DISPLAY_NAME, False)
        saved = await self.sessions.save(session, expected_status=session.status)
        if saved is None:
            raise CallNotFoundError(f"Call {call_id} ended while joining")

        logger.info(f"[Lifecycle] User {user_id} joined call {call_id}")
        return self._grant(saved, token)

    # === Termination ===

    async def _terminate(
        self, current: CallSession, status: str, ended_by: Optional[str], from_statuses
    ) -> Optional[CallSession]:
        """
        Claim the terminal transition and finish the session.

        Returns the finished session, or None if another caller claimed it first.
        Once the claim is won the slot is released even if reloading the
        session or writing the timing back fails; `_settle` repairs the timing later.
        """
        call_id = current.call_id
        ended_at = utcnow()
        if not await self.sessions.claim_termination(call_id, status, ended_at, ended_by, from_statuses):
            return None

        try:
            session = await self._load(call_id)
            session.finalize(ended_at)
            session = await self.sessions.save(session)
        finally:
            await self._release_once(call_id, current.project_id)

        await self._delete_room_quietly(session.room_name)
        metrics.calls_ended.labels(status=status, ended_by=ended_by or "unknown").inc()
        return session

    async def _settle(self, session: CallSession) -> CallSession:
        """Finish a terminal session whose end was interrupted part way."""
        if not session.is_settled:
            logger.warning(f"[Lifecycle] Repairing interrupted end of call {session.call_id}")
            session.finalize(session.ended_at)
            session = await self.sessions.save(session)
            await self._delete_room_quietly(session.room_name)
        if await self._release_once(session.call_id, session.project_id):
            logger.warning(f"[Lifecycle] Released slot left held by call {session.call_id}")
        return session

    async def end_call(self, call_id: str, ended_by: str = "system") -> dict:
        """
        End a call. Safe to call repeatedly: later calls report success
        without touching admission again, apart from finishing an end that
        was interrupted.
        """
        session = await self._load(call_id)
        if session.is_terminal:
            logger.info(f"[Lifecycle] Call {call_id} already {session.status}")
            session = await self._settle(session)
            return {"call_id": call_id, "status": session.status, "duration": session.duration_seconds,
                    "minutes": 0, "already_ended": True}

        ended = await self._terminate(session, CallStatus.ENDED.value, ended_by, sources_for(CallStatus.ENDED.value))
        if ended is None:
            current = await self._load(call_id)
            return {"call_id": call_id, "status": current.status, "duration": current.duration_seconds,
                    "minutes": 0, "already_ended": True}

        minutes = 0
        if ended.project_id:
            minutes = await self.admission.record_minutes(ended.project_id, ended.duration_seconds)

        logger.info(f"📴 [Lifecycle] Call {call_id} ended by {ended_by} after {ended.duration_seconds}s")
        return {"call_id": call_id, "status": ended.status, "duration": ended.duration_seconds,
                "minutes": minutes, "already_ended": False}

    async def reject_call(self, agent_id: str, call_id: str) -> dict:
        """Assigned agent declines a ringing call."""
        _require(agent_id=agent_id)
        session = await self._load(call_id)
        if session.agent_id != agent_id:
            raise NotAssignedError(f"Agent {agent_id} is not assigned to call {call_id}")
        if session.status != CallStatus.RINGING.value:
            raise InvalidTransitionError(call_id, session.status, CallStatus.REJECTED.value)

        rejected = await self._terminate(
            session, CallStatus.REJECTED.value, "agent", [CallStatus.RINGING.value]
        )
        if rejected is None:
            current = await self._load(call_id)
            raise InvalidTransitionError(call_id, current.status, CallStatus.REJECTED.value)

        logger.info(f"[Lifecycle] Agent {agent_id} rejected call {call_id}")
        return {"call_id": call_id, "status": rejected.status}

    async def cancel_call(self, call_id: str, cancelled_by: str = "system") -> dict:
        """Withdraw a call that was never answered."""
        session = await self._load(call_id)
        cancellable = sources_for(CallStatus.CANCELLED.value)
        if session.status not in cancellable:
            raise InvalidTransitionError(call_id, session.status, CallStatus.CANCELLED.value)

        cancelled = await self._terminate(session, CallStatus.CANCELLED.value, cancelled_by, cancellable)
        if cancelled is None:
            current = await self._load(call_id)
            raise InvalidTransitionError(call_id, current.status, CallStatus.CANCELLED.value)

        logger.info(f"[Lifecycle] Call {call_id} cancelled by {cancelled_by}")
        return {"call_id": call_id, "status": cancelled.status}

    # === Queries ===

    async def get_active(self, agent_id: str) -> List[dict]:
        _require(agent_id=agent_id)
        sessions = await self.sessions.list_active(agent_id, ACTIVE_QUERY_LIMIT)
        return [s.to_dict() for s in sessions]

    async def get_history(self, agent_id: str, limit: int = HISTORY_DEFAULT_LIMIT, offset: int = 0) -> dict:
        _require(agent_id=agent_id)
        limit = max(1, min(limit, HISTORY_MAX_LIMIT))
        offset = max(0, offset)
        sessions, total = await self.sessions.list_history(agent_id, limit, offset)
        return {
            "calls": [s.to_dict() for s in sessions],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    async def get_status(self, call_id: str) -> dict:
        """Stored session plus live room state; provider failures leave `room` empty."""
        session = await self._load(call_id)
        result = {"session": session.to_dict(), "room": None, "live_participants": []}
        if not session.room_name or session.is_terminal:
            return result

        try:
            rooms = await self.rooms.list_rooms([session.room_name])
            live = await self.rooms.list_participants(session.room_name)
        except UpstreamError as e:
            logger.warning(f"[Lifecycle] Live status unavailable for call {call_id}: {e}")
            return result

        if rooms:
            room = rooms[0]
            result["room"] = {
                "name": room.name,
                "num_participants": room.num_participants,
                "created_at": room.created_at.isoformat() if room.created_at else None,
            }
        result["live_participants"] = [
            {
                "identity": p.identity,
                "name": p.name,
                "joined_at": p.joined_at.isoformat() if p.joined_at else None,
                "state": p.state,
            }
            for p in live
        ]
        return result
