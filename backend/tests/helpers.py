from datetime import timedelta
from typing import Dict, List, Optional

from callplane.services.exceptions import UpstreamError
from callplane.services.protocols import AgentFeatures, RoomHandle, RoomInfo, ParticipantInfo

WS_URL = "wss://livekit.test"
PROJECT = "proj_1"


def all_features(**overrides) -> AgentFeatures:
    values = dict(audio=True, video=True, screen_share=True, max_participants=2, plan="custom", source="test")
    values.update(overrides)
    return AgentFeatures(**values)


class FakeRoomProvider:
    """In-memory RoomProvider; failures are switched on per test."""

    def __init__(self):
        self.rooms: Dict[str, dict] = {}
        self.deleted: List[str] = []
        self.participants: Dict[str, List[ParticipantInfo]] = {}
        self.fail_create = False
        self.fail_delete = False
        self.fail_list = False

    async def create_room(self, name, max_participants, empty_timeout_seconds, metadata):
        if self.fail_create:
            raise UpstreamError(f"cannot create {name}")
        self.rooms[name] = {
            "max_participants": max_participants,
            "empty_timeout": empty_timeout_seconds,
            "metadata": metadata,
        }
        return RoomHandle(name=name, sid=f"RM_{len(self.rooms)}",
                          max_participants=max_participants, empty_timeout=empty_timeout_seconds)

    async def delete_room(self, name):
        if self.fail_delete:
            raise UpstreamError(f"cannot delete {name}")
        self.rooms.pop(name, None)
        self.deleted.append(name)

    async def list_rooms(self, names):
        if self.fail_list:
            raise UpstreamError("cannot list rooms")
        return [
            RoomInfo(name=name, num_participants=len(self.participants.get(name, [])))
            for name in names
            if name in self.rooms
        ]

    async def list_participants(self, room_name):
        if self.fail_list:
            raise UpstreamError("cannot list participants")
        return list(self.participants.get(room_name, []))


class FakeCredentialIssuer:
    def __init__(self):
        self.issued: List[dict] = []

    def issue_credential(self, identity, display_name, room_name, is_admin, call_type, ttl: timedelta):
        self.issued.append({
            "identity": identity,
            "display_name": display_name,
            "room_name": room_name,
            "is_admin": is_admin,
            "call_type": call_type,
            "ttl": ttl,
        })
        return f"token:{identity}:{room_name}"


class FakeFeatureStore:
    def __init__(self, default_plan: str = "pro"):
        self.agents: Dict[str, AgentFeatures] = {}
        self.plans: Dict[str, str] = {}
        self.default_plan = default_plan
        self.fail_update = False

    async def get_agent_features(self, agent_id):
        return self.agents.get(agent_id, all_features())

    async def get_project_plan(self, project_id):
        return self.plans.get(project_id, self.default_plan)

    async def update_agent_features(self, agent_id, plan, changes):
        if self.fail_update:
            raise UpstreamError("feature store down")
        current = await self.get_agent_features(agent_id)
        values = current.to_features()
        values.update(changes)
        self.agents[agent_id] = AgentFeatures(plan=plan, source="supabase", **values)
        return self.agents[agent_id]


class FakeAgentDirectory:
    def __init__(self, assignments: Optional[Dict[str, str]] = None):
        self.assignments = assignments or {}

    async def find_assigned_agent(self, project_id, request_id):
        return self.assignments.get(request_id)
