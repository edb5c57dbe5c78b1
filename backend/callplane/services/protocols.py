"""
Protocol definitions for the external collaborators of the call control plane.

This module defines interfaces (Python Protocols) that allow:
- Swapping implementations (e.g., LiveKit → another SFU provider)
- Testing without real provider credentials
- Clear contracts between the lifecycle manager and its collaborators

Usage:
    from callplane.services.protocols import RoomProvider

    async def provision(rooms: RoomProvider, name: str):
        handle = await rooms.create_room(name, 2, 300, {"call_id": "call_1"})
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class RoomHandle:
    """Room created on the provider side."""
    name: str
    sid: Optional[str] = None
    max_participants: Optional[int] = None
    empty_timeout: Optional[int] = None


@dataclass
class RoomInfo:
    """Live room state as reported by the provider."""
    name: str
    num_participants: int = 0
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParticipantInfo:
    """A participant currently connected to a provider room."""
    identity: str
    name: Optional[str] = None
    joined_at: Optional[datetime] = None
    state: Optional[str] = None


FEATURE_TOGGLES = ("audio", "video", "screen_share", "image_share", "file_share")


@dataclass
class AgentFeatures:
    """Per-agent call capabilities resolved from the feature store."""
    audio: bool = False
    video: bool = False
    screen_share: bool = False
    image_share: bool = False
    file_share: bool = False
    max_participants: int = 2
    max_call_minutes: int = 0
    plan: str = "starter"
    source: str = "default"

    def allows(self, call_type: str) -> bool:
        """Whether the agent may place or receive a call of this type."""
        if call_type == "audio":
            return self.audio
        if call_type == "video":
            return self.video
        if call_type == "screen_share":
            return self.screen_share
        return False

    def permits(self, permission: str) -> bool:
        """Whether a single capability toggle (audio, image_share, ...) is on."""
        return permission in FEATURE_TOGGLES and bool(getattr(self, permission))

    def to_features(self) -> Dict[str, Any]:
        """Stored `features` object: toggles and limits, without plan or source."""
        data = {name: getattr(self, name) for name in FEATURE_TOGGLES}
        data["max_participants"] = self.max_participants
        data["max_call_minutes"] = self.max_call_minutes
        return data


class RoomProvider(Protocol):
    """
    Interface for the real-time room provider.

    Implementations raise UpstreamError on provider failures.
    """

    async def create_room(
        self,
        name: str,
        max_participants: int,
        empty_timeout_seconds: int,
        metadata: Dict[str, Any],
    ) -> RoomHandle:
        ...

    async def delete_room(self, name: str) -> None:
        """Delete a room; deleting a room that does not exist succeeds."""
        ...

    async def list_rooms(self, names: List[str]) -> List[RoomInfo]:
        ...

    async def list_participants(self, room_name: str) -> List[ParticipantInfo]:
        ...


class CredentialIssuer(Protocol):
    """Interface for minting capability-scoped participant credentials."""

    def issue_credential(
        self,
        identity: str,
        display_name: str,
        room_name: str,
        is_admin: bool,
        call_type: str,
        ttl: timedelta,
    ) -> str:
        """Return an opaque credential string valid for `ttl` from now."""
        ...


class FeatureStore(Protocol):
    """
    Interface for the capability system of record.

    Treated as eventually consistent: reads must not raise, falling back
    to last-known or default values instead.
    """

    async def get_agent_features(self, agent_id: str) -> AgentFeatures:
        ...

    async def get_project_plan(self, project_id: str) -> str:
        ...

    async def update_agent_features(self, agent_id: str, plan: str, changes: Dict[str, Any]) -> AgentFeatures:
        """Merge `changes` into the stored features. Unlike reads, failures raise UpstreamError."""
        ...


class AgentDirectory(Protocol):
    """Interface for resolving the agent assigned to a support request."""

    async def find_assigned_agent(self, project_id: str, request_id: str) -> Optional[str]:
        ...
