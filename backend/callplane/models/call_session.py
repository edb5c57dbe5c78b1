"""
CallSession Model - One record per call attempt

Tracks who started the call, the provider room, status and timing.
"""
import enum
import math
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from callplane.config.constants import CALL_ID_PREFIX
from .database import Base, utcnow
from .call_participant import CallParticipant


class CallStatus(str, enum.Enum):
    PENDING = "pending"
    RINGING = "ringing"
    ACTIVE = "active"
    ENDED = "ended"
    MISSED = "missed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    CallStatus.ENDED.value,
    CallStatus.MISSED.value,
    CallStatus.REJECTED.value,
    CallStatus.CANCELLED.value,
})


class CallType(str, enum.Enum):
    AUDIO = "audio"
    VIDEO = "video"
    SCREEN_SHARE = "screen_share"


class ParticipantRole(str, enum.Enum):
    AGENT = "agent"
    USER = "user"
    AI = "ai"


class AdmissionState(str, enum.Enum):
    """Whether this session holds a concurrent-call slot in its project quota."""
    NONE = "none"
    RESERVED = "reserved"
    RELEASED = "released"


def new_call_id() -> str:
    return f"{CALL_ID_PREFIX}{uuid.uuid4()}"


class CallSession(Base):
    """Call session model"""
    __tablename__ = "call_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Core identifiers
    call_id = Column(String(64), unique=True, nullable=False, index=True, default=new_call_id)
    room_name = Column(String(128), nullable=True, index=True)

    # Support request references
    request_id = Column(String(128), nullable=False, index=True)
    agent_id = Column(String(128), nullable=False, index=True)
    project_id = Column(String(128), nullable=True, index=True)

    # Who started the call
    initiator = Column(String(10), nullable=False)
    initiator_id = Column(String(128), nullable=True)

    # Call details
    call_type = Column(String(20), nullable=False, default=CallType.AUDIO.value)
    status = Column(String(20), nullable=False, default=CallStatus.PENDING.value)
    ended_by = Column(String(50), nullable=True)
    recording_enabled = Column(Boolean, nullable=False, default=False)
    admission_state = Column(String(10), nullable=False, default=AdmissionState.NONE.value)

    # Timing
    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    participants = relationship(
        CallParticipant,
        order_by=CallParticipant.position,
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_call_sessions_request_status", "request_id", "status"),
        Index("ix_call_sessions_agent_created", "agent_id", "created_at"),
        Index("ix_call_sessions_status_created", "status", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_settled(self) -> bool:
        """False for a terminal session whose timing was never written back."""
        if not self.is_terminal or self.ended_at is None:
            return True
        if self.started_at is not None and self.duration_seconds is None:
            return False
        return not any(p.joined_at is not None and p.left_at is None for p in self.participants)

    def assign_room(self, room_name: str) -> None:
        """Room name is written once; later writes must repeat the same name."""
        if self.room_name and self.room_name != room_name:
            raise ValueError(f"Call {self.call_id} already bound to room {self.room_name}")
        self.room_name = room_name

    def find_open_participant(self, identity: str) -> Optional[CallParticipant]:
        for participant in self.participants:
            if participant.identity == identity and participant.left_at is None:
                return participant
        return None

    def finalize(self, ended_at: datetime) -> None:
        """Stamp end time, derive duration and close every open participant."""
        self.ended_at = ended_at
        if self.started_at is not None:
            self.duration_seconds = math.floor((ended_at - self.started_at).total_seconds())
        for participant in self.participants:
            if participant.joined_at is not None and participant.left_at is None:
                participant.leave(ended_at)

    def to_dict(self, include_participants: bool = True):
        data = {
            "call_id": self.call_id,
            "room_name": self.room_name,
            "request_id": self.request_id,
            "agent_id": self.agent_id,
            "project_id": self.project_id,
            "initiator": self.initiator,
            "initiator_id": self.initiator_id,
            "call_type": self.call_type,
            "status": self.status,
            "ended_by": self.ended_by,
            "recording_enabled": self.recording_enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
        }
        if include_participants:
            data["participants"] = [p.to_dict() for p in self.participants]
        return data
