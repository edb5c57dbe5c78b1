"""
CallParticipant Model - Per-Participant Call Timing

Participants are kept in join order on their session.
"""
import math
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey

from .database import Base


class CallParticipant(Base):
    """Participant in a call"""
    __tablename__ = "call_participants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    session_id = Column(
        String(36), ForeignKey("call_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)

    # Provider identity ({role}_{id}) and display name
    identity = Column(String(160), nullable=False)
    display_name = Column(String(120), nullable=True)
    role = Column(String(10), nullable=False)

    # Timing
    joined_at = Column(DateTime, nullable=True)
    left_at = Column(DateTime, nullable=True)  # NULL = still in call
    duration_seconds = Column(Integer, nullable=True)

    def leave(self, left_at: datetime) -> None:
        """Mark participant as left and derive time spent in the call."""
        self.left_at = left_at
        if self.joined_at is not None:
            self.duration_seconds = math.floor((left_at - self.joined_at).total_seconds())

    def to_dict(self):
        return {
            "identity": self.identity,
            "display_name": self.display_name,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "left_at": self.left_at.isoformat() if self.left_at else None,
            "duration": self.duration_seconds,
        }
