"""
Database Models Package

This module exports all SQLAlchemy models for the call control plane.

Tables:
1. call_sessions - One record per call attempt
2. call_participants - Ordered participants with join/leave timing
3. project_call_quotas - Per-project call settings and usage counters
"""

from .database import (
    engine,
    AsyncSessionLocal,
    Base,
    init_db,
    close_db,
    build_engine,
    build_session_factory,
    utcnow,
)

from .call_participant import CallParticipant
from .call_session import (
    CallSession,
    CallStatus,
    CallType,
    ParticipantRole,
    AdmissionState,
    TERMINAL_STATUSES,
)
from .project_quota import ProjectQuota

__all__ = [
    # Database utilities
    "engine",
    "AsyncSessionLocal",
    "Base",
    "init_db",
    "close_db",
    "build_engine",
    "build_session_factory",
    "utcnow",

    # Models
    "CallSession",
    "CallStatus",
    "CallType",
    "ParticipantRole",
    "AdmissionState",
    "TERMINAL_STATUSES",
    "CallParticipant",
    "ProjectQuota",
]
