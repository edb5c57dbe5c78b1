"""
Call Module

Call-session lifecycle, persistence and the stale-call timeout policy.
"""
from .lifecycle import CallLifecycleManager
from .store import SessionStore
from .sweeper import StaleCallSweeper
from .state import ALLOWED_TRANSITIONS, can_transition, ensure_transition

__all__ = [
    "CallLifecycleManager",
    "SessionStore",
    "StaleCallSweeper",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "ensure_transition",
]
