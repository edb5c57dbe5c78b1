"""
Call state machine.

pending  -> active | ended | cancelled
ringing  -> active | ended | missed | rejected | cancelled
active   -> ended
Terminal states have no outgoing transitions.
"""
from callplane.models.call_session import CallStatus
from callplane.services.exceptions import InvalidTransitionError

ALLOWED_TRANSITIONS = {
    CallStatus.PENDING.value: frozenset({
        CallStatus.ACTIVE.value,
        CallStatus.ENDED.value,
        CallStatus.CANCELLED.value,
    }),
    CallStatus.RINGING.value: frozenset({
        CallStatus.ACTIVE.value,
        CallStatus.ENDED.value,
        CallStatus.MISSED.value,
        CallStatus.REJECTED.value,
        CallStatus.CANCELLED.value,
    }),
    CallStatus.ACTIVE.value: frozenset({CallStatus.ENDED.value}),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(call_id: str, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(call_id, current, target)


def sources_for(target: str) -> list:
    """Statuses from which `target` may be reached."""
    return [status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets]
