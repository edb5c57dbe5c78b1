"""
Call Service Exceptions

Error taxonomy shared by the lifecycle manager, the admission controller
and the stores. The API layer maps each family to an HTTP status.
"""


class CallServiceError(Exception):
    """Base exception for call service errors"""
    pass


class ValidationError(CallServiceError):
    """Raised when required fields are missing or malformed (before any side effect)"""
    pass


class InvalidTransitionError(ValidationError):
    """Raised when a session cannot move from its current status to the requested one"""

    def __init__(self, call_id: str, current: str, target: str):
        self.call_id = call_id
        self.current = current
        self.target = target
        super().__init__(f"Call {call_id} cannot move from '{current}' to '{target}'")


class NotFoundError(CallServiceError):
    """Raised when a call, project or agent is unknown"""
    pass


class CallNotFoundError(NotFoundError):
    """Raised when call is not found"""
    pass


class AgentNotFoundError(NotFoundError):
    """Raised when no agent is assigned to a support request"""
    pass


class PermissionDeniedError(CallServiceError):
    """Raised when an operation is refused; `reason` is safe to show to callers"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class FeatureDisabledError(PermissionDeniedError):
    """Raised when the agent's feature set does not allow the call type"""
    pass


class NotAssignedError(PermissionDeniedError):
    """Raised when an agent acts on a call assigned to someone else"""
    pass


class AdmissionDeniedError(PermissionDeniedError):
    """Raised when the project quota refuses a new call"""

    def __init__(self, project_id: str, reason: str):
        self.project_id = project_id
        super().__init__(reason)


class UpstreamError(CallServiceError):
    """Raised when the room/credential provider or another external service fails"""
    pass


class PersistenceError(CallServiceError):
    """Raised when the database fails; message is generic, detail is logged"""
    pass
