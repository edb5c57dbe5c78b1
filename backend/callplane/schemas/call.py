from typing import List, Optional
from pydantic import BaseModel, Field

from callplane.models.call_session import CallType


class AgentInitiateRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)
    request_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    call_type: CallType = CallType.AUDIO


class UserRequestCallRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    request_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    call_type: CallType = CallType.AUDIO


class AIInitiateRequest(BaseModel):
    ai_agent_id: str = Field(..., min_length=1)
    request_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    call_type: CallType = CallType.AUDIO


class AgentCallActionRequest(BaseModel):
    """Accept or reject a ringing call."""
    agent_id: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)


class UserJoinRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)


class EndCallRequest(BaseModel):
    call_id: str = Field(..., min_length=1)
    ended_by: str = "system"


class CancelCallRequest(BaseModel):
    call_id: str = Field(..., min_length=1)
    cancelled_by: str = "system"


class ParticipantInfo(BaseModel):
    identity: str
    display_name: Optional[str]
    role: str
    joined_at: Optional[str]
    left_at: Optional[str]
    duration: Optional[int]


class CallSessionInfo(BaseModel):
    call_id: str
    room_name: Optional[str]
    request_id: str
    agent_id: str
    project_id: Optional[str]
    initiator: str
    initiator_id: Optional[str]
    call_type: str
    status: str
    ended_by: Optional[str]
    recording_enabled: bool
    created_at: Optional[str]
    started_at: Optional[str]
    ended_at: Optional[str]
    duration_seconds: Optional[int]
    participants: List[ParticipantInfo] = []


class CallGrantResponse(BaseModel):
    """Returned whenever a participant is handed a credential for a room."""
    call_id: str
    room_name: Optional[str]
    status: str
    token: str
    ws_url: str
    agent_id: Optional[str] = None
    session: CallSessionInfo


class EndCallResponse(BaseModel):
    call_id: str
    status: str
    duration: Optional[int]
    minutes: int
    already_ended: bool


class CallStatusChangeResponse(BaseModel):
    call_id: str
    status: str


class ActiveCallsResponse(BaseModel):
    calls: List[CallSessionInfo]


class CallHistoryResponse(BaseModel):
    calls: List[CallSessionInfo]
    total: int
    limit: int
    offset: int


class LiveRoomInfo(BaseModel):
    name: str
    num_participants: int
    created_at: Optional[str]


class LiveParticipantInfo(BaseModel):
    identity: str
    name: Optional[str]
    joined_at: Optional[str]
    state: Optional[str]


class CallStatusResponse(BaseModel):
    session: CallSessionInfo
    room: Optional[LiveRoomInfo]
    live_participants: List[LiveParticipantInfo]
