"""
Calls API - Endpoints for the call-session lifecycle

Implements:
- Agent, user and AI call initiation
- Accept / reject by the assigned agent
- Joining, ending and cancelling calls
- Active calls, history and live status queries
"""
from fastapi import APIRouter, Depends, Query

from callplane.api.deps import get_lifecycle
from callplane.api.errors import http_error
from callplane.config.constants import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from callplane.services.call import CallLifecycleManager
from callplane.services.exceptions import CallServiceError
from callplane.schemas.call import (
    AgentInitiateRequest,
    UserRequestCallRequest,
    AIInitiateRequest,
    AgentCallActionRequest,
    UserJoinRequest,
    EndCallRequest,
    CancelCallRequest,
    CallGrantResponse,
    EndCallResponse,
    CallStatusChangeResponse,
    ActiveCallsResponse,
    CallHistoryResponse,
    CallStatusResponse,
)

router = APIRouter(prefix="/calls", tags=["calls"])


@router.post("/agent-initiate", response_model=CallGrantResponse)
async def agent_initiate(
    req: AgentInitiateRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    """
    Agent starts a call for a support request.

    Requires the agent's feature toggle for the call type and a free
    admission slot in the project; returns an admin credential.
    """
    try:
        return await lifecycle.agent_initiate(
            req.agent_id, req.request_id, req.call_type.value, req.project_id
        )
    except CallServiceError as e:
        raise http_error(e)


@router.post("/user-request", response_model=CallGrantResponse)
async def user_request(
    req: UserRequestCallRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    """Customer asks for a call; the assigned agent's call rings."""
    try:
        return await lifecycle.user_request_call(
            req.user_id, req.request_id, req.call_type.value, req.project_id
        )
    except CallServiceError as e:
        raise http_error(e)


@router.post("/agent-accept", response_model=CallGrantResponse)
async def agent_accept(
    req: AgentCallActionRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.agent_accept_call(req.agent_id, req.call_id)
    except CallServiceError as e:
        raise http_error(e)


@router.post("/agent-reject", response_model=CallStatusChangeResponse)
async def agent_reject(
    req: AgentCallActionRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.reject_call(req.agent_id, req.call_id)
    except CallServiceError as e:
        raise http_error(e)


@router.post("/ai-initiate", response_model=CallGrantResponse)
async def ai_initiate(
    req: AIInitiateRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.ai_initiate_call(
            req.ai_agent_id, req.request_id, req.call_type.value, req.project_id
        )
    except CallServiceError as e:
        raise http_error(e)


@router.post("/user-join", response_model=CallGrantResponse)
async def user_join(
    req: UserJoinRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.user_join_call(req.user_id, req.call_id)
    except CallServiceError as e:
        raise http_error(e)


@router.post("/end", response_model=EndCallResponse)
async def end_call(
    req: EndCallRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    """End a call. Ending an already ended call succeeds with already_ended=true."""
    try:
        return await lifecycle.end_call(req.call_id, req.ended_by)
    except CallServiceError as e:
        raise http_error(e)


@router.post("/cancel", response_model=CallStatusChangeResponse)
async def cancel_call(
    req: CancelCallRequest,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.cancel_call(req.call_id, req.cancelled_by)
    except CallServiceError as e:
        raise http_error(e)


@router.get("/agent-active/{agent_id}", response_model=ActiveCallsResponse)
async def agent_active_calls(
    agent_id: str,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return {"calls": await lifecycle.get_active(agent_id)}
    except CallServiceError as e:
        raise http_error(e)


@router.get("/history/{agent_id}", response_model=CallHistoryResponse)
async def call_history(
    agent_id: str,
    limit: int = Query(HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.get_history(agent_id, limit, offset)
    except CallServiceError as e:
        raise http_error(e)


@router.get("/status/{call_id}", response_model=CallStatusResponse)
async def call_status(
    call_id: str,
    lifecycle: CallLifecycleManager = Depends(get_lifecycle),
):
    try:
        return await lifecycle.get_status(call_id)
    except CallServiceError as e:
        raise http_error(e)
