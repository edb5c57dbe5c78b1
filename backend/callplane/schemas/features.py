from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Permission = Literal["audio", "video", "screen_share", "image_share", "file_share"]


class AgentFeatureChanges(BaseModel):
    """Partial feature update; unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    audio: Optional[bool] = None
    video: Optional[bool] = None
    screen_share: Optional[bool] = None
    image_share: Optional[bool] = None
    file_share: Optional[bool] = None
    max_participants: Optional[int] = Field(None, ge=2)
    max_call_minutes: Optional[int] = Field(None, ge=0)


class UpdateAgentFeaturesRequest(BaseModel):
    plan: str = Field("custom", min_length=1)
    features: AgentFeatureChanges


class AgentFeatureSet(BaseModel):
    audio: bool
    video: bool
    screen_share: bool
    image_share: bool
    file_share: bool
    max_participants: int
    max_call_minutes: int


class AgentFeaturesResponse(BaseModel):
    agent_id: str
    plan: str
    source: str  # supabase, cache or default
    features: AgentFeatureSet


class PermissionCheckResponse(BaseModel):
    agent_id: str
    permission: str
    allowed: bool
