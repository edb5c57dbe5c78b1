from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from callplane.config.constants import VIDEO_QUALITIES, AUDIO_QUALITIES
from callplane.models.call_session import CallType


class QuotaSettingsUpdate(BaseModel):
    """Partial settings update. Unknown keys are rejected, never merged."""
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    audio_calls: Optional[bool] = None
    video_calls: Optional[bool] = None
    screen_sharing: Optional[bool] = None
    call_recording: Optional[bool] = None
    max_concurrent_calls: Optional[int] = Field(None, ge=0)
    max_call_duration: Optional[int] = Field(None, ge=0)
    monthly_call_limit: Optional[int] = None  # <= 0 means unlimited
    video_quality: Optional[str] = None
    audio_quality: Optional[str] = None
    show_call_button: Optional[bool] = None
    require_precall_test: Optional[bool] = None

    @field_validator("video_quality")
    @classmethod
    def validate_video_quality(cls, v):
        if v is not None and v not in VIDEO_QUALITIES:
            raise ValueError(f"video_quality must be one of {', '.join(VIDEO_QUALITIES)}")
        return v

    @field_validator("audio_quality")
    @classmethod
    def validate_audio_quality(cls, v):
        if v is not None and v not in AUDIO_QUALITIES:
            raise ValueError(f"audio_quality must be one of {', '.join(AUDIO_QUALITIES)}")
        return v


class UpdateQuotaRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    settings: dict


class ApplyPlanRequest(BaseModel):
    plan: str


class CheckAdmissionRequest(BaseModel):
    call_type: CallType = CallType.AUDIO


class AdmissionResponse(BaseModel):
    project_id: str
    call_type: str
    allowed: bool
    reason: Optional[str] = None


class QuotaSettings(BaseModel):
    enabled: bool
    audio_calls: bool
    video_calls: bool
    screen_sharing: bool
    call_recording: bool
    max_concurrent_calls: int
    max_call_duration: int
    monthly_call_limit: int
    video_quality: str
    audio_quality: str
    show_call_button: bool
    require_precall_test: bool


class QuotaUsage(BaseModel):
    calls_this_month: int
    total_call_minutes: int
    concurrent_calls_now: int
    last_reset_date: Optional[str]


class QuotaResponse(BaseModel):
    project_id: str
    plan: str
    settings: QuotaSettings
    usage: QuotaUsage
    updated_at: Optional[str]


class UsageResponse(BaseModel):
    project_id: str
    current_month: dict
    limits: dict
    remaining: dict
    last_reset: Optional[str]
    next_reset: Optional[str]


class ResetUsageResponse(BaseModel):
    project_id: str
    reset_date: str
    message: str
