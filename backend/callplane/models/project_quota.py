"""
ProjectQuota Model - Per-Project Call Settings and Usage

Settings are derived from the project's plan on first access and may be
overridden afterwards. Usage counters are only written by the admission
controller.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer

from .database import Base, utcnow
from callplane.config.constants import DEFAULT_MAX_CALL_DURATION_SEC, DEFAULT_PLAN

SETTINGS_FIELDS = (
    "enabled",
    "audio_calls",
    "video_calls",
    "screen_sharing",
    "call_recording",
    "max_concurrent_calls",
    "max_call_duration",
    "monthly_call_limit",
    "video_quality",
    "audio_quality",
    "show_call_button",
    "require_precall_test",
)

USAGE_FIELDS = (
    "calls_this_month",
    "total_call_minutes",
    "concurrent_calls_now",
    "last_reset_date",
)


class ProjectQuota(Base):
    """Call settings and live usage for one project"""
    __tablename__ = "project_call_quotas"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(128), unique=True, nullable=False, index=True)
    plan = Column(String(32), nullable=False, default=DEFAULT_PLAN)

    # Feature toggles
    enabled = Column(Boolean, nullable=False, default=False, index=True)
    audio_calls = Column(Boolean, nullable=False, default=False)
    video_calls = Column(Boolean, nullable=False, default=False)
    screen_sharing = Column(Boolean, nullable=False, default=False)
    call_recording = Column(Boolean, nullable=False, default=False)

    # Limits
    max_concurrent_calls = Column(Integer, nullable=False, default=0)
    max_call_duration = Column(Integer, nullable=False, default=DEFAULT_MAX_CALL_DURATION_SEC)
    monthly_call_limit = Column(Integer, nullable=False, default=0)  # <= 0 means unlimited

    # Quality / UI
    video_quality = Column(String(10), nullable=False, default="medium")
    audio_quality = Column(String(10), nullable=False, default="medium")
    show_call_button = Column(Boolean, nullable=False, default=True)
    require_precall_test = Column(Boolean, nullable=False, default=False)

    # Usage
    calls_this_month = Column(Integer, nullable=False, default=0)
    total_call_minutes = Column(Integer, nullable=False, default=0)
    concurrent_calls_now = Column(Integer, nullable=False, default=0)
    last_reset_date = Column(DateTime, nullable=False, default=utcnow)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def settings(self) -> dict:
        return {name: getattr(self, name) for name in SETTINGS_FIELDS}

    @property
    def usage(self) -> dict:
        return {name: getattr(self, name) for name in USAGE_FIELDS}

    def to_dict(self):
        usage = self.usage
        usage["last_reset_date"] = (
            self.last_reset_date.isoformat() if self.last_reset_date else None
        )
        return {
            "project_id": self.project_id,
            "plan": self.plan,
            "settings": self.settings,
            "usage": usage,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
