"""
Plan Resolution

Maps a subscription plan name to the call capabilities and limits it grants.
Pure lookup: no state, no I/O, never raises.
"""
from dataclasses import dataclass
from typing import Optional

from callplane.config.constants import (
    DEFAULT_MAX_CALL_DURATION_SEC,
    DEFAULT_PLAN,
    UNLIMITED,
)


@dataclass(frozen=True)
class CapabilitySet:
    allows_calls: bool
    audio_calls: bool
    video_calls: bool
    screen_sharing: bool
    call_recording: bool
    max_concurrent_calls: int
    monthly_call_limit: int  # UNLIMITED (-1) for no limit

    def to_settings(self) -> dict:
        """Default project quota settings for this capability set."""
        return {
            "enabled": self.allows_calls,
            "audio_calls": self.audio_calls,
            "video_calls": self.video_calls,
            "screen_sharing": self.screen_sharing,
            "call_recording": self.call_recording,
            "max_concurrent_calls": self.max_concurrent_calls,
            "max_call_duration": DEFAULT_MAX_CALL_DURATION_SEC,
            "monthly_call_limit": self.monthly_call_limit,
            "video_quality": "medium",
            "audio_quality": "medium",
            "show_call_button": True,
            "require_precall_test": False,
        }


PLANS = {
    "free": CapabilitySet(
        allows_calls=False,
        audio_calls=False,
        video_calls=False,
        screen_sharing=False,
        call_recording=False,
        max_concurrent_calls=0,
        monthly_call_limit=0,
    ),
    "basic": CapabilitySet(
        allows_calls=True,
        audio_calls=True,
        video_calls=False,
        screen_sharing=False,
        call_recording=False,
        max_concurrent_calls=1,
        monthly_call_limit=100,
    ),
    "pro": CapabilitySet(
        allows_calls=True,
        audio_calls=True,
        video_calls=True,
        screen_sharing=True,
        call_recording=False,
        max_concurrent_calls=2,
        monthly_call_limit=500,
    ),
    "enterprise": CapabilitySet(
        allows_calls=True,
        audio_calls=True,
        video_calls=True,
        screen_sharing=True,
        call_recording=True,
        max_concurrent_calls=10,
        monthly_call_limit=UNLIMITED,
    ),
    "custom": CapabilitySet(
        allows_calls=True,
        audio_calls=True,
        video_calls=True,
        screen_sharing=True,
        call_recording=True,
        max_concurrent_calls=1000,
        monthly_call_limit=UNLIMITED,
    ),
}


def normalize_plan(plan_name: Optional[str]) -> str:
    """Canonical plan key. Matching is exact: unknown or differently-cased
    names collapse to the default plan."""
    return plan_name if plan_name in PLANS else DEFAULT_PLAN


def resolve(plan_name: Optional[str]) -> CapabilitySet:
    return PLANS[normalize_plan(plan_name)]
