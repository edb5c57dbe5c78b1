"""
Admission Control - quota-gated decisions on whether a call may start.

Single Responsibility: own every mutation of ProjectQuota usage counters.
Reads evaluate the limits in priority order; reservations are delegated to
the store's atomic conditional update so that concurrent requests can never
push a project past its limits.
"""
import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from callplane.config.constants import DEFAULT_PLAN
from callplane.models.database import utcnow
from callplane.models.project_quota import ProjectQuota
from callplane.schemas.quota import QuotaSettingsUpdate
from callplane.services import metrics
from callplane.services.exceptions import NotFoundError, ValidationError
from callplane.services.plans import normalize_plan, resolve
from callplane.services.protocols import FeatureStore
from callplane.services.quota.store import QuotaStore, TYPE_TOGGLES

logger = logging.getLogger(__name__)

# Bounded retries when the conditional update loses a race but a re-read shows room
RESERVE_ATTEMPTS = 3

REASON_DISABLED = "calls disabled"
REASON_CONCURRENT = "concurrent limit reached"
REASON_MONTHLY = "monthly limit reached"


@dataclass
class AdmissionDecision:
    project_id: str
    call_type: str
    allowed: bool
    reason: Optional[str] = None
    recording_enabled: bool = False


def evaluate(quota: Optional[ProjectQuota], call_type: str) -> Optional[str]:
    """
    Return the denial reason for a usage snapshot, or None when allowed.

    Reasons are checked in priority order: disabled, per-type toggle,
    concurrency, monthly volume.
    """
    if quota is None or not quota.enabled:
        return REASON_DISABLED
    toggle = TYPE_TOGGLES.get(call_type)
    if toggle is None or not getattr(quota, toggle.key):
        return f"{call_type} calls disabled"
    if quota.concurrent_calls_now >= quota.max_concurrent_calls:
        return REASON_CONCURRENT
    if quota.monthly_call_limit > 0 and quota.calls_this_month >= quota.monthly_call_limit:
        return REASON_MONTHLY
    return None


def add_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the month's last day."""
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class AdmissionController:
    """Evaluates and reserves per-project call capacity."""

    def __init__(self, store: QuotaStore, features: Optional[FeatureStore] = None):
        self.store = store
        self.features = features

    async def _default_plan(self, project_id: str) -> str:
        if self.features is None:
            return DEFAULT_PLAN
        return normalize_plan(await self.features.get_project_plan(project_id))

    async def get_quota(self, project_id: str) -> ProjectQuota:
        """Return the project's quota, creating it from its plan on first access."""
        if not project_id:
            raise ValidationError("project_id is required")
        quota = await self.store.get(project_id)
        if quota is not None:
            return quota

        plan = await self._default_plan(project_id)
        logger.info(f"[Admission] Creating quota for project {project_id} from plan '{plan}'")
        return await self.store.create(project_id, plan, resolve(plan).to_settings())

    async def check_admission(self, project_id: str, call_type: str) -> AdmissionDecision:
        """Read-only admission check; never mutates usage."""
        quota = await self.get_quota(project_id)
        reason = evaluate(quota, call_type)
        return AdmissionDecision(project_id, call_type, allowed=reason is None, reason=reason)

    async def reserve(self, project_id: str, call_type: str) -> AdmissionDecision:
        """
        Atomically take one concurrent slot and count one monthly call.

        The limit check and the increment happen in one conditional UPDATE.
        A failed update is explained by re-reading the quota.
        """
        quota = await self.get_quota(project_id)

        reason = None
        for _ in range(RESERVE_ATTEMPTS):
            if await self.store.try_reserve(project_id, call_type):
                metrics.admission_decisions.labels(outcome="allowed", reason="").inc()
                logger.info(f"[Admission] Reserved {call_type} slot for project {project_id}")
                return AdmissionDecision(
                    project_id, call_type, allowed=True, recording_enabled=bool(quota.call_recording)
                )
            reason = evaluate(await self.store.get(project_id), call_type)
            if reason is not None:
                break
        reason = reason or REASON_CONCURRENT

        metrics.admission_decisions.labels(outcome="denied", reason=reason).inc()
        logger.info(f"[Admission] Denied {call_type} call for project {project_id}: {reason}")
        return AdmissionDecision(project_id, call_type, allowed=False, reason=reason)

    async def release(self, project_id: str) -> None:
        """Give back one concurrent slot (floored at zero)."""
        released = await self.store.decrement_concurrent(project_id)
        if not released:
            logger.warning(f"[Admission] Release for project {project_id} found no slot to free")
        else:
            logger.info(f"[Admission] Released slot for project {project_id}")

    async def record_minutes(self, project_id: str, duration_seconds: Optional[int]) -> int:
        """Add the call's duration, rounded up to whole minutes."""
        minutes = math.ceil(max(duration_seconds or 0, 0) / 60)
        if minutes:
            await self.store.add_minutes(project_id, minutes)
        return minutes

    async def reset_monthly_usage(self, project_id: str) -> datetime:
        """Start a new billing cycle; concurrency is left untouched."""
        await self.get_quota(project_id)
        reset_at = utcnow()
        await self.store.reset_usage(project_id, reset_at)
        logger.info(f"[Admission] Monthly usage reset for project {project_id}")
        return reset_at

    async def update_settings(self, project_id: str, updates: Mapping) -> ProjectQuota:
        """Merge a partial settings payload; unknown or mistyped keys are rejected."""
        try:
            parsed = QuotaSettingsUpdate.model_validate(dict(updates or {}))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e.errors(include_url=False)}") from e

        await self.get_quota(project_id)
        quota = await self.store.update_settings(project_id, parsed.model_dump(exclude_unset=True))
        if quota is None:
            raise NotFoundError(f"Project {project_id} not found")
        return quota

    async def apply_plan(self, project_id: str, plan_name: str) -> ProjectQuota:
        """Re-derive every setting from a plan; usage counters are kept."""
        plan = normalize_plan(plan_name)
        await self.get_quota(project_id)
        quota = await self.store.update_settings(
            project_id, resolve(plan).to_settings(), plan=plan
        )
        if quota is None:
            raise NotFoundError(f"Project {project_id} not found")
        logger.info(f"[Admission] Project {project_id} moved to plan '{plan}'")
        return quota

    async def get_usage(self, project_id: str) -> dict:
        """Usage report with remaining capacity and the next reset date."""
        quota = await self.get_quota(project_id)
        unlimited = quota.monthly_call_limit <= 0
        last_reset = quota.last_reset_date
        return {
            "project_id": project_id,
            "current_month": {
                "calls": quota.calls_this_month,
                "minutes": quota.total_call_minutes,
                "concurrent_now": quota.concurrent_calls_now,
            },
            "limits": {
                "max_concurrent": quota.max_concurrent_calls,
                "max_monthly": quota.monthly_call_limit,
                "max_duration": quota.max_call_duration,
            },
            "remaining": {
                "calls": "unlimited" if unlimited
                else max(0, quota.monthly_call_limit - quota.calls_this_month),
                "concurrent": max(0, quota.max_concurrent_calls - quota.concurrent_calls_now),
            },
            "last_reset": last_reset.isoformat() if last_reset else None,
            "next_reset": add_month(last_reset).isoformat() if last_reset else None,
        }
