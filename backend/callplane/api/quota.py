"""
Call Features API - per-project call settings, usage and admission checks
"""
from datetime import datetime

from fastapi import APIRouter, Depends

from callplane.api.deps import get_admission
from callplane.api.errors import http_error
from callplane.services.exceptions import CallServiceError
from callplane.services.quota import AdmissionController
from callplane.schemas.quota import (
    UpdateQuotaRequest,
    ApplyPlanRequest,
    CheckAdmissionRequest,
    AdmissionResponse,
    QuotaResponse,
    UsageResponse,
    ResetUsageResponse,
)

router = APIRouter(prefix="/projects/{project_id}/call-features", tags=["call-features"])


@router.get("", response_model=QuotaResponse)
async def get_call_features(
    project_id: str,
    admission: AdmissionController = Depends(get_admission),
):
    """Current settings and usage; created from the project's plan on first access."""
    try:
        quota = await admission.get_quota(project_id)
    except CallServiceError as e:
        raise http_error(e)
    return quota.to_dict()


@router.put("", response_model=QuotaResponse)
async def update_call_features(
    project_id: str,
    req: UpdateQuotaRequest,
    admission: AdmissionController = Depends(get_admission),
):
    """Merge a partial settings update. Unknown keys are rejected."""
    try:
        quota = await admission.update_settings(project_id, req.settings)
    except CallServiceError as e:
        raise http_error(e)
    return quota.to_dict()


@router.get("/usage", response_model=UsageResponse)
async def get_call_usage(
    project_id: str,
    admission: AdmissionController = Depends(get_admission),
):
    try:
        return await admission.get_usage(project_id)
    except CallServiceError as e:
        raise http_error(e)


@router.post("/check", response_model=AdmissionResponse)
async def check_admission(
    project_id: str,
    req: CheckAdmissionRequest,
    admission: AdmissionController = Depends(get_admission),
):
    """Read-only: would a call of this type be admitted right now?"""
    try:
        decision = await admission.check_admission(project_id, req.call_type.value)
    except CallServiceError as e:
        raise http_error(e)
    return AdmissionResponse(
        project_id=decision.project_id,
        call_type=decision.call_type,
        allowed=decision.allowed,
        reason=decision.reason,
    )


@router.post("/plan", response_model=QuotaResponse)
async def apply_plan(
    project_id: str,
    req: ApplyPlanRequest,
    admission: AdmissionController = Depends(get_admission),
):
    try:
        quota = await admission.apply_plan(project_id, req.plan)
    except CallServiceError as e:
        raise http_error(e)
    return quota.to_dict()


@router.post("/reset-usage", response_model=ResetUsageResponse)
async def reset_usage(
    project_id: str,
    admission: AdmissionController = Depends(get_admission),
):
    try:
        reset_at: datetime = await admission.reset_monthly_usage(project_id)
    except CallServiceError as e:
        raise http_error(e)
    return ResetUsageResponse(
        project_id=project_id,
        reset_date=reset_at.isoformat(),
        message="Monthly usage reset",
    )
