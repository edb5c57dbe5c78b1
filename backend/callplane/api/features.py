"""
Agent Features API - per-agent call capabilities

Reads go through the cached feature store and never fail; updates are
written to the system of record first.
"""
from fastapi import APIRouter, Depends, Query

from callplane.api.deps import get_feature_store
from callplane.api.errors import http_error
from callplane.services.exceptions import CallServiceError
from callplane.services.features import CachedFeatureStore
from callplane.services.protocols import AgentFeatures
from callplane.schemas.features import (
    Permission,
    UpdateAgentFeaturesRequest,
    AgentFeaturesResponse,
    PermissionCheckResponse,
)

router = APIRouter(prefix="/features", tags=["features"])


def _response(agent_id: str, features: AgentFeatures) -> dict:
    return {
        "agent_id": agent_id,
        "plan": features.plan,
        "source": features.source,
        "features": features.to_features(),
    }


# Declared before /{agent_id} so the literal path wins
@router.get("/check-permission", response_model=PermissionCheckResponse)
async def check_permission(
    agent_id: str = Query(..., min_length=1),
    permission: Permission = Query(...),
    store: CachedFeatureStore = Depends(get_feature_store),
):
    features = await store.get_agent_features(agent_id)
    return {"agent_id": agent_id, "permission": permission, "allowed": features.permits(permission)}


@router.get("/{agent_id}", response_model=AgentFeaturesResponse)
async def get_agent_features(
    agent_id: str,
    store: CachedFeatureStore = Depends(get_feature_store),
):
    """Current capabilities; `source` tells whether they are live, cached or defaults."""
    return _response(agent_id, await store.get_agent_features(agent_id))


@router.put("/{agent_id}", response_model=AgentFeaturesResponse)
async def update_agent_features(
    agent_id: str,
    req: UpdateAgentFeaturesRequest,
    store: CachedFeatureStore = Depends(get_feature_store),
):
    changes = req.features.model_dump(exclude_none=True)
    try:
        features = await store.update_agent_features(agent_id, req.plan, changes)
    except CallServiceError as e:
        raise http_error(e)
    return _response(agent_id, features)
