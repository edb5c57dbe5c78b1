"""
Feature Store - agent capabilities and project plans.

Reads the system of record (Supabase PostgREST) over httpx and keeps the
last value seen per key in Redis. The system of record is eventually
consistent and may be unreachable, so lookups never raise: on failure they
fall back to the last-known value, then to defaults.
"""
import json
import logging
from typing import Any, Callable, Awaitable, Dict, Optional

import httpx
import redis.asyncio as redis

from callplane.config.constants import DEFAULT_PLAN, HTTP_TIMEOUT_SEC
from callplane.services.exceptions import UpstreamError
from callplane.services.protocols import AgentFeatures, FEATURE_TOGGLES

logger = logging.getLogger(__name__)

AGENT_FEATURES_TABLE = "agent_features"
PROJECT_PLANS_TABLE = "project_plans"


def parse_features(plan: Optional[str], raw: Optional[Dict[str, Any]], source: str) -> AgentFeatures:
    """Build AgentFeatures from a stored row, filling gaps with defaults."""
    raw = raw or {}
    features = AgentFeatures(source=source)
    if plan:
        features.plan = plan
    for name in FEATURE_TOGGLES:
        if name in raw:
            setattr(features, name, bool(raw[name]))
    for name in ("max_participants", "max_call_minutes"):
        try:
            if raw.get(name) is not None:
                setattr(features, name, int(raw[name]))
        except (TypeError, ValueError):
            logger.warning(f"[Features] Ignoring non-numeric {name}={raw[name]!r}")
    return features


class CachedFeatureStore:
    """FeatureStore over Supabase PostgREST with a Redis last-known cache."""

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        get_redis: Optional[Callable[[], Awaitable[redis.Redis]]] = None,
        cache_ttl: int = 86400,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self._get_redis = get_redis
        self.cache_ttl = cache_ttl
        self._client = client

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # === Cache ===

    async def _cache_get(self, key: str) -> Optional[dict]:
        if self._get_redis is None:
            return None
        try:
            r = await self._get_redis()
            raw = await r.get(key)
            return json.loads(raw) if raw else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"[Features] Cache read failed for {key}: {e}")
            return None

    async def _cache_set(self, key: str, value: dict) -> None:
        if self._get_redis is None:
            return
        try:
            r = await self._get_redis()
            await r.set(key, json.dumps(value), ex=self.cache_ttl)
        except redis.RedisError as e:
            logger.warning(f"[Features] Cache write failed for {key}: {e}")

    # === System of record ===

    async def _select_one(self, table: str, column: str, value: str, fields: str) -> Optional[dict]:
        """First matching row, None when there is none. Raises httpx.HTTPError on failure."""
        client = self._ensure_client()
        response = await client.get(
            f"{self.base_url}/rest/v1/{table}",
            params={column: f"eq.{value}", "select": fields, "limit": "1"},
            headers={
                "apikey": self.api_key or "",
                "Authorization": f"Bearer {self.api_key or ''}",
                "Accept": "application/json",
            },
        )
        response.raise_for_status()
        rows = response.json()
        return rows[0] if rows else None

    async def get_agent_features(self, agent_id: str) -> AgentFeatures:
        cache_key = f"features:agent:{agent_id}"

        if self.base_url:
            try:
                row = await self._select_one(AGENT_FEATURES_TABLE, "agent_id", agent_id, "plan,features")
                if row is not None:
                    await self._cache_set(cache_key, row)
                    return parse_features(row.get("plan"), row.get("features"), "supabase")
                logger.info(f"[Features] No feature row for agent {agent_id}, using defaults")
                return AgentFeatures()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"[Features] Lookup failed for agent {agent_id}: {e}")

        cached = await self._cache_get(cache_key)
        if cached is not None:
            return parse_features(cached.get("plan"), cached.get("features"), "cache")
        return AgentFeatures()

    async def get_project_plan(self, project_id: str) -> str:
        cache_key = f"features:project_plan:{project_id}"

        if self.base_url:
            try:
                row = await self._select_one(PROJECT_PLANS_TABLE, "project_id", project_id, "plan")
                if row is not None and row.get("plan"):
                    await self._cache_set(cache_key, row)
                    return row["plan"]
                return DEFAULT_PLAN
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"[Features] Plan lookup failed for project {project_id}: {e}")

        cached = await self._cache_get(cache_key)
        if cached and cached.get("plan"):
            return cached["plan"]
        return DEFAULT_PLAN

    # === Writes ===

    async def update_agent_features(self, agent_id: str, plan: str, changes: Dict[str, Any]) -> AgentFeatures:
        """
        Merge `changes` into the agent's stored features and upsert the row.

        The write goes to the system of record first; the cache is only
        refreshed once it succeeded. Failures raise UpstreamError.
        """
        if not self.base_url:
            raise UpstreamError("Feature store is not configured")

        current = await self.get_agent_features(agent_id)
        features = current.to_features()
        features.update(changes)
        row = {"agent_id": agent_id, "plan": plan, "features": features}

        client = self._ensure_client()
        try:
            response = await client.post(
                f"{self.base_url}/rest/v1/{AGENT_FEATURES_TABLE}",
                params={"on_conflict": "agent_id"},
                json=row,
                headers={
                    "apikey": self.api_key or "",
                    "Authorization": f"Bearer {self.api_key or ''}",
                    "Prefer": "resolution=merge-duplicates,return=minimal",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ [Features] Update failed for agent {agent_id}: {e}")
            raise UpstreamError("Feature store rejected the update") from e

        await self._cache_set(f"features:agent:{agent_id}", row)
        logger.info(f"✅ [Features] Agent {agent_id} features updated (plan '{plan}')")
        return parse_features(plan, features, "supabase")
