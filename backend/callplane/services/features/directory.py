"""
Agent Directory - resolves the agent assigned to a support request (Tiledesk REST).
"""
import logging
from typing import Optional

import httpx

from callplane.config.constants import HTTP_TIMEOUT_SEC
from callplane.services.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class TiledeskAgentDirectory:
    """AgentDirectory backed by `GET /{project_id}/requests/{request_id}`."""

    def __init__(self, base_url: Optional[str], token: Optional[str], client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self._client = client

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def find_assigned_agent(self, project_id: str, request_id: str) -> Optional[str]:
        if not self.base_url:
            logger.warning("[Directory] TILEDESK_API_URL not configured, no agent can be resolved")
            return None

        client = self._ensure_client()
        try:
            response = await client.get(
                f"{self.base_url}/{project_id}/requests/{request_id}",
                headers={"Authorization": self.token or ""},
            )
        except httpx.HTTPError as e:
            raise UpstreamError("Agent directory unavailable") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise UpstreamError(f"Agent directory returned {response.status_code}")

        try:
            request = response.json()
        except ValueError as e:
            raise UpstreamError("Agent directory returned malformed data") from e

        agents = request.get("participantsAgents") or []
        if not agents:
            logger.info(f"[Directory] Request {request_id} has no assigned agent")
            return None
        return str(agents[0])
