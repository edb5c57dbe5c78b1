"""
Dependency providers for the API layer.

Each collaborator is built once on first use and shared afterwards.
Tests replace `get_lifecycle` / `get_admission` through
`app.dependency_overrides`.
"""
import logging
from functools import lru_cache

from callplane.config.redis import get_redis
from callplane.config.settings import settings
from callplane.models.database import AsyncSessionLocal
from callplane.services.call import CallLifecycleManager, SessionStore, StaleCallSweeper
from callplane.services.features import CachedFeatureStore, TiledeskAgentDirectory
from callplane.services.livekit import LiveKitRoomProvider, LiveKitCredentialIssuer
from callplane.services.quota import AdmissionController, QuotaStore

logger = logging.getLogger(__name__)


@lru_cache
def get_feature_store() -> CachedFeatureStore:
    return CachedFeatureStore(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_ROLE_KEY,
        get_redis=get_redis,
        cache_ttl=settings.FEATURE_CACHE_TTL,
    )


@lru_cache
def get_agent_directory() -> TiledeskAgentDirectory:
    return TiledeskAgentDirectory(settings.TILEDESK_API_URL, settings.TILEDESK_API_TOKEN)


@lru_cache
def get_room_provider() -> LiveKitRoomProvider:
    return LiveKitRoomProvider(
        settings.livekit_url, settings.LIVEKIT_API_KEY, settings.LIVEKIT_API_SECRET
    )


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore(AsyncSessionLocal)


@lru_cache
def get_admission() -> AdmissionController:
    return AdmissionController(QuotaStore(AsyncSessionLocal), get_feature_store())


@lru_cache
def get_lifecycle() -> CallLifecycleManager:
    return CallLifecycleManager(
        sessions=get_session_store(),
        admission=get_admission(),
        rooms=get_room_provider(),
        credentials=LiveKitCredentialIssuer(settings.LIVEKIT_API_KEY, settings.LIVEKIT_API_SECRET),
        features=get_feature_store(),
        directory=get_agent_directory(),
        ws_url=settings.livekit_ws_url,
    )


def get_sweeper() -> StaleCallSweeper:
    return StaleCallSweeper(get_session_store(), get_room_provider(), get_lifecycle())


async def close_clients() -> None:
    """Close outbound HTTP clients that were created during the app's lifetime."""
    if get_room_provider.cache_info().currsize:
        await get_room_provider().aclose()
    if get_feature_store.cache_info().currsize:
        await get_feature_store().close()
    if get_agent_directory.cache_info().currsize:
        await get_agent_directory().close()
    logger.info("✅ Outbound clients closed")
