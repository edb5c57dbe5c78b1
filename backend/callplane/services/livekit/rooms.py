"""
LiveKit Room Provider

Creates, deletes and inspects rooms through the LiveKit server API.
Every provider failure is surfaced as UpstreamError; room creation is
retried with exponential backoff first.
"""
import json
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from livekit import api
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from callplane.config.constants import (
    ROOM_PROVISION_ATTEMPTS,
    ROOM_PROVISION_BACKOFF_MIN_SEC,
    ROOM_PROVISION_BACKOFF_MAX_SEC,
)
from callplane.services import metrics
from callplane.services.exceptions import UpstreamError
from callplane.services.protocols import RoomHandle, RoomInfo, ParticipantInfo

logger = logging.getLogger(__name__)


def _from_epoch(seconds: int) -> Optional[datetime]:
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, UTC).replace(tzinfo=None)


def _parse_metadata(raw: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    return value if isinstance(value, dict) else {"raw": value}


class LiveKitRoomProvider:
    """RoomProvider implementation over `livekit.api.LiveKitAPI`."""

    def __init__(self, url: str, api_key: str, api_secret: str, client: Optional[api.LiveKitAPI] = None):
        self.url = url
        self.api_key = api_key
        self.api_secret = api_secret
        self._client = client

    @property
    def client(self) -> api.LiveKitAPI:
        # Created on first use: the SDK binds an aiohttp session to the running loop
        if self._client is None:
            self._client = api.LiveKitAPI(self.url, self.api_key, self.api_secret)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(ROOM_PROVISION_ATTEMPTS),
        wait=wait_exponential(min=ROOM_PROVISION_BACKOFF_MIN_SEC, max=ROOM_PROVISION_BACKOFF_MAX_SEC),
        retry=retry_if_exception_type(UpstreamError),
        reraise=True,
    )
    async def _create(self, request: api.CreateRoomRequest):
        try:
            return await self.client.room.create_room(request)
        except Exception as e:
            logger.warning(f"[LiveKit] create_room({request.name}) failed: {e}")
            raise UpstreamError(f"Room provider failed to create room {request.name}") from e

    async def create_room(
        self,
        name: str,
        max_participants: int,
        empty_timeout_seconds: int,
        metadata: Dict[str, Any],
    ) -> RoomHandle:
        request = api.CreateRoomRequest(
            name=name,
            empty_timeout=empty_timeout_seconds,
            max_participants=max_participants,
            metadata=json.dumps(metadata or {}),
        )
        try:
            room = await self._create(request)
        except UpstreamError:
            metrics.room_provision_failures.inc()
            logger.error(f"❌ [LiveKit] Giving up on room {name} after {ROOM_PROVISION_ATTEMPTS} attempts")
            raise

        logger.info(f"✅ [LiveKit] Room created: {room.name} (sid={room.sid})")
        return RoomHandle(
            name=room.name or name,
            sid=room.sid or None,
            max_participants=max_participants,
            empty_timeout=empty_timeout_seconds,
        )

    async def delete_room(self, name: str) -> None:
        try:
            await self.client.room.delete_room(api.DeleteRoomRequest(room=name))
        except api.TwirpError as e:
            if e.code == "not_found":
                logger.info(f"[LiveKit] Room {name} already gone")
                return
            raise UpstreamError(f"Room provider failed to delete room {name}: {e.message}") from e
        except Exception as e:
            raise UpstreamError(f"Room provider failed to delete room {name}") from e
        logger.info(f"[LiveKit] Room deleted: {name}")

    async def list_rooms(self, names: List[str]) -> List[RoomInfo]:
        try:
            response = await self.client.room.list_rooms(api.ListRoomsRequest(names=list(names)))
        except Exception as e:
            raise UpstreamError("Room provider failed to list rooms") from e
        return [
            RoomInfo(
                name=room.name,
                num_participants=room.num_participants,
                created_at=_from_epoch(room.creation_time),
                metadata=_parse_metadata(room.metadata),
            )
            for room in response.rooms
        ]

    async def list_participants(self, room_name: str) -> List[ParticipantInfo]:
        try:
            response = await self.client.room.list_participants(
                api.ListParticipantsRequest(room=room_name)
            )
        except api.TwirpError as e:
            if e.code == "not_found":
                return []
            raise UpstreamError(f"Room provider failed to list participants: {e.message}") from e
        except Exception as e:
            raise UpstreamError("Room provider failed to list participants") from e
        return [
            ParticipantInfo(
                identity=p.identity,
                name=p.name or None,
                joined_at=_from_epoch(p.joined_at),
                state=str(p.state),
            )
            for p in response.participants
        ]
