"""
LiveKit Credential Issuer

Mints room-scoped access tokens whose publish rights follow the call type.
"""
import logging
from datetime import timedelta

from livekit import api

logger = logging.getLogger(__name__)

SOURCE_CAMERA = "camera"
SOURCE_MICROPHONE = "microphone"
SOURCE_SCREEN_SHARE = "screen_share"
SOURCE_SCREEN_SHARE_AUDIO = "screen_share_audio"


def build_grants(room_name: str, call_type: str, is_admin: bool) -> api.VideoGrants:
    """
    Capability set for one participant.

    Audio is published on audio and video calls, video only on video calls,
    data always. Admins may also administer and create the room.
    """
    can_publish_audio = call_type in ("audio", "video")
    can_publish_video = call_type == "video"
    can_share_screen = call_type == "screen_share"

    sources = []
    if can_publish_audio:
        sources.append(SOURCE_MICROPHONE)
    if can_publish_video:
        sources.append(SOURCE_CAMERA)
    if can_share_screen:
        sources.extend([SOURCE_SCREEN_SHARE, SOURCE_SCREEN_SHARE_AUDIO])

    return api.VideoGrants(
        room_join=True,
        room=room_name,
        can_publish=bool(sources),
        can_subscribe=True,
        can_publish_data=True,
        can_publish_sources=sources,
        room_admin=is_admin,
        room_create=is_admin,
    )


class LiveKitCredentialIssuer:
    """CredentialIssuer implementation signing LiveKit JWTs."""

    def __init__(self, api_key: str, api_secret: str):
        self.api_key = api_key
        self.api_secret = api_secret

    def issue_credential(
        self,
        identity: str,
        display_name: str,
        room_name: str,
        is_admin: bool,
        call_type: str,
        ttl: timedelta,
    ) -> str:
        token = (
            api.AccessToken(self.api_key, self.api_secret)
            .with_identity(identity)
            .with_name(display_name)
            .with_ttl(ttl)
            .with_grants(build_grants(room_name, call_type, is_admin))
        )
        logger.debug(f"[LiveKit] Credential issued for {identity} in {room_name} (admin={is_admin})")
        return token.to_jwt()
