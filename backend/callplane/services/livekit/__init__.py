"""
LiveKit Module

Room provider and credential issuer backed by the LiveKit server API.
"""
from .rooms import LiveKitRoomProvider
from .tokens import LiveKitCredentialIssuer, build_grants

__all__ = [
    "LiveKitRoomProvider",
    "LiveKitCredentialIssuer",
    "build_grants",
]
