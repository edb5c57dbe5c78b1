"""
Features Module

Agent capability lookups and assigned-agent resolution.
"""
from .store import CachedFeatureStore, parse_features
from .directory import TiledeskAgentDirectory

__all__ = [
    "CachedFeatureStore",
    "TiledeskAgentDirectory",
    "parse_features",
]
