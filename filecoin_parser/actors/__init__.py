"""
Actors package - address resolution cache and its tiers.
"""

from filecoin_parser.actors.cache import ActorsCache, setup_actors_cache
from filecoin_parser.actors.onchain import OnChainResolver
from filecoin_parser.actors.stores import KVStore, MemoryStore, OfflineStore


__all__ = [
    "ActorsCache",
    "setup_actors_cache",
    "OnChainResolver",
    "OfflineStore",
    "KVStore",
    "MemoryStore",
]
