"""
Offline stores - persistent (SQLAlchemy) and volatile implementations.
"""

from filecoin_parser.actors.stores.base import OfflineStore
from filecoin_parser.actors.stores.kvstore import KVStore
from filecoin_parser.actors.stores.memory import MemoryStore


__all__ = [
    "OfflineStore",
    "KVStore",
    "MemoryStore",
]
