"""
Offline Store - Abstract interface for accumulated address facts.

Implementations MUST:
- Treat a miss as a normal signal (AddressNotCachedError), not a failure
- Merge writes additively, never erasing a known facet
- Serialize read-modify-write per record
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from filecoin_parser.address import is_id_address
from filecoin_parser.exceptions import AddressNotCachedError, CacheError
from filecoin_parser.models import AddressInfo


logger = logging.getLogger(__name__)


class OfflineStore(ABC):
    """
    Key/value table of AddressInfo records keyed by short form.

    Subclasses implement the raw record access (_load/_save/_lookup_index);
    lookups by either representation and the additive merge live here.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @abstractmethod
    def implementation_type(self) -> str:
        """Identity tag used for observability."""
        pass

    @abstractmethod
    def _load(self, short: str) -> Optional[AddressInfo]:
        pass

    @abstractmethod
    def _save(self, info: AddressInfo, previous: Optional[AddressInfo]) -> None:
        """Persist the merged record and its robust index entry."""
        pass

    @abstractmethod
    def _lookup_index(self, robust: str) -> Optional[str]:
        """Short form indexed under a robust address."""
        pass

    def close(self) -> None:
        pass

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    def get_address_info(self, identity: str) -> Optional[AddressInfo]:
        """Record for either representation of an actor."""
        short = identity if is_id_address(identity) else self._lookup_index(identity)
        if not short:
            return None
        return self._load(short)

    def get_actor_code(self, identity: str) -> str:
        return self._facet(identity, "actor_cid")

    def get_robust_address(self, identity: str) -> str:
        return self._facet(identity, "robust")

    def get_short_address(self, identity: str) -> str:
        return self._facet(identity, "short")

    def _facet(self, identity: str, facet: str) -> str:
        info = self.get_address_info(identity)
        value = getattr(info, facet) if info else ""
        if not value:
            raise AddressNotCachedError(
                f"{facet} not cached",
                identity=identity,
                facet=facet,
                context={"store": self.implementation_type()},
            )
        return value

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    def store_address_info(self, info: AddressInfo) -> AddressInfo:
        """Merge a partial record into the stored one; returns the result."""
        if not info.short:
            raise CacheError(
                "Cannot store address info without short address",
                store=self.implementation_type(),
                operation="write",
                context={"robust": info.robust},
            )

        with self._lock:
            previous = self._load(info.short)
            merged = previous.merge(info) if previous else info
            if merged != previous:
                self._save(merged, previous)

        logger.debug(f"[{self.implementation_type()}] Stored address info for {info.short}")
        return merged

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(type={self.implementation_type()})>"
