"""
In-memory offline store. Volatile, used when the persistent store is unavailable.
"""

from typing import Optional

from filecoin_parser.actors.stores.base import OfflineStore
from filecoin_parser.models import AddressInfo


class MemoryStore(OfflineStore):

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, AddressInfo] = {}
        self._robust_index: dict[str, str] = {}

    def implementation_type(self) -> str:
        return "in-memory"

    def _load(self, short: str) -> Optional[AddressInfo]:
        info = self._records.get(short)
        return AddressInfo(**info.to_dict()) if info else None

    def _save(self, info: AddressInfo, previous: Optional[AddressInfo]) -> None:
        self._records[info.short] = AddressInfo(**info.to_dict())
        if info.robust:
            self._robust_index[info.robust] = info.short

    def _lookup_index(self, robust: str) -> Optional[str]:
        return self._robust_index.get(robust)

    def __len__(self) -> int:
        return len(self._records)
