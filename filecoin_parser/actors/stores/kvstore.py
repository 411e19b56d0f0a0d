"""
Persistent offline store backed by a SQLAlchemy key/value table.

============================================================
LAYOUT
============================================================
One table, ``actors_kv``:

- ``info:<short>``   -> JSON encoded AddressInfo
- ``robust:<robust>`` -> short address (UTF-8)

Any SQLAlchemy URL works; sqlite is the usual choice for a single
process, postgresql when several parsers share the cache. Sessions are
synchronous and run on the caller's thread (inside the event loop when
used from ActorsCache), so the backend should be local or low latency.

============================================================
"""

import json
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import LargeBinary, String, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from filecoin_parser.actors.stores.base import OfflineStore
from filecoin_parser.exceptions import CacheError, StoreInitializationError
from filecoin_parser.models import AddressInfo


logger = logging.getLogger(__name__)


INFO_PREFIX = "info:"
ROBUST_PREFIX = "robust:"


class Base(DeclarativeBase):
    pass


class ActorKVEntry(Base):
    __tablename__ = "actors_kv"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)


def create_store_engine(url: str, echo: bool = False) -> Engine:
    """Create the engine; in-memory sqlite shares one connection across threads."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


class KVStore(OfflineStore):
    """
    Usage:
        store = KVStore("sqlite:///actors.db")
        store.store_address_info(AddressInfo(short="f01234", robust="f1..."))
        store.get_robust_address("f01234")
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        super().__init__()
        self._url = url
        try:
            self._engine = create_store_engine(url, echo=echo)
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            raise StoreInitializationError(
                f"Cannot initialize kv store: {e}",
                store=self.implementation_type(),
                original_error=e,
                context={"url": url.split("@")[-1]},
            ) from e

        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info(f"[KVStore] Initialized at {url.split('@')[-1]}")

    def implementation_type(self) -> str:
        return "kv-store"

    @contextmanager
    def _session(self, operation: str) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[KVStore] {operation} failed, rolling back: {e}")
            raise CacheError(
                f"KV store {operation} failed: {e}",
                store=self.implementation_type(),
                operation=operation,
                original_error=e,
            ) from e
        finally:
            session.close()

    # ─────────────────────────────────────────────────────────────
    # Raw key/value access
    # ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[bytes]:
        with self._session("read") as session:
            entry = session.get(ActorKVEntry, key)
            return entry.value if entry else None

    def put(self, items: dict[str, bytes]) -> None:
        """Write several keys in one transaction."""
        with self._session("write") as session:
            for key, value in items.items():
                session.merge(ActorKVEntry(key=key, value=value))

    # ─────────────────────────────────────────────────────────────
    # OfflineStore
    # ─────────────────────────────────────────────────────────────

    def _load(self, short: str) -> Optional[AddressInfo]:
        raw = self.get(INFO_PREFIX + short)
        if raw is None:
            return None
        try:
            return AddressInfo.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            raise CacheError(
                f"Corrupted record for {short}",
                store=self.implementation_type(),
                operation="read",
                original_error=e,
            ) from e

    def _save(self, info: AddressInfo, previous: Optional[AddressInfo]) -> None:
        items = {INFO_PREFIX + info.short: json.dumps(info.to_dict()).encode()}
        if info.robust and (previous is None or previous.robust != info.robust):
            items[ROBUST_PREFIX + info.robust] = info.short.encode()
        self.put(items)

    def _lookup_index(self, robust: str) -> Optional[str]:
        raw = self.get(ROBUST_PREFIX + robust)
        return raw.decode() if raw is not None else None

    def close(self) -> None:
        self._engine.dispose()
        logger.info("[KVStore] Engine disposed")
