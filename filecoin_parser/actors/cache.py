"""
Actors Cache - Tiered address resolution with write-back.

Lookup order for every facet:
1. System actor short-circuit (robust only)
2. Offline store (kv store or in-memory)
3. Node, then write the discovery back to the offline store

Writing a facet back needs the actor's short address as key (and the
robust address is stored alongside when known). Those complementary facets
are fetched with a direct store/node lookup that never goes through the
public getters again, so a cold address costs at most one node call per
facet.
"""

import logging
from typing import Any, Awaitable, Optional

from filecoin_parser.actors.onchain import OnChainResolver
from filecoin_parser.actors.stores import KVStore, MemoryStore, OfflineStore
from filecoin_parser.address import is_id_address, is_system_actor
from filecoin_parser.config import DataSourceConfig
from filecoin_parser.exceptions import (
    ActorNotFoundError,
    AddressNotCachedError,
    CacheError,
    NodeError,
    ResolutionUnavailableError,
    StoreInitializationError,
)
from filecoin_parser.models import AddressInfo, TipSetKey
from filecoin_parser.node import LotusClient


logger = logging.getLogger(__name__)


FACET_CODE = "actor_cid"
FACET_ROBUST = "robust"
FACET_SHORT = "short"


class ActorsCache:
    """
    Process-wide address resolution cache.

    Build it once with setup_actors_cache() and share it between parse
    calls. Safe for concurrent use: the offline store serializes merges and
    node calls are issued without holding any lock.
    """

    def __init__(
        self,
        offline_store: OfflineStore,
        onchain: OnChainResolver,
    ) -> None:
        self._offline = offline_store
        self._onchain = onchain
        self._store_getters = {
            FACET_CODE: offline_store.get_actor_code,
            FACET_ROBUST: offline_store.get_robust_address,
            FACET_SHORT: offline_store.get_short_address,
        }
        self._hits = 0
        self._misses = 0
        self._node_failures = 0
        # ID actors the node reported without a robust address
        self._robust_absent: set[str] = set()

    @property
    def offline_store(self) -> OfflineStore:
        return self._offline

    # ─────────────────────────────────────────────────────────────
    # Public lookups
    # ─────────────────────────────────────────────────────────────

    async def get_actor_code(self, identity: str, key: TipSetKey) -> str:
        cached = self._from_store(identity, FACET_CODE)
        if cached:
            return cached

        code = await self._from_node(
            self._onchain.get_actor_code(identity, key), identity, FACET_CODE, key
        )

        short = await self._lookup_short(identity)
        self._write_back(identity, AddressInfo(
            short=short or "",
            robust="" if is_id_address(identity) else identity,
            actor_cid=code,
        ))
        return code

    async def get_robust_address(self, identity: str) -> str:
        if is_system_actor(identity):
            return identity

        cached = self._from_store(identity, FACET_ROBUST)
        if cached:
            return cached

        if identity in self._robust_absent:
            raise ResolutionUnavailableError(
                f"{identity} has no robust address",
                identity=identity,
                facet=FACET_ROBUST,
            )

        robust = await self._from_node(
            self._onchain.get_robust_address(identity), identity, FACET_ROBUST
        )

        short = await self._lookup_short(identity)
        self._write_back(identity, AddressInfo(short=short or "", robust=robust))
        return robust

    async def get_short_address(self, identity: str) -> str:
        cached = self._from_store(identity, FACET_SHORT)
        if cached:
            return cached

        short = await self._from_node(
            self._onchain.get_short_address(identity), identity, FACET_SHORT
        )

        robust = await self._lookup_robust(identity)
        self._write_back(identity, AddressInfo(short=short, robust=robust or ""))
        return short

    async def get_address_info(
        self,
        identity: str,
        key: TipSetKey,
        strict: bool = False,
    ) -> AddressInfo:
        """
        Resolve all three facets of an actor.

        A facet that can't be resolved is left empty unless ``strict`` is
        set, in which case the ResolutionUnavailableError propagates.
        """
        info = AddressInfo()
        for facet, resolve in (
            (FACET_SHORT, lambda: self.get_short_address(identity)),
            (FACET_ROBUST, lambda: self.get_robust_address(identity)),
            (FACET_CODE, lambda: self.get_actor_code(identity, key)),
        ):
            try:
                setattr(info, facet, await resolve())
            except ResolutionUnavailableError as e:
                if strict:
                    raise
                logger.warning(f"[ActorsCache] - Leaving {facet} empty for {identity}: {e.message}")

        if not info.short and is_id_address(identity):
            info.short = identity
        return info

    # ─────────────────────────────────────────────────────────────
    # Tiers
    # ─────────────────────────────────────────────────────────────

    def _from_store(self, identity: str, facet: str) -> Optional[str]:
        try:
            value = self._store_getters[facet](identity)
            self._hits += 1
            return value
        except AddressNotCachedError:
            logger.debug(
                f"[ActorsCache] - Unable to retrieve {facet} from {self._offline.implementation_type()} "
                f"for address {identity}. Trying on-chain cache"
            )
        except CacheError as e:
            logger.warning(f"[ActorsCache] - Offline store read failed for {identity}: {e}")
        self._misses += 1
        return None

    async def _from_node(
        self,
        query: Awaitable[str],
        identity: str,
        facet: str,
        key: Optional[TipSetKey] = None,
    ) -> str:
        try:
            return await query
        except NodeError as e:
            if isinstance(e, ActorNotFoundError):
                if facet == FACET_ROBUST and is_id_address(identity):
                    self._robust_absent.add(identity)
                logger.debug(f"[ActorsCache] - Node has no {facet} for {identity}: {e}")
            else:
                self._node_failures += 1
                logger.error(f"[ActorsCache] - Unable to retrieve {facet} from node for {identity}: {e}")
            raise ResolutionUnavailableError(
                f"Unable to resolve {facet}",
                identity=identity,
                facet=facet,
                tipset_key=str(key) if key is not None else None,
                original_error=e,
            ) from e

    # ─────────────────────────────────────────────────────────────
    # Complementary facets (no re-entry into the public getters)
    # ─────────────────────────────────────────────────────────────

    async def _lookup_short(self, identity: str) -> Optional[str]:
        if is_id_address(identity):
            return identity
        cached = self._from_store(identity, FACET_SHORT)
        if cached:
            return cached
        try:
            return await self._onchain.get_short_address(identity)
        except NodeError as e:
            self._node_failures += 1
            logger.warning(f"[ActorsCache] - Unable to look up short address for {identity}: {e}")
            return None

    async def _lookup_robust(self, identity: str) -> Optional[str]:
        if not is_id_address(identity) or is_system_actor(identity):
            return identity
        cached = self._from_store(identity, FACET_ROBUST)
        if cached:
            return cached
        if identity in self._robust_absent:
            return None
        try:
            return await self._onchain.get_robust_address(identity)
        except ActorNotFoundError as e:
            # Actors created through the init actor may lack a robust address
            self._robust_absent.add(identity)
            logger.debug(f"[ActorsCache] - No robust address for {identity}: {e}")
            return None
        except NodeError as e:
            self._node_failures += 1
            logger.warning(f"[ActorsCache] - Unable to look up robust address for {identity}: {e}")
            return None

    def _write_back(self, identity: str, info: AddressInfo) -> None:
        if not info.short:
            logger.warning(
                f"[ActorsCache] - Short address unknown for {identity}, skipping store. "
                f"Will retry on next miss"
            )
            return
        try:
            self._offline.store_address_info(info)
        except CacheError as e:
            logger.error(f"[ActorsCache] - Unable to store address info: {e}")

    # ─────────────────────────────────────────────────────────────
    # Stats & lifecycle
    # ─────────────────────────────────────────────────────────────

    def get_cache_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0
        return {
            "implementation": self._offline.implementation_type(),
            "hits": self._hits,
            "misses": self._misses,
            "node_failures": self._node_failures,
            "robust_absent": len(self._robust_absent),
            "hit_rate_percent": round(hit_rate, 2),
        }

    async def close(self) -> None:
        await self._onchain.close()
        self._offline.close()

    def __repr__(self) -> str:
        return f"<ActorsCache(offline={self._offline.implementation_type()})>"


def setup_actors_cache(
    data_source: DataSourceConfig,
    client: Optional[LotusClient] = None,
) -> ActorsCache:
    """
    Build the process-wide cache.

    The persistent store is preferred; if it can't be initialized the
    in-memory store is used instead.
    """
    if client is None:
        client = LotusClient(
            data_source.node_url,
            token=data_source.node_token,
            timeout=data_source.node_timeout,
        )
    onchain = OnChainResolver(client)

    offline: OfflineStore
    try:
        if not data_source.kv_store_url:
            raise StoreInitializationError("No kv store configured", store="kv-store")
        offline = KVStore(data_source.kv_store_url)
    except StoreInitializationError as e:
        logger.warning(f"[ActorsCache] - Unable to initialize kv store cache ({e.message}). Using on-memory cache")
        offline = MemoryStore()

    logger.info(
        f"[ActorsCache] - Actors cache initialized. "
        f"Offline cache implementation: {offline.implementation_type()}"
    )
    return ActorsCache(offline, onchain)
