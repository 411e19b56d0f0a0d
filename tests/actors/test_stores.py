"""
Offline Store Tests.

============================================================
PURPOSE
============================================================
Both offline store implementations must behave identically:
- Miss is signalled with AddressNotCachedError
- Lookups work by short and by robust form
- Writes merge additively, also under concurrency

============================================================
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from filecoin_parser.actors.stores import KVStore, MemoryStore
from filecoin_parser.exceptions import (
    AddressNotCachedError,
    CacheError,
    StoreInitializationError,
)
from filecoin_parser.models import AddressInfo


@pytest.fixture(params=["memory", "kv"])
def store(request, tmp_path):
    if request.param == "memory":
        yield MemoryStore()
    else:
        kv = KVStore(f"sqlite:///{tmp_path / 'actors.db'}")
        yield kv
        kv.close()


class TestOfflineStore:

    def test_miss_raises_not_cached(self, store):
        with pytest.raises(AddressNotCachedError) as exc_info:
            store.get_robust_address("f01234")
        assert exc_info.value.context["facet"] == "robust"
        assert store.get_address_info("f01234") is None

    def test_store_requires_short(self, store):
        with pytest.raises(CacheError):
            store.store_address_info(AddressInfo(robust="f1aliceaddress"))

    def test_lookup_by_both_forms(self, store):
        store.store_address_info(AddressInfo(
            short="f01234", robust="f1aliceaddress", actor_cid="bafk2bzaceaccount",
        ))

        assert store.get_short_address("f1aliceaddress") == "f01234"
        assert store.get_robust_address("f01234") == "f1aliceaddress"
        assert store.get_actor_code("f1aliceaddress") == "bafk2bzaceaccount"

    def test_partial_writes_accumulate(self, store):
        store.store_address_info(AddressInfo(short="f01234", actor_cid="bafk2bzaceaccount"))
        store.store_address_info(AddressInfo(short="f01234", robust="f1aliceaddress"))
        merged = store.store_address_info(AddressInfo(short="f01234"))

        assert merged == AddressInfo(
            short="f01234", robust="f1aliceaddress", actor_cid="bafk2bzaceaccount",
        )
        assert store.get_address_info("f1aliceaddress") == merged

    def test_missing_facet_is_a_miss(self, store):
        store.store_address_info(AddressInfo(short="f0777"))
        with pytest.raises(AddressNotCachedError):
            store.get_robust_address("f0777")
        assert store.get_short_address("f0777") == "f0777"

    def test_concurrent_merges(self, store):
        writes = [AddressInfo(short="f01234", robust="f1aliceaddress"),
                  AddressInfo(short="f01234", actor_cid="bafk2bzaceaccount")] * 10

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(store.store_address_info, writes))

        assert store.get_address_info("f01234") == AddressInfo(
            short="f01234", robust="f1aliceaddress", actor_cid="bafk2bzaceaccount",
        )


class TestKVStore:

    def test_implementation_type(self):
        store = KVStore("sqlite://")
        assert store.implementation_type() == "kv-store"
        store.close()

    def test_persists_across_instances(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'actors.db'}"
        first = KVStore(url)
        first.store_address_info(AddressInfo(short="f01234", robust="f1aliceaddress"))
        first.close()

        second = KVStore(url)
        assert second.get_short_address("f1aliceaddress") == "f01234"
        second.close()

    def test_raw_key_value_access(self):
        store = KVStore("sqlite://")
        store.put({"robust:f1x": b"f0100", "other": b"1"})
        assert store.get("robust:f1x") == b"f0100"
        assert store.get("missing") is None
        store.close()

    def test_corrupted_record(self):
        store = KVStore("sqlite://")
        store.put({"info:f0100": b"not json"})
        with pytest.raises(CacheError):
            store.get_address_info("f0100")
        store.close()

    def test_unreachable_store(self, tmp_path):
        with pytest.raises(StoreInitializationError) as exc_info:
            KVStore(f"sqlite:///{tmp_path / 'missing' / 'actors.db'}")
        assert exc_info.value.operation == "init"


class TestMemoryStore:

    def test_implementation_type(self):
        assert MemoryStore().implementation_type() == "in-memory"

    def test_returned_records_are_copies(self):
        store = MemoryStore()
        store.store_address_info(AddressInfo(short="f0100", robust="f1x"))

        info = store.get_address_info("f0100")
        info.robust = "tampered"

        assert store.get_robust_address("f0100") == "f1x"
        assert len(store) == 1
