"""
Filecoin Parser Tests.

============================================================
PURPOSE
============================================================
End-to-end tests of the transaction assembler against the fake node:
- Transaction assembly and the address registry
- Equivalent output across protocol versions
- Base fee extraction and fallback
- Genesis transactions
- Robust address consolidation

============================================================
"""

from datetime import datetime, timezone

import pytest

from conftest import make_invocation, make_payload, make_tipset, make_trace
from filecoin_parser import (
    BlockMetadata,
    ConsolidateAddressesToRobust,
    DataSourceConfig,
    FilecoinParser,
    GenesisBalance,
    GenesisBalances,
    MemoryStore,
    ParserConfig,
)
from filecoin_parser.exceptions import (
    BaseFeeUnavailableError,
    ConsolidationError,
    DecodeError,
    ResolutionUnavailableError,
    UnsupportedVersionError,
)
from filecoin_parser.parser import first_level_zero_base_fee


V1_METADATA = BlockMetadata.for_version("v1.22")
V2_METADATA = BlockMetadata.for_version("v1.25")


@pytest.fixture
def parser(actors_cache):
    return FilecoinParser(actors_cache)


def consolidating_parser(actors_cache, best_effort=False):
    return FilecoinParser(actors_cache, ParserConfig(
        consolidate_addresses_to_robust=ConsolidateAddressesToRobust(
            enable=True, best_effort=best_effort,
        ),
    ))


# =============================================================================
# PARSE TRANSACTIONS
# =============================================================================

class TestParseTransactions:

    @pytest.mark.asyncio
    async def test_transactions_and_registry(self, parser, tipset, sample_payload):
        txs, addresses = await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)

        assert len(txs) == 7
        assert sorted(addresses) == ["f01", "f01000", "f01234", "f05678", "f0900"]
        assert addresses.get("f01234").robust == "f1aliceaddress"
        assert addresses.get("f0900").actor_cid == "bafk2bzaceevm"

    @pytest.mark.asyncio
    async def test_transaction_fields(self, parser, tipset, sample_payload):
        txs, _ = await parser.parse_transactions(sample_payload, tipset, None, V2_METADATA)

        first = txs[0]
        assert first.tipset_cid == "{bafyblock1,bafyblock2}"
        assert first.height == tipset.height
        assert first.timestamp == datetime.fromtimestamp(1680000000, tz=timezone.utc)
        assert first.tx_from == "f1aliceaddress"
        assert first.from_info.short == "f01234"
        assert first.to_info.robust == "f1bobaddress"
        assert first.parent_id is None

        assert txs[1].parent_id == first.id
        assert txs[4].parent_id == txs[3].id
        assert txs[6].parent_id == txs[2].id
        assert len({tx.id for tx in txs}) == 7

    @pytest.mark.asyncio
    async def test_ids_are_deterministic(self, actors_cache, tipset, sample_payload):
        first, _ = await FilecoinParser(actors_cache).parse_transactions(sample_payload, tipset, [], V2_METADATA)
        second, _ = await FilecoinParser(actors_cache).parse_transactions(sample_payload, tipset, [], V2_METADATA)
        assert [tx.id for tx in first] == [tx.id for tx in second]

    @pytest.mark.asyncio
    async def test_registry_is_fresh_per_call(self, parser, tipset, sample_payload):
        _, first = await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)
        _, second = await parser.parse_transactions(make_payload([]), tipset, [], V2_METADATA)

        assert first is not second
        assert len(second) == 0

    @pytest.mark.asyncio
    async def test_identities_resolved_once_per_call(self, parser, fake_client, tipset, sample_payload):
        await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)
        calls = fake_client.total_calls

        await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)
        assert fake_client.total_calls == calls

    @pytest.mark.asyncio
    async def test_cross_version_equivalence(self, parser, tipset, sample_payload):
        v1_txs, v1_addresses = await parser.parse_transactions(sample_payload, tipset, [], V1_METADATA)
        v2_txs, v2_addresses = await parser.parse_transactions(
            sample_payload, tipset, [], BlockMetadata.for_version("v1.23"),
        )

        assert v1_txs == v2_txs
        assert v1_addresses.items() == v2_addresses.items()

    @pytest.mark.asyncio
    async def test_unsupported_version_fails_before_decoding(self, parser, fake_client, tipset):
        with pytest.raises(UnsupportedVersionError) as exc_info:
            await parser.parse_transactions(b"not json", tipset, [], BlockMetadata.for_version("v1.19"))

        assert exc_info.value.version == "v1.19"
        assert exc_info.value.context["height"] == tipset.height
        assert fake_client.total_calls == 0

    @pytest.mark.asyncio
    async def test_decode_failure(self, parser, fake_client, tipset):
        with pytest.raises(DecodeError) as exc_info:
            await parser.parse_transactions(b'{"Trace": 1}', tipset, [], V2_METADATA)

        assert exc_info.value.context["decoder"] == "v2"
        assert fake_client.total_calls == 0

    @pytest.mark.asyncio
    async def test_strict_resolution(self, actors_cache, fake_client, tipset, sample_payload):
        fake_client.fail = True
        parser = FilecoinParser(actors_cache, ParserConfig(strict_resolution=True))

        with pytest.raises(ResolutionUnavailableError):
            await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)

    @pytest.mark.asyncio
    async def test_lenient_resolution(self, parser, fake_client, tipset, sample_payload):
        fake_client.fail = True

        txs, addresses = await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)

        assert len(txs) == 7
        assert txs[2].from_info.short == "f01234"
        assert txs[0].from_info.short == ""
        assert "f1aliceaddress" in addresses

    def test_from_data_source(self):
        parser = FilecoinParser.from_data_source(DataSourceConfig())
        assert isinstance(parser.actors_cache.offline_store, MemoryStore)
        assert parser.config == ParserConfig.default()
        assert len(parser.decoders) == 2


# =============================================================================
# BASE FEE
# =============================================================================

class TestBaseFee:

    def test_first_level_zero_fee(self, parser, tipset, sample_payload):
        assert parser.get_base_fee(sample_payload, V2_METADATA, tipset) == 100

    def test_same_value_for_both_versions(self, parser, tipset, sample_payload):
        assert parser.get_base_fee(sample_payload, V1_METADATA, tipset) == \
            parser.get_base_fee(sample_payload, V2_METADATA, tipset)

    def test_repeated_level_zero_entry_counted_once(self, parser):
        invocation = make_invocation("bafymsg1", make_trace("f01234", "f05678"), gas_used=1000, base_fee=100)
        repeated = make_invocation("bafymsg1", make_trace("f01234", "f05678"), gas_used=1000, base_fee=300)
        tipset = make_tipset(parent_base_fee=77)

        assert parser.get_base_fee(make_payload([invocation, repeated]), V2_METADATA, tipset) == 100

    def test_skips_entries_without_gas(self, parser):
        free = make_invocation("bafymsg1", make_trace("f01234", "f05678"), gas_used=0)
        paid = make_invocation("bafymsg2", make_trace("f01234", "f05678"), gas_used=10, base_fee=150)

        assert parser.get_base_fee(make_payload([free, paid]), V2_METADATA, make_tipset()) == 150

    def test_fallback_without_fees(self, parser):
        payload = make_payload([
            make_invocation("bafymsg1", make_trace("f01234", "f05678"), with_gas_cost=False),
        ])
        assert parser.get_base_fee(payload, V2_METADATA, make_tipset(parent_base_fee=77)) == 77

    def test_fallback_on_malformed_traces(self, parser):
        assert parser.get_base_fee(b"not json", V2_METADATA, make_tipset(parent_base_fee=77)) == 77

    @pytest.mark.parametrize("version", ["", "v9.99"])
    def test_unknown_version_uses_latest_decoder(self, parser, tipset, sample_payload, version):
        assert parser.get_base_fee(sample_payload, BlockMetadata.for_version(version), tipset) == 100

    def test_no_fee_and_no_blocks(self, parser):
        tipset = make_tipset()
        tipset.blocks = []
        with pytest.raises(BaseFeeUnavailableError):
            parser.get_base_fee(make_payload([]), V2_METADATA, tipset)

    def test_first_level_zero_base_fee_empty(self):
        assert first_level_zero_base_fee([]) is None


# =============================================================================
# GENESIS
# =============================================================================

class TestGenesis:

    @pytest.fixture
    def balances(self):
        return GenesisBalances(entries=[
            GenesisBalance(address="f01234", balance=1000),
            GenesisBalance(address="f05678", balance=2000),
            GenesisBalance(address="f0900", balance=0),
        ])

    @pytest.mark.asyncio
    async def test_one_transaction_per_allocation(self, parser, balances):
        tipset = make_tipset(height=0)
        txs, addresses = await parser.parse_genesis(balances, tipset)

        assert len(txs) == len(balances)
        assert [tx.tx_to for tx in txs] == ["f01234", "f05678", "f0900"]
        assert [tx.amount for tx in txs] == [1000, 2000, 0]
        assert "f00" in addresses
        assert "f05678" in addresses

    @pytest.mark.asyncio
    async def test_shared_provenance(self, parser, balances):
        tipset = make_tipset(height=0)
        txs, _ = await parser.parse_genesis(balances, tipset)

        assert {tx.tx_from for tx in txs} == {"f00"}
        assert {tx.tipset_cid for tx in txs} == {tipset.tipset_cid}
        assert {tx.block_cid for tx in txs} == {"bafyblock1"}
        assert {tx.tx_type for tx in txs} == {"Genesis"}
        assert {tx.status for tx in txs} == {"Ok"}
        assert all(tx.level == 0 and tx.parent_id is None for tx in txs)
        assert len({tx.tx_cid for tx in txs}) == 3

    @pytest.mark.asyncio
    async def test_empty_genesis(self, parser):
        txs, addresses = await parser.parse_genesis(GenesisBalances(), make_tipset(height=0))
        assert txs == []
        assert len(addresses) == 0


# =============================================================================
# CONSOLIDATION
# =============================================================================

class TestConsolidation:

    @pytest.mark.asyncio
    async def test_disabled_keeps_trace_addresses(self, parser, tipset, sample_payload):
        txs, _ = await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)
        assert txs[2].tx_from == "f01234"

    @pytest.mark.asyncio
    async def test_rewrites_short_to_robust(self, actors_cache, tipset, sample_payload):
        parser = consolidating_parser(actors_cache)
        txs, addresses = await parser.parse_transactions(sample_payload, tipset, [], V2_METADATA)

        assert txs[2].tx_from == "f1aliceaddress"
        assert txs[2].tx_to == "f410fcontractaddress"
        assert txs[1].tx_to == "f2minerrobustaddress"
        assert txs[0].tx_from == "f1aliceaddress"
        assert "f01234" in addresses

    @pytest.mark.asyncio
    async def test_best_effort_keeps_short_form(self, actors_cache, tipset):
        payload = make_payload([
            make_invocation("bafymsg1", make_trace("f01234", "f0777"), with_gas_cost=False),
        ])
        parser = consolidating_parser(actors_cache, best_effort=True)
        txs, _ = await parser.parse_transactions(payload, tipset, [], V2_METADATA)

        assert txs[0].tx_from == "f1aliceaddress"
        assert txs[0].tx_to == "f0777"

    @pytest.mark.asyncio
    async def test_strict_consolidation_fails(self, actors_cache, tipset):
        payload = make_payload([
            make_invocation("bafymsg1", make_trace("f01234", "f0777"), with_gas_cost=False),
        ])
        parser = consolidating_parser(actors_cache)

        with pytest.raises(ConsolidationError) as exc_info:
            await parser.parse_transactions(payload, tipset, [], V2_METADATA)
        assert exc_info.value.address == "f0777"
