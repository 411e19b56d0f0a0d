"""
Filecoin Parser Package - Node traces to normalized transactions.

Turns Lotus execution traces, tipsets and EVM logs into a version
independent list of transactions plus a registry of every actor address
they reference.

Features:
- Protocol decoders selected by node version
- Tiered actor address cache (kv store / in-memory, then node)
- Base fee with tipset fallback
- Genesis allocations as transactions

Quick Start:
    from filecoin_parser import (
        BlockMetadata,
        DataSourceConfig,
        FilecoinParser,
        ParserConfig,
    )

    async def parse(traces, tipset, eth_logs):
        parser = FilecoinParser.from_data_source(
            DataSourceConfig.from_env(),
            ParserConfig.from_env(),
        )
        txs, addresses = await parser.parse_transactions(
            traces, tipset, eth_logs, BlockMetadata.for_version("v1.25"),
        )
        print(f"Transactions: {len(txs)}")
        print(f"Addresses: {len(addresses)}")
        await parser.actors_cache.close()
"""

from filecoin_parser.actors import (
    ActorsCache,
    KVStore,
    MemoryStore,
    OfflineStore,
    OnChainResolver,
    setup_actors_cache,
)
from filecoin_parser.address import SYSTEM_ACTORS_ID
from filecoin_parser.config import (
    ConsolidateAddressesToRobust,
    DataSourceConfig,
    ParserConfig,
)
from filecoin_parser.decoders import (
    BaseTraceDecoder,
    DecoderRegistry,
    TraceDecoderV1,
    TraceDecoderV2,
)
from filecoin_parser.exceptions import (
    ActorNotFoundError,
    AddressNotCachedError,
    BaseFeeUnavailableError,
    CacheError,
    ConfigurationError,
    ConsolidationError,
    DecodeError,
    FilParserError,
    NodeError,
    NodeRequestError,
    ResolutionError,
    ResolutionUnavailableError,
    StoreInitializationError,
    UnsupportedVersionError,
)
from filecoin_parser.models import (
    AddressInfo,
    AddressInfoMap,
    BlockHeader,
    BlockMetadata,
    EthLog,
    ExtendedTipSet,
    GenesisBalance,
    GenesisBalances,
    NodeInfo,
    TipSetKey,
    Transaction,
)
from filecoin_parser.node import LotusClient
from filecoin_parser.parser import FilecoinParser, ParseState


__version__ = "1.0.0"

__all__ = [
    # Parser
    "FilecoinParser",
    "ParseState",

    # Actors cache
    "ActorsCache",
    "setup_actors_cache",
    "OnChainResolver",
    "OfflineStore",
    "KVStore",
    "MemoryStore",
    "SYSTEM_ACTORS_ID",
    "LotusClient",

    # Decoders
    "BaseTraceDecoder",
    "DecoderRegistry",
    "TraceDecoderV1",
    "TraceDecoderV2",

    # Config
    "ParserConfig",
    "ConsolidateAddressesToRobust",
    "DataSourceConfig",

    # Models
    "AddressInfo",
    "AddressInfoMap",
    "BlockHeader",
    "BlockMetadata",
    "EthLog",
    "ExtendedTipSet",
    "GenesisBalance",
    "GenesisBalances",
    "NodeInfo",
    "TipSetKey",
    "Transaction",

    # Exceptions
    "FilParserError",
    "ResolutionError",
    "AddressNotCachedError",
    "ResolutionUnavailableError",
    "NodeError",
    "NodeRequestError",
    "ActorNotFoundError",
    "CacheError",
    "StoreInitializationError",
    "DecodeError",
    "UnsupportedVersionError",
    "ConsolidationError",
    "BaseFeeUnavailableError",
    "ConfigurationError",
]
