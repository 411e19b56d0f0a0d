"""
Filecoin Parser - Trace to transaction assembler.

============================================================
PIPELINE
============================================================
Idle -> DecoderSelected -> Decoding -> Resolving -> (Consolidating) -> Done

Decoding and Resolving fail the whole call on unrecoverable errors; no
partial output is returned and nothing is retried here. The parser keeps
no state between calls except the shared ActorsCache.

============================================================
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from filecoin_parser.actors.cache import ActorsCache, setup_actors_cache
from filecoin_parser.address import SYSTEM_ACTOR, is_id_address
from filecoin_parser.config import DataSourceConfig, ParserConfig
from filecoin_parser.decoders import BaseTraceDecoder, DecoderRegistry
from filecoin_parser.decoders.base import RawTraces
from filecoin_parser.decoders.constants import STATUS_OK, TX_TYPE_GENESIS
from filecoin_parser.exceptions import (
    BaseFeeUnavailableError,
    ConsolidationError,
    DecodeError,
    FilParserError,
    UnsupportedVersionError,
)
from filecoin_parser.models import (
    AddressInfo,
    AddressInfoMap,
    BlockMetadata,
    DraftTransaction,
    EthLog,
    ExtendedTipSet,
    FeeEntry,
    GenesisBalances,
    Transaction,
    timestamp_to_datetime,
)


logger = logging.getLogger(__name__)


class ParseState(Enum):
    IDLE = "idle"
    DECODER_SELECTED = "decoder_selected"
    DECODING = "decoding"
    RESOLVING = "resolving"
    CONSOLIDATING = "consolidating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _ParseRun:
    """Book-keeping for one parse call, used for logging only."""
    operation: str
    height: int
    state: ParseState = ParseState.IDLE
    decoder: Optional[str] = None

    def advance(self, state: ParseState) -> None:
        self.state = state
        logger.debug(f"[FilecoinParser] {self.operation}@{self.height}: {state.value}")

    def fail(self, error: FilParserError) -> None:
        self.state = ParseState.FAILED
        error.context.setdefault("decoder", self.decoder)
        error.context.setdefault("height", self.height)
        logger.error(f"[FilecoinParser] {self.operation}@{self.height} failed: {error}")


class FilecoinParser:
    """
    Converts node traces into normalized transactions.

    Usage:
        cache = setup_actors_cache(DataSourceConfig.from_env())
        parser = FilecoinParser(cache, ParserConfig.from_env())
        txs, addresses = await parser.parse_transactions(
            traces, tipset, eth_logs, BlockMetadata.for_version("v1.25"),
        )
    """

    def __init__(
        self,
        actors_cache: ActorsCache,
        config: Optional[ParserConfig] = None,
        decoders: Optional[DecoderRegistry] = None,
    ) -> None:
        self._cache = actors_cache
        self._config = config or ParserConfig.default()
        self._decoders = decoders or DecoderRegistry.default()

    @classmethod
    def from_data_source(
        cls,
        data_source: DataSourceConfig,
        config: Optional[ParserConfig] = None,
    ) -> "FilecoinParser":
        return cls(setup_actors_cache(data_source), config)

    @property
    def actors_cache(self) -> ActorsCache:
        return self._cache

    @property
    def config(self) -> ParserConfig:
        return self._config

    @property
    def decoders(self) -> DecoderRegistry:
        return self._decoders

    # ─────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────

    async def parse_transactions(
        self,
        traces: RawTraces,
        tipset: ExtendedTipSet,
        eth_logs: Optional[list[EthLog]],
        metadata: BlockMetadata,
    ) -> tuple[list[Transaction], AddressInfoMap]:
        run = _ParseRun("parse_transactions", tipset.height)
        try:
            decoder = self._decoders.select(metadata.node_info.node_major_minor_version)
            run.decoder = decoder.name
            run.advance(ParseState.DECODER_SELECTED)

            run.advance(ParseState.DECODING)
            decoded = decoder.decode(traces, tipset, eth_logs)

            transactions, addresses = await self._assemble(decoded.transactions, tipset, run)
        except FilParserError as e:
            run.fail(e)
            raise

        run.advance(ParseState.DONE)
        logger.info(
            f"[FilecoinParser] Parsed {len(transactions)} transactions and "
            f"{len(addresses)} addresses at height {tipset.height} with decoder {decoder.name}"
        )
        return transactions, addresses

    def get_base_fee(
        self,
        traces: RawTraces,
        metadata: BlockMetadata,
        tipset: ExtendedTipSet,
    ) -> int:
        """
        Base fee of the tipset.

        Taken from the first level-zero fee entry of the traces, or from the
        parent base fee recorded in the first block when the traces don't
        have a usable one.
        """
        decoder = self._decoder_for_base_fee(metadata.node_info.node_major_minor_version)
        try:
            decoded = decoder.decode(traces, tipset)
        except DecodeError as e:
            logger.warning(f"[FilecoinParser] Unable to decode traces for base fee, using fallback: {e}")
            return self._fallback_base_fee(tipset)

        base_fee = first_level_zero_base_fee(decoded.fees)
        if base_fee is None:
            logger.debug(f"[FilecoinParser] No usable fee entry at height {tipset.height}, using fallback")
            return self._fallback_base_fee(tipset)
        return base_fee

    async def parse_genesis(
        self,
        genesis_balances: GenesisBalances,
        genesis_tipset: ExtendedTipSet,
    ) -> tuple[list[Transaction], AddressInfoMap]:
        """One transaction per initial allocation, all sharing the genesis provenance."""
        run = _ParseRun("parse_genesis", genesis_tipset.height)
        block_cid = genesis_tipset.blocks[0].cid if genesis_tipset.blocks else ""

        drafts = [
            DraftTransaction(
                level=0,
                tx_cid=genesis_tx_cid(genesis_tipset.tipset_cid, entry.address),
                block_cid=block_cid,
                tx_from=SYSTEM_ACTOR,
                tx_to=entry.address,
                amount=entry.balance,
                method_num=0,
                tx_type=TX_TYPE_GENESIS,
                status=STATUS_OK,
            )
            for entry in genesis_balances.entries
        ]

        try:
            transactions, addresses = await self._assemble(drafts, genesis_tipset, run)
        except FilParserError as e:
            run.fail(e)
            raise

        run.advance(ParseState.DONE)
        logger.info(f"[FilecoinParser] Parsed {len(transactions)} genesis transactions")
        return transactions, addresses

    # ─────────────────────────────────────────────────────────────
    # Assembly
    # ─────────────────────────────────────────────────────────────

    async def _assemble(
        self,
        drafts: list[DraftTransaction],
        tipset: ExtendedTipSet,
        run: _ParseRun,
    ) -> tuple[list[Transaction], AddressInfoMap]:
        run.advance(ParseState.RESOLVING)
        addresses = AddressInfoMap()
        resolved: dict[str, AddressInfo] = {}

        async def resolve(identity: str) -> AddressInfo:
            info = resolved.get(identity)
            if info is None:
                info = await self._cache.get_address_info(
                    identity, tipset.key, strict=self._config.strict_resolution
                )
                resolved[identity] = info
                addresses.set(info.short or identity, info)
            return info

        timestamp = timestamp_to_datetime(tipset.timestamp)
        ids: list[str] = []
        transactions: list[Transaction] = []
        for index, draft in enumerate(drafts):
            from_info = await resolve(draft.tx_from)
            to_info = await resolve(draft.tx_to)

            tx_id = Transaction.make_id(tipset.tipset_cid, draft.tx_cid, draft.level, index)
            ids.append(tx_id)
            transactions.append(Transaction(
                id=tx_id,
                parent_id=ids[draft.parent_index] if draft.parent_index is not None else None,
                level=draft.level,
                tipset_cid=tipset.tipset_cid,
                block_cid=draft.block_cid,
                height=tipset.height,
                timestamp=timestamp,
                tx_cid=draft.tx_cid,
                tx_from=draft.tx_from,
                tx_to=draft.tx_to,
                from_info=from_info,
                to_info=to_info,
                amount=draft.amount,
                status=draft.status,
                tx_type=draft.tx_type,
                method_num=draft.method_num,
                gas_used=draft.gas_used,
                tx_metadata=draft.metadata,
            ))

        if self._config.consolidate_addresses_to_robust.enable:
            run.advance(ParseState.CONSOLIDATING)
            for tx in transactions:
                tx.tx_from = self._consolidate(tx.tx_from, tx.from_info, tipset)
                tx.tx_to = self._consolidate(tx.tx_to, tx.to_info, tipset)

        return transactions, addresses

    def _consolidate(self, address: str, info: AddressInfo, tipset: ExtendedTipSet) -> str:
        """Robust form of a short address."""
        if not is_id_address(address):
            return address
        if info.robust:
            return info.robust
        if self._config.consolidate_addresses_to_robust.best_effort:
            logger.debug(f"[FilecoinParser] No robust address for {address}, keeping short form")
            return address
        raise ConsolidationError(
            f"Unable to consolidate {address} to robust form",
            address=address,
            tipset_key=str(tipset.key),
        )

    # ─────────────────────────────────────────────────────────────
    # Base fee helpers
    # ─────────────────────────────────────────────────────────────

    def _decoder_for_base_fee(self, version: str) -> BaseTraceDecoder:
        if not version:
            return self._decoders.latest()
        try:
            return self._decoders.select(version)
        except UnsupportedVersionError:
            logger.warning(f"[FilecoinParser] Unknown node version '{version}', decoding fees with latest decoder")
            return self._decoders.latest()

    @staticmethod
    def _fallback_base_fee(tipset: ExtendedTipSet) -> int:
        if not tipset.blocks:
            raise BaseFeeUnavailableError(
                "Tipset has no blocks to read the parent base fee from",
                context={"height": tipset.height, "tipset_key": str(tipset.key)},
            )
        return tipset.blocks[0].parent_base_fee


def first_level_zero_base_fee(fees: list[FeeEntry]) -> Optional[int]:
    """
    Base fee of the first usable level-zero fee entry.

    Some historical traces repeat the same message at level zero; repeated
    entries are ignored rather than summed.
    """
    seen: set[str] = set()
    for fee in fees:
        if fee.level != 0 or fee.tx_cid in seen:
            continue
        seen.add(fee.tx_cid)
        if fee.base_fee is not None:
            return fee.base_fee
    return None


def genesis_tx_cid(tipset_cid: str, address: str) -> str:
    return hashlib.sha256(f"{tipset_cid}:{address}".encode()).hexdigest()
