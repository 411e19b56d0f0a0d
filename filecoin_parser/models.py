"""
Filecoin Parser Data Models - Normalized records and decoder intermediates.

Transactions are compared field by field (dataclass equality) so the output
of two decoders for the same payload can be asserted equivalent.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional


# Namespace for deterministic transaction ids
TRANSACTION_NAMESPACE = uuid.UUID("6f1c9a7e-3b52-5d0e-9a4f-1e2d3c4b5a69")


def cid_str(value: Any) -> str:
    """Lotus encodes CIDs as ``{"/": "bafy..."}``."""
    if isinstance(value, dict):
        return str(value.get("/", ""))
    return "" if value is None else str(value)


# ─────────────────────────────────────────────────────────────
# Addresses
# ─────────────────────────────────────────────────────────────

@dataclass
class AddressInfo:
    """
    The three identity facets of one actor.

    - short: canonical ID form (f0...), stable forever
    - robust: self-describing form, absent for system actors
    - actor_cid: code CID, fixed per chain state
    """
    short: str = ""
    robust: str = ""
    actor_cid: str = ""

    def merge(self, other: "AddressInfo") -> "AddressInfo":
        """Additive merge, empty incoming facets never erase known ones."""
        return AddressInfo(
            short=other.short or self.short,
            robust=other.robust or self.robust,
            actor_cid=other.actor_cid or self.actor_cid,
        )

    def is_empty(self) -> bool:
        return not (self.short or self.robust or self.actor_cid)

    def to_dict(self) -> dict[str, str]:
        return {
            "short": self.short,
            "robust": self.robust,
            "actor_cid": self.actor_cid,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AddressInfo":
        return cls(
            short=data.get("short") or "",
            robust=data.get("robust") or "",
            actor_cid=data.get("actor_cid") or "",
        )


class AddressInfoMap:
    """
    Deduplicated registry of every address touched while parsing.

    Keyed by short form. Created fresh per parse call and owned by the
    caller afterwards.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AddressInfo] = {}

    def set(self, key: str, info: AddressInfo) -> None:
        existing = self._entries.get(key)
        self._entries[key] = existing.merge(info) if existing else info

    def get(self, key: str) -> Optional[AddressInfo]:
        return self._entries.get(key)

    def range(self, fn: Callable[[str, AddressInfo], bool]) -> None:
        """Visit entries in insertion order until ``fn`` returns False."""
        for key, value in list(self._entries.items()):
            if not fn(key, value):
                break

    def items(self) -> list[tuple[str, AddressInfo]]:
        return list(self._entries.items())

    def len(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return f"<AddressInfoMap(entries={len(self._entries)})>"


# ─────────────────────────────────────────────────────────────
# Chain state
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TipSetKey:
    """Opaque reference to one chain state snapshot. Empty means head."""
    cids: tuple[str, ...] = ()

    def to_rpc(self) -> list[dict[str, str]]:
        return [{"/": cid} for cid in self.cids]

    def is_empty(self) -> bool:
        return not self.cids

    def __str__(self) -> str:
        return "{" + ",".join(self.cids) + "}"


EMPTY_TIPSET_KEY = TipSetKey()


@dataclass
class BlockHeader:
    """Subset of a Lotus block header used by the parser."""
    cid: str
    miner: str
    height: int
    parent_base_fee: int
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any], cid: str = "") -> "BlockHeader":
        return cls(
            cid=cid or cid_str(data.get("Cid") or data.get("cid")),
            miner=data.get("Miner", ""),
            height=int(data.get("Height", 0)),
            parent_base_fee=int(data.get("ParentBaseFee", 0) or 0),
            timestamp=int(data.get("Timestamp", 0)),
        )


@dataclass
class ExtendedTipSet:
    """A tipset together with the message CIDs each block included."""
    key: TipSetKey
    height: int
    blocks: list[BlockHeader] = field(default_factory=list)
    block_messages: dict[str, list[str]] = field(default_factory=dict)
    cid: str = ""

    @property
    def tipset_cid(self) -> str:
        return self.cid or str(self.key)

    @property
    def timestamp(self) -> int:
        return self.blocks[0].timestamp if self.blocks else 0

    def block_for_message(self, msg_cid: str) -> Optional[BlockHeader]:
        """First block that included the message, first block otherwise."""
        for block in self.blocks:
            if msg_cid in self.block_messages.get(block.cid, ()):
                return block
        return self.blocks[0] if self.blocks else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtendedTipSet":
        cids = [cid_str(c) for c in data.get("Cids") or []]
        raw_blocks = data.get("Blocks") or []
        blocks = [
            BlockHeader.from_dict(raw, cids[i] if i < len(cids) else "")
            for i, raw in enumerate(raw_blocks)
        ]
        if not cids:
            cids = [b.cid for b in blocks]

        block_messages: dict[str, list[str]] = {}
        for block_cid, messages in (data.get("BlockMessages") or {}).items():
            block_messages[block_cid] = [cid_str(m) for m in messages or []]

        return cls(
            key=TipSetKey(tuple(cids)),
            height=int(data.get("Height", 0)),
            blocks=blocks,
            block_messages=block_messages,
            cid=cid_str(data.get("TipsetCid")),
        )


@dataclass
class NodeInfo:
    node_full_version: str = ""
    node_major_minor_version: str = ""


@dataclass
class BlockMetadata:
    node_info: NodeInfo = field(default_factory=NodeInfo)

    @classmethod
    def for_version(cls, version: str) -> "BlockMetadata":
        return cls(node_info=NodeInfo(node_major_minor_version=version))


# ─────────────────────────────────────────────────────────────
# Raw inputs
# ─────────────────────────────────────────────────────────────

@dataclass
class EthLog:
    """EVM log emitted by a message, tagged with its Filecoin message CID."""
    address: str
    topics: list[str] = field(default_factory=list)
    data: str = ""
    block_hash: str = ""
    block_number: int = 0
    transaction_hash: str = ""
    transaction_cid: str = ""
    log_index: int = 0
    removed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EthLog":
        def _int(value: Any) -> int:
            if isinstance(value, str):
                return int(value, 16) if value.startswith("0x") else int(value)
            return int(value or 0)

        return cls(
            address=data.get("address", ""),
            topics=list(data.get("topics") or []),
            data=data.get("data", ""),
            block_hash=data.get("blockHash", ""),
            block_number=_int(data.get("blockNumber")),
            transaction_hash=data.get("transactionHash", ""),
            transaction_cid=cid_str(data.get("transactionCid")),
            log_index=_int(data.get("logIndex")),
            removed=bool(data.get("removed", False)),
        )


@dataclass
class GenesisBalance:
    address: str
    balance: int


@dataclass
class GenesisBalances:
    """Initial allocations, in the order of the genesis dump."""
    entries: list[GenesisBalance] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenesisBalances":
        entries = []
        for item in (data.get("Actors") or {}).get("All") or []:
            address, actor = item[0], item[1] or {}
            entries.append(GenesisBalance(
                address=address,
                balance=int(actor.get("Balance", 0) or 0),
            ))
        return cls(entries=entries)


# ─────────────────────────────────────────────────────────────
# Decoder output
# ─────────────────────────────────────────────────────────────

@dataclass
class DraftTransaction:
    """
    A decoded call with raw (unresolved) actor references.

    ``parent_index`` points into the same draft list.
    """
    level: int
    tx_cid: str
    block_cid: str
    tx_from: str
    tx_to: str
    amount: int
    method_num: int
    tx_type: str
    status: str
    gas_used: int = 0
    parent_index: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class FeeEntry:
    """Gas cost of one message, as reported by the node."""
    tx_cid: str
    level: int
    block_cid: str
    miner: str
    gas_used: int
    base_fee_burn: int
    over_estimation_burn: int = 0
    miner_penalty: int = 0
    miner_tip: int = 0
    refund: int = 0
    total_cost: int = 0

    @property
    def base_fee(self) -> Optional[int]:
        if self.gas_used <= 0:
            return None
        return self.base_fee_burn // self.gas_used

    def to_metadata(self) -> dict[str, Any]:
        return {
            "GasUsed": self.gas_used,
            "BaseFeeBurn": str(self.base_fee_burn),
            "OverEstimationBurn": str(self.over_estimation_burn),
            "MinerPenalty": str(self.miner_penalty),
            "MinerTip": str(self.miner_tip),
            "Refund": str(self.refund),
            "TotalCost": str(self.total_cost),
        }


@dataclass
class DecodedTraces:
    decoder: str
    transactions: list[DraftTransaction] = field(default_factory=list)
    fees: list[FeeEntry] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────
# Output
# ─────────────────────────────────────────────────────────────

@dataclass
class Transaction:
    """Normalized, version independent transaction record."""
    id: str
    level: int
    tipset_cid: str
    block_cid: str
    height: int
    timestamp: datetime
    tx_cid: str
    tx_from: str
    tx_to: str
    amount: int
    status: str
    tx_type: str
    method_num: int = 0
    gas_used: int = 0
    parent_id: Optional[str] = None
    from_info: AddressInfo = field(default_factory=AddressInfo)
    to_info: AddressInfo = field(default_factory=AddressInfo)
    tx_metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def make_id(tipset_cid: str, tx_cid: str, level: int, index: int) -> str:
        return str(uuid.uuid5(TRANSACTION_NAMESPACE, f"{tipset_cid}|{tx_cid}|{level}|{index}"))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["amount"] = str(self.amount)
        return data


def timestamp_to_datetime(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
