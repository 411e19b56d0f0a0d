"""
Base Trace Decoder - Common contract for every protocol version.

A decoder turns a ComputeStateOutput payload into draft transactions
(actor references still unresolved) and fee entries. Subclasses only read
one execution trace frame; walking the call tree, fees and EVM logs are
handled here so every version emits the same record shape.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from filecoin_parser.address import BURNT_FUNDS_ACTOR
from filecoin_parser.decoders.constants import (
    METADATA_ERROR,
    METADATA_ETH_LOGS,
    METADATA_PARAMS,
    METADATA_RETURN,
    TX_TYPE_FEE,
    exit_code_status,
    method_name,
)
from filecoin_parser.exceptions import DecodeError
from filecoin_parser.models import (
    BlockHeader,
    DecodedTraces,
    DraftTransaction,
    EthLog,
    ExtendedTipSet,
    FeeEntry,
    cid_str,
)


logger = logging.getLogger(__name__)


_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)")

RawTraces = Union[bytes, str, dict[str, Any]]


def normalize_version(version: Optional[str]) -> str:
    """``v1.23.2-rc1+mainnet`` -> ``v1.23``. Empty when unparseable."""
    if not version:
        return ""
    match = _VERSION_RE.search(version)
    if not match:
        return ""
    return f"v{match.group(1)}.{match.group(2)}"


@dataclass
class CallFrame:
    """One node of the execution trace, version independent."""
    tx_from: str
    tx_to: str
    value: int
    method_num: int
    exit_code: int
    params: Optional[str] = None
    return_value: Optional[str] = None
    error: str = ""
    subcalls: list[dict[str, Any]] = field(default_factory=list)


class BaseTraceDecoder(ABC):
    """
    Abstract base class for protocol decoders.

    Each decoder must:
    1. Declare name, supported_versions and revision
    2. Implement read_frame() - map one raw trace frame to a CallFrame
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def supported_versions(self) -> tuple[str, ...]:
        """Node major.minor versions this decoder understands."""
        pass

    @property
    @abstractmethod
    def revision(self) -> int:
        """Higher wins when several decoders support a version."""
        pass

    @abstractmethod
    def read_frame(self, trace: dict[str, Any], tx_cid: str) -> CallFrame:
        """
        Read one execution trace frame.

        Raises:
            DecodeError: If the frame doesn't match this version's layout
        """
        pass

    def supports(self, version: str) -> bool:
        return normalize_version(version) in self.supported_versions

    # ─────────────────────────────────────────────────────────────
    # Decoding
    # ─────────────────────────────────────────────────────────────

    def decode(
        self,
        traces: RawTraces,
        tipset: ExtendedTipSet,
        eth_logs: Optional[list[EthLog]] = None,
    ) -> DecodedTraces:
        """Decode a ComputeStateOutput payload."""
        compute_state = self._load(traces)
        logs_by_cid = self._group_eth_logs(eth_logs or [])

        decoded = DecodedTraces(decoder=self.name)
        for position, invoc in enumerate(compute_state):
            if not isinstance(invoc, dict):
                raise DecodeError(
                    f"Trace entry {position} is not an object",
                    decoder=self.name,
                )
            self._decode_invocation(invoc, tipset, logs_by_cid, decoded)

        logger.debug(
            f"[{self.name}] Decoded {len(decoded.transactions)} transactions "
            f"and {len(decoded.fees)} fees at height {tipset.height}"
        )
        return decoded

    def _load(self, traces: RawTraces) -> list[Any]:
        if isinstance(traces, (bytes, str)):
            try:
                payload = json.loads(traces)
            except (ValueError, UnicodeDecodeError) as e:
                raise DecodeError(
                    f"Invalid trace payload: {e}",
                    decoder=self.name,
                    original_error=e,
                ) from e
        else:
            payload = traces

        if not isinstance(payload, dict) or not isinstance(payload.get("Trace"), list):
            raise DecodeError(
                "Trace payload has no 'Trace' list",
                decoder=self.name,
                field_name="Trace",
            )
        return payload["Trace"]

    def _decode_invocation(
        self,
        invoc: dict[str, Any],
        tipset: ExtendedTipSet,
        logs_by_cid: dict[str, list[dict[str, Any]]],
        decoded: DecodedTraces,
    ) -> None:
        tx_cid = cid_str(invoc.get("MsgCid"))
        if not tx_cid:
            raise DecodeError("Missing message cid", decoder=self.name, field_name="MsgCid")

        execution_trace = invoc.get("ExecutionTrace")
        if not isinstance(execution_trace, dict):
            raise DecodeError(
                "Missing execution trace",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name="ExecutionTrace",
            )

        block = tipset.block_for_message(tx_cid)
        block_cid = block.cid if block else ""
        receipt = self._optional_dict(invoc, "MsgRct", tx_cid)

        root_index = len(decoded.transactions)
        self._walk(execution_trace, tx_cid, block_cid, decoded.transactions)

        root = decoded.transactions[root_index]
        root.gas_used = self._to_int(receipt.get("GasUsed"), "GasUsed", tx_cid)
        if invoc.get("Error"):
            root.metadata[METADATA_ERROR] = invoc["Error"]
        if tx_cid in logs_by_cid:
            root.metadata[METADATA_ETH_LOGS] = logs_by_cid[tx_cid]

        fee = self._read_fee(self._optional_dict(invoc, "GasCost", tx_cid), tx_cid, block)
        if fee is None:
            return
        decoded.fees.append(fee)
        if fee.total_cost > 0:
            decoded.transactions.append(DraftTransaction(
                level=0,
                tx_cid=tx_cid,
                block_cid=block_cid,
                tx_from=root.tx_from,
                tx_to=fee.miner,
                amount=fee.total_cost,
                method_num=0,
                tx_type=TX_TYPE_FEE,
                status=root.status,
                gas_used=fee.gas_used,
                parent_index=root_index,
                metadata=fee.to_metadata(),
            ))

    def _walk(
        self,
        execution_trace: dict[str, Any],
        tx_cid: str,
        block_cid: str,
        drafts: list[DraftTransaction],
    ) -> None:
        """Depth-first, pre-order walk of the call tree."""
        stack: list[tuple[dict[str, Any], int, Optional[int]]] = [(execution_trace, 0, None)]
        while stack:
            trace, level, parent_index = stack.pop()
            frame = self.read_frame(trace, tx_cid)

            metadata: dict[str, Any] = {}
            if frame.params:
                metadata[METADATA_PARAMS] = frame.params
            if frame.return_value:
                metadata[METADATA_RETURN] = frame.return_value
            if frame.error:
                metadata[METADATA_ERROR] = frame.error

            drafts.append(DraftTransaction(
                level=level,
                tx_cid=tx_cid,
                block_cid=block_cid,
                tx_from=frame.tx_from,
                tx_to=frame.tx_to,
                amount=frame.value,
                method_num=frame.method_num,
                tx_type=method_name(frame.method_num),
                status=exit_code_status(frame.exit_code),
                parent_index=parent_index,
                metadata=metadata,
            ))

            index = len(drafts) - 1
            for subcall in reversed(frame.subcalls):
                if not isinstance(subcall, dict):
                    raise DecodeError(
                        "Subcall is not an object",
                        decoder=self.name,
                        tx_cid=tx_cid,
                        field_name="Subcalls",
                    )
                stack.append((subcall, level + 1, index))

    def _read_fee(
        self,
        gas_cost: Optional[dict[str, Any]],
        tx_cid: str,
        block: Optional[BlockHeader],
    ) -> Optional[FeeEntry]:
        if not gas_cost:
            return None
        try:
            return FeeEntry(
                tx_cid=tx_cid,
                level=0,
                block_cid=block.cid if block else "",
                miner=block.miner if block and block.miner else BURNT_FUNDS_ACTOR,
                gas_used=_int(gas_cost.get("GasUsed")),
                base_fee_burn=_int(gas_cost.get("BaseFeeBurn")),
                over_estimation_burn=_int(gas_cost.get("OverEstimationBurn")),
                miner_penalty=_int(gas_cost.get("MinerPenalty")),
                miner_tip=_int(gas_cost.get("MinerTip")),
                refund=_int(gas_cost.get("Refund")),
                total_cost=_int(gas_cost.get("TotalCost")),
            )
        except (TypeError, ValueError) as e:
            raise DecodeError(
                f"Invalid gas cost: {e}",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name="GasCost",
                original_error=e,
            ) from e

    @staticmethod
    def _group_eth_logs(eth_logs: list[EthLog]) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for log in eth_logs:
            if log.transaction_cid:
                grouped.setdefault(log.transaction_cid, []).append(log.to_dict())
        return grouped

    # ─────────────────────────────────────────────────────────────
    # Frame helpers for subclasses
    # ─────────────────────────────────────────────────────────────

    def _require(self, obj: dict[str, Any], key: str, tx_cid: str) -> Any:
        if not isinstance(obj, dict) or key not in obj:
            raise DecodeError(
                f"Missing field '{key}'",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name=key,
            )
        return obj[key]

    def _optional_dict(self, obj: dict[str, Any], key: str, tx_cid: str) -> dict[str, Any]:
        value = obj.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise DecodeError(
                f"Field '{key}' is not an object",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name=key,
            )
        return value

    def _to_int(self, value: Any, field_name: str, tx_cid: str) -> int:
        try:
            return _int(value)
        except (TypeError, ValueError) as e:
            raise DecodeError(
                f"Invalid integer in '{field_name}': {value!r}",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name=field_name,
                original_error=e,
            ) from e

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, revision={self.revision})>"


def _int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)
