"""
Shared fixtures for the filecoin_parser tests.

============================================================
PURPOSE
============================================================
- FakeLotusClient: in-process node with per-method call counters
- Trace payload builders for both execution trace layouts
- Ready-made tipsets, caches and parsers

============================================================
"""

import json
from collections import Counter
from typing import Any, Optional

import pytest

from filecoin_parser.actors import ActorsCache, MemoryStore, OnChainResolver
from filecoin_parser.exceptions import ActorNotFoundError, NodeRequestError
from filecoin_parser.models import (
    EMPTY_TIPSET_KEY,
    BlockHeader,
    ExtendedTipSet,
    TipSetKey,
)


# ============================================================
# FAKE NODE
# ============================================================

ACTORS = {
    "f00": {"robust": "", "code": "bafk2bzacesystem"},
    "f01": {"robust": "", "code": "bafk2bzaceinit"},
    "f02": {"robust": "", "code": "bafk2bzacereward"},
    "f099": {"robust": "", "code": "bafk2bzaceaccount"},
    "f01000": {"robust": "f2minerrobustaddress", "code": "bafk2bzaceminer"},
    "f01234": {"robust": "f1aliceaddress", "code": "bafk2bzaceaccount"},
    "f05678": {"robust": "f1bobaddress", "code": "bafk2bzaceaccount"},
    "f0900": {"robust": "f410fcontractaddress", "code": "bafk2bzaceevm"},
    "f0777": {"robust": "", "code": "bafk2bzacepaych"},
}


class FakeLotusClient:
    """Answers state lookups from a static actor table."""

    def __init__(self, actors: Optional[dict[str, dict[str, str]]] = None) -> None:
        self.actors = dict(actors or ACTORS)
        self.calls: Counter = Counter()
        self.fail = False
        self.closed = False

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def _find(self, address: str) -> str:
        if self.fail:
            raise NodeRequestError("Connection error: node unreachable")
        if address in self.actors:
            return address
        for short, actor in self.actors.items():
            if actor["robust"] and actor["robust"] == address:
                return short
        raise ActorNotFoundError(f"actor not found: {address}")

    async def state_get_actor(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> dict[str, Any]:
        self.calls["StateGetActor"] += 1
        short = self._find(address)
        return {"Code": {"/": self.actors[short]["code"]}, "Nonce": 0, "Balance": "0"}

    async def state_lookup_robust_address(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> str:
        self.calls["StateLookupRobustAddress"] += 1
        short = self._find(address)
        robust = self.actors[short]["robust"]
        if not robust:
            raise ActorNotFoundError(f"actor {address} has no robust address")
        return robust

    async def state_lookup_id(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> str:
        self.calls["StateLookupID"] += 1
        return self._find(address)

    async def close(self) -> None:
        self.closed = True


# ============================================================
# PAYLOAD BUILDERS
# ============================================================

def make_trace(
    frm: str,
    to: str,
    value: int = 0,
    method: int = 0,
    exit_code: int = 0,
    subcalls: Optional[list[dict[str, Any]]] = None,
    params: Optional[str] = None,
    layout: str = "v2",
) -> dict[str, Any]:
    """One ExecutionTrace frame in either node layout."""
    msg: dict[str, Any] = {
        "From": frm,
        "To": to,
        "Value": str(value),
        "Method": method,
        "Params": params,
        "GasLimit": 10000000,
    }
    receipt: dict[str, Any] = {"ExitCode": exit_code, "Return": None}
    trace: dict[str, Any] = {"Msg": msg, "MsgRct": receipt, "Subcalls": subcalls or []}

    if layout == "v2":
        msg["ParamsCodec"] = 0x51 if params else 0
        msg["ReadOnly"] = False
        receipt["ReturnCodec"] = 0
        trace["GasCharges"] = []
        trace["InvokedActor"] = {"Id": 0, "State": {"Code": {"/": "bafk2bzace"}}}
    else:
        receipt["GasUsed"] = 0
        trace["Error"] = ""
        trace["Duration"] = 0
    return trace


def make_invocation(
    msg_cid: str,
    trace: dict[str, Any],
    gas_used: int = 1000,
    base_fee: int = 100,
    miner_tip: int = 50,
    with_gas_cost: bool = True,
) -> dict[str, Any]:
    """One InvocResult entry of a ComputeStateOutput."""
    invocation: dict[str, Any] = {
        "MsgCid": {"/": msg_cid},
        "Msg": dict(trace["Msg"], CID={"/": msg_cid}),
        "MsgRct": {"ExitCode": trace["MsgRct"]["ExitCode"], "Return": None, "GasUsed": gas_used},
        "ExecutionTrace": trace,
        "Error": "",
        "Duration": 1200,
    }
    if with_gas_cost:
        burn = base_fee * gas_used
        invocation["GasCost"] = {
            "Message": {"/": msg_cid},
            "GasUsed": str(gas_used),
            "BaseFeeBurn": str(burn),
            "OverEstimationBurn": "0",
            "MinerPenalty": "0",
            "MinerTip": str(miner_tip),
            "Refund": "0",
            "TotalCost": str(burn + miner_tip),
        }
    return invocation


def make_payload(invocations: list[dict[str, Any]]) -> bytes:
    return json.dumps({"Root": {"/": "bafyroot"}, "Trace": invocations}).encode()


def make_tipset(
    height: int = 2907480,
    parent_base_fee: int = 100,
    block_messages: Optional[dict[str, list[str]]] = None,
) -> ExtendedTipSet:
    blocks = [
        BlockHeader(cid="bafyblock1", miner="f01000", height=height,
                    parent_base_fee=parent_base_fee, timestamp=1680000000),
        BlockHeader(cid="bafyblock2", miner="f01000", height=height,
                    parent_base_fee=parent_base_fee, timestamp=1680000000),
    ]
    return ExtendedTipSet(
        key=TipSetKey(("bafyblock1", "bafyblock2")),
        height=height,
        blocks=blocks,
        block_messages=block_messages or {},
    )


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def fake_client():
    return FakeLotusClient()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def actors_cache(fake_client, memory_store):
    return ActorsCache(memory_store, OnChainResolver(fake_client))


@pytest.fixture
def tipset():
    return make_tipset(block_messages={"bafyblock2": ["bafymsg2"]})


@pytest.fixture
def sample_payload():
    """Two messages: a transfer and a contract call with nested subcalls."""
    transfer = make_invocation(
        "bafymsg1",
        make_trace("f1aliceaddress", "f05678", value=1000),
        gas_used=1000,
        base_fee=100,
    )
    contract_call = make_invocation(
        "bafymsg2",
        make_trace(
            "f01234", "f0900", value=5, method=3844450837, params="WCBkYXRh",
            subcalls=[
                make_trace("f0900", "f05678", value=2, subcalls=[
                    make_trace("f05678", "f01", method=2, exit_code=16),
                ]),
                make_trace("f0900", "f1bobaddress", value=3),
            ],
        ),
        gas_used=2000,
        base_fee=120,
    )
    return make_payload([transfer, contract_call])
