"""
Loaders for stored node payloads.

Heights are stored as gzip-compressed JSON files named
``<prefix>_<height>.json.gz`` (prefix: traces, tipset, ethlog); genesis
fixtures are plain JSON named ``<network>_genesis_balances.json`` and
``<network>_genesis_tipset.json``.
"""

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Union

from filecoin_parser.models import EthLog, ExtendedTipSet, GenesisBalances


logger = logging.getLogger(__name__)


PathLike = Union[str, Path]

FILE_DATA_EXTENSION = "json.gz"
TRACES_PREFIX = "traces"
TIPSET_PREFIX = "tipset"
ETH_LOG_PREFIX = "ethlog"


def height_filename(data_path: PathLike, prefix: str, height: Union[int, str]) -> Path:
    return Path(data_path) / f"{prefix}_{height}.{FILE_DATA_EXTENSION}"


def read_gz_file(path: PathLike) -> bytes:
    with gzip.open(path, "rb") as f:
        return f.read()


def read_gz_json(path: PathLike) -> Any:
    return json.loads(read_gz_file(path))


def read_traces(data_path: PathLike, height: Union[int, str]) -> bytes:
    """Raw traces, left undecoded for the protocol decoders."""
    return read_gz_file(height_filename(data_path, TRACES_PREFIX, height))


def read_tipset(data_path: PathLike, height: Union[int, str]) -> ExtendedTipSet:
    return ExtendedTipSet.from_dict(read_gz_json(height_filename(data_path, TIPSET_PREFIX, height)))


def read_eth_logs(data_path: PathLike, height: Union[int, str]) -> list[EthLog]:
    raw = read_gz_json(height_filename(data_path, ETH_LOG_PREFIX, height)) or []
    return [EthLog.from_dict(item) for item in raw]


def read_genesis(data_path: PathLike, network: str) -> tuple[GenesisBalances, ExtendedTipSet]:
    balances_path = Path(data_path) / f"{network}_genesis_balances.json"
    tipset_path = Path(data_path) / f"{network}_genesis_tipset.json"

    try:
        balances = GenesisBalances.from_dict(json.loads(balances_path.read_text()))
        tipset = ExtendedTipSet.from_dict(json.loads(tipset_path.read_text()))
    except (OSError, ValueError) as e:
        logger.error(f"Error reading genesis data for '{network}': {e}")
        raise

    return balances, tipset
