"""
Filecoin Parser - Configuration.

============================================================
CONFIGURATION SURFACE
============================================================

- ConsolidateAddressesToRobust: rewrite short -> robust after resolution
- strict_resolution: fail the parse call when a facet can't be resolved
- DataSourceConfig: node endpoint and persistent store URL

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from filecoin_parser.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


ENV_PREFIX = "FIL_PARSER_"

DEFAULT_NODE_URL = "https://api.node.glif.io/rpc/v1"
DEFAULT_NODE_TIMEOUT = 30.0


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid boolean value '{raw}'", config_key=name)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid numeric value '{raw}'",
            config_key=name,
            original_error=e,
        ) from e


@dataclass
class ConsolidateAddressesToRobust:
    """Rewrite short addresses to their robust form in the output."""
    enable: bool = False
    best_effort: bool = False


@dataclass
class ParserConfig:
    """Options of the transaction assembler."""
    consolidate_addresses_to_robust: ConsolidateAddressesToRobust = field(
        default_factory=ConsolidateAddressesToRobust
    )
    strict_resolution: bool = False

    @classmethod
    def default(cls) -> "ParserConfig":
        return cls()

    @classmethod
    def from_env(cls) -> "ParserConfig":
        load_dotenv()
        return cls(
            consolidate_addresses_to_robust=ConsolidateAddressesToRobust(
                enable=_env_bool(f"{ENV_PREFIX}CONSOLIDATE_ENABLE", False),
                best_effort=_env_bool(f"{ENV_PREFIX}CONSOLIDATE_BEST_EFFORT", False),
            ),
            strict_resolution=_env_bool(f"{ENV_PREFIX}STRICT_RESOLUTION", False),
        )


@dataclass
class DataSourceConfig:
    """
    Where the actors cache gets its data from.

    kv_store_url is a SQLAlchemy URL. When unset, or when the store can't
    be initialized, the cache degrades to the in-memory store.
    """
    node_url: str = DEFAULT_NODE_URL
    node_token: Optional[str] = None
    node_timeout: float = DEFAULT_NODE_TIMEOUT
    kv_store_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.node_url:
            raise ConfigurationError("Node URL must be set", config_key="node_url")
        if self.node_timeout <= 0:
            raise ConfigurationError(
                f"Node timeout must be positive, got {self.node_timeout}",
                config_key="node_timeout",
            )

    @classmethod
    def from_env(cls) -> "DataSourceConfig":
        load_dotenv()
        return cls(
            node_url=os.getenv(f"{ENV_PREFIX}NODE_URL", DEFAULT_NODE_URL),
            node_token=os.getenv(f"{ENV_PREFIX}NODE_TOKEN") or None,
            node_timeout=_env_float(f"{ENV_PREFIX}NODE_TIMEOUT", DEFAULT_NODE_TIMEOUT),
            kv_store_url=os.getenv(f"{ENV_PREFIX}KV_STORE_URL") or None,
        )

    def describe(self) -> str:
        """Printable form without the token."""
        store = self.kv_store_url.split("@")[-1] if self.kv_store_url else "in-memory"
        return f"node={self.node_url} store={store}"
