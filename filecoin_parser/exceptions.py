"""
Filecoin Parser Exceptions - Custom exception hierarchy.

Every exception carries enough context (offending identity, tipset key,
decoder) to be logged by the embedding service.

FilParserError (base)
├── ResolutionError
│   ├── AddressNotCachedError
│   └── ResolutionUnavailableError
├── NodeError
│   ├── NodeRequestError
│   └── ActorNotFoundError
├── CacheError
│   └── StoreInitializationError
├── DecodeError
├── UnsupportedVersionError
├── ConsolidationError
├── BaseFeeUnavailableError
└── ConfigurationError
"""

from datetime import datetime, timezone
from typing import Any, Optional


class FilParserError(Exception):
    """Base exception for all parser errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        for key, value in self.context.items():
            if value:
                parts.append(f"[{key}={value}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


# ─────────────────────────────────────────────────────────────
# Address resolution
# ─────────────────────────────────────────────────────────────

class ResolutionError(FilParserError):
    """Error resolving one facet of an actor address."""

    def __init__(
        self,
        message: str,
        identity: Optional[str] = None,
        facet: Optional[str] = None,
        tipset_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"identity": identity, "facet": facet, "tipset_key": tipset_key}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.identity = identity
        self.facet = facet
        self.tipset_key = tipset_key


class AddressNotCachedError(ResolutionError):
    """The offline store holds no value for the requested facet.

    A normal miss signal, not a failure.
    """
    pass


class ResolutionUnavailableError(ResolutionError):
    """Neither the offline store nor the node could produce the facet."""
    pass


# ─────────────────────────────────────────────────────────────
# Node
# ─────────────────────────────────────────────────────────────

class NodeError(FilParserError):
    """Error talking to the Lotus node."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"method": method}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.method = method


class NodeRequestError(NodeError):
    """Transport, HTTP or JSON-RPC level failure."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        rpc_code: Optional[int] = None,
        response_body: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, method, original_error, context)
        self.status_code = status_code
        self.rpc_code = rpc_code
        self.response_body = response_body

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "rpc_code": self.rpc_code,
            "response_body": self.response_body,
        })
        return data


class ActorNotFoundError(NodeError):
    """The actor does not exist at the requested chain state."""
    pass


# ─────────────────────────────────────────────────────────────
# Offline store
# ─────────────────────────────────────────────────────────────

class CacheError(FilParserError):
    """Error with offline store operations."""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        operation: str = "read",  # read, write, init
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"store": store, "operation": operation}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.store = store
        self.operation = operation


class StoreInitializationError(CacheError):
    """The persistent store could not be initialized."""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, store, "init", original_error, context)


# ─────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────

class DecodeError(FilParserError):
    """Raw trace payload does not match the decoder's expectations."""

    def __init__(
        self,
        message: str,
        decoder: Optional[str] = None,
        tx_cid: Optional[str] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"decoder": decoder, "tx_cid": tx_cid, "field_name": field_name}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.decoder = decoder
        self.tx_cid = tx_cid
        self.field_name = field_name


class UnsupportedVersionError(FilParserError):
    """No decoder declares the reported node version."""

    def __init__(
        self,
        message: str,
        version: Optional[str] = None,
        supported_versions: Optional[list[str]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"version": version}
        ctx.update(context or {})
        super().__init__(message, None, ctx)
        self.version = version
        self.supported_versions = supported_versions or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["supported_versions"] = self.supported_versions
        return data


class ConsolidationError(FilParserError):
    """An address could not be rewritten to its robust form."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        tipset_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"address": address, "tipset_key": tipset_key}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.address = address


class BaseFeeUnavailableError(FilParserError):
    """Neither the traces nor the tipset provide a base fee."""
    pass


class ConfigurationError(FilParserError):
    """Invalid configuration value."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = {"config_key": config_key}
        ctx.update(context or {})
        super().__init__(message, original_error, ctx)
        self.config_key = config_key
