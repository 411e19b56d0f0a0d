"""
Lotus Node Client - Minimal JSON-RPC client for state queries.

Only the three state lookups the actors cache needs are exposed. Request
timeouts are enforced by the aiohttp session; any failure surfaces as a
NodeError and is never retried here.
"""

import asyncio
import itertools
import logging
import time
from typing import Any, Optional

import aiohttp

from filecoin_parser.exceptions import ActorNotFoundError, NodeRequestError
from filecoin_parser.models import EMPTY_TIPSET_KEY, TipSetKey


logger = logging.getLogger(__name__)


# Lotus reports missing actors through the error message only
_NOT_FOUND_MARKERS = ("not found", "no such actor")


class LotusClient:
    """
    JSON-RPC 2.0 client for a Lotus full node.

    Usage:
        async with LotusClient("https://node/rpc/v1") as client:
            short = await client.state_lookup_id("f1abc...")
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        self.latency_ms: Optional[float] = None

    @property
    def url(self) -> str:
        return self._url

    # ─────────────────────────────────────────────────────────────
    # State API
    # ─────────────────────────────────────────────────────────────

    async def state_get_actor(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> dict[str, Any]:
        result = await self.call("Filecoin.StateGetActor", [address, key.to_rpc()])
        if not isinstance(result, dict):
            raise ActorNotFoundError(
                f"Actor {address} not found",
                method="Filecoin.StateGetActor",
                context={"address": address, "tipset_key": str(key)},
            )
        return result

    async def state_lookup_robust_address(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> str:
        return await self._lookup_address("Filecoin.StateLookupRobustAddress", address, key)

    async def state_lookup_id(self, address: str, key: TipSetKey = EMPTY_TIPSET_KEY) -> str:
        return await self._lookup_address("Filecoin.StateLookupID", address, key)

    async def _lookup_address(self, method: str, address: str, key: TipSetKey) -> str:
        result = await self.call(method, [address, key.to_rpc()])
        if not result:
            raise ActorNotFoundError(
                f"No address returned for {address}",
                method=method,
                context={"address": address, "tipset_key": str(key)},
            )
        return str(result)

    # ─────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────

    async def call(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        body = await self._post(method, payload)
        logger.debug(f"[LotusClient] {method} answered in {self.latency_ms or 0:.1f}ms")

        if not isinstance(body, dict):
            raise NodeRequestError(
                f"Unexpected response body: {type(body).__name__}",
                method=method,
                response_body=str(body)[:500],
            )

        error = body.get("error")
        if error:
            message = str(error.get("message", error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if any(marker in message.lower() for marker in _NOT_FOUND_MARKERS):
                raise ActorNotFoundError(message, method=method, context={"params": params})
            raise NodeRequestError(
                f"RPC error: {message}",
                method=method,
                rpc_code=code,
            )

        return body.get("result")

    async def _post(self, method: str, payload: dict[str, Any]) -> Any:
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.post(self._url, json=payload) as response:
                self.latency_ms = (time.time() - start_time) * 1000

                if response.status >= 400:
                    text = await response.text()
                    raise NodeRequestError(
                        f"HTTP {response.status}",
                        method=method,
                        status_code=response.status,
                        response_body=text[:500],
                    )

                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise NodeRequestError(
                f"Connection error: {e}",
                method=method,
                original_error=e,
            ) from e
        except asyncio.TimeoutError as e:
            raise NodeRequestError(
                "Request timed out",
                method=method,
                original_error=e,
            ) from e
        except ValueError as e:
            raise NodeRequestError(
                "Invalid JSON response",
                method=method,
                original_error=e,
            ) from e

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "LotusClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<LotusClient(url={self._url})>"
