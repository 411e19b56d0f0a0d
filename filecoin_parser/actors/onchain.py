"""
On-chain resolver - authoritative source for actor facets.

Every call goes to the node; nothing is cached here.
"""

from filecoin_parser.exceptions import ActorNotFoundError
from filecoin_parser.models import EMPTY_TIPSET_KEY, TipSetKey
from filecoin_parser.node import LotusClient


class OnChainResolver:

    def __init__(self, client: LotusClient) -> None:
        self._client = client

    @property
    def client(self) -> LotusClient:
        return self._client

    async def get_actor_code(self, identity: str, key: TipSetKey) -> str:
        """Code CID of the actor at the given chain state."""
        actor = await self._client.state_get_actor(identity, key)
        code = actor.get("Code")
        cid = code.get("/", "") if isinstance(code, dict) else str(code or "")
        if not cid:
            raise ActorNotFoundError(
                f"Actor {identity} has no code at {key}",
                method="Filecoin.StateGetActor",
                context={"address": identity, "tipset_key": str(key)},
            )
        return cid

    async def get_robust_address(self, identity: str) -> str:
        return await self._client.state_lookup_robust_address(identity, EMPTY_TIPSET_KEY)

    async def get_short_address(self, identity: str) -> str:
        return await self._client.state_lookup_id(identity, EMPTY_TIPSET_KEY)

    async def close(self) -> None:
        await self._client.close()
