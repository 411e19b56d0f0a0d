"""
Address helpers.

Filecoin addresses are strings of the form ``<network><protocol><payload>``
where network is ``f`` (mainnet) or ``t`` (testnets) and protocol ``0``
denotes the short ID form. Everything else (``1``, ``2``, ``3``, ``4``) is
a robust form.
"""

from typing import Optional


MAINNET_PREFIX = "f"
TESTNET_PREFIX = "t"

ID_PROTOCOL = "0"

# System actors which don't have an associated robust address
SYSTEM_ACTORS_ID = frozenset(
    f"{network}{actor_id}"
    for network in (MAINNET_PREFIX, TESTNET_PREFIX)
    for actor_id in ("00", "01", "02", "03", "04", "05", "06", "07", "099")
)

SYSTEM_ACTOR = "f00"
BURNT_FUNDS_ACTOR = "f099"


def is_system_actor(address: Optional[str]) -> bool:
    return bool(address) and address in SYSTEM_ACTORS_ID


def is_id_address(address: Optional[str]) -> bool:
    """True when the address is in short (ID) form, e.g. ``f01234``."""
    if not address or len(address) < 3:
        return False
    return (
        address[0] in (MAINNET_PREFIX, TESTNET_PREFIX)
        and address[1] == ID_PROTOCOL
        and address[2:].isdigit()
    )


def id_address(actor_id: int, network: str = MAINNET_PREFIX) -> str:
    """Build the short form for a numeric actor id."""
    if actor_id < 0:
        raise ValueError(f"Invalid actor id: {actor_id}")
    return f"{network}{ID_PROTOCOL}{actor_id}"


def network_of(address: str) -> str:
    if address and address[0] in (MAINNET_PREFIX, TESTNET_PREFIX):
        return address[0]
    return MAINNET_PREFIX
