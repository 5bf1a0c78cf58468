"""Universal Asset Locator (UAL) codec.

A UAL names a knowledge asset by network, storage contract and token id::

    did:dkg:<network>/<contract>/<token_id>       canonical form
    did:dkg:<network>:<contract>:<token_id>       legacy colon form (decode only)

Network names are normalized here and nowhere else: names are lower-cased and
every ``otp*`` network collapses to the literal ``otp``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from kasset.errors import MalformedLocatorError


UAL_PREFIX = "did:dkg:"
LEGACY_NETWORK_PREFIX = "otp"

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_NETWORK_RE = re.compile(r"^[a-z0-9][a-z0-9_.:\-]*$")


def normalize_network(name: Any) -> str:
    """Normalize a network name for on-chain and off-chain use."""
    if not isinstance(name, str) or not name.strip():
        raise MalformedLocatorError(f"network name must be a non-empty string, got {name!r}")
    network = name.strip().lower()
    if network.startswith(LEGACY_NETWORK_PREFIX):
        return LEGACY_NETWORK_PREFIX
    if not _NETWORK_RE.match(network):
        raise MalformedLocatorError(f"invalid network name: {name!r}")
    return network


def _normalize_contract(contract: Any) -> str:
    if not isinstance(contract, str):
        raise MalformedLocatorError(f"contract address must be a string, got {contract!r}")
    address = contract.strip().lower()
    if not _ADDRESS_RE.match(address):
        raise MalformedLocatorError(f"invalid contract address: {contract!r}")
    return address


def _normalize_token_id(token_id: Any) -> int:
    if isinstance(token_id, bool):
        raise MalformedLocatorError(f"invalid token id: {token_id!r}")
    if isinstance(token_id, int):
        value = token_id
    elif isinstance(token_id, str) and token_id.strip().isdigit():
        value = int(token_id.strip())
    else:
        raise MalformedLocatorError(f"invalid token id: {token_id!r}")
    if value < 0:
        raise MalformedLocatorError(f"token id must be non-negative, got {token_id!r}")
    return value


@dataclass(frozen=True)
class ParsedUAL:
    """Decoded locator parts."""
    network: str
    contract: str
    token_id: int

    def encode(self) -> str:
        return encode(self.network, self.contract, self.token_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "contract": self.contract,
            "token_id": self.token_id,
        }


def encode(network: str, contract: str, token_id: Union[int, str]) -> str:
    """Build a canonical UAL."""
    return "{}{}/{}/{}".format(
        UAL_PREFIX,
        normalize_network(network),
        _normalize_contract(contract),
        _normalize_token_id(token_id),
    )


def decode(ual: Any) -> ParsedUAL:
    """Split a UAL into network, contract and token id.

    Raises:
        MalformedLocatorError: missing prefix, wrong segment count, or an
            invalid segment.
    """
    if not isinstance(ual, str):
        raise MalformedLocatorError(f"UAL must be a string, got {type(ual).__name__}")
    text = ual.strip()
    if not text.lower().startswith(UAL_PREFIX):
        raise MalformedLocatorError(f"UAL must start with {UAL_PREFIX!r}: {ual!r}")
    body = text[len(UAL_PREFIX):]

    if "/" in body:
        parts = body.split("/")
    else:
        parts = body.rsplit(":", 2)
    if len(parts) != 3 or not all(parts):
        raise MalformedLocatorError(f"UAL must have network, contract and token id segments: {ual!r}")

    network, contract, token_id = parts
    return ParsedUAL(
        network=normalize_network(network),
        contract=_normalize_contract(contract),
        token_id=_normalize_token_id(token_id),
    )


def is_valid(ual: Any) -> bool:
    try:
        decode(ual)
    except MalformedLocatorError:
        return False
    return True
