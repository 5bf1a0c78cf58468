"""Core primitives for the knowledge asset client.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (sorted keys, no whitespace)
- Fixed-width packing of on-chain values (address, uint256, bytes32)
- YAML/JSON loading with consistent encoding

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from typing import Any, Union

import yaml

# Package root, computed once at module load
PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"

HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
HEX_BYTES32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def sha256_digest(data: bytes) -> bytes:
    """Compute the raw 32-byte SHA-256 digest."""
    return hashlib.sha256(data).digest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded

    Used for content-derived blank node labels. Floats are accepted and
    serialized with ``repr`` semantics.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def pack_address(address: str) -> bytes:
    """Pack a 20-byte address the way ``abi.encodePacked`` does."""
    if not isinstance(address, str) or not HEX_ADDRESS_RE.match(address):
        raise ValueError(f"not a 20-byte hex address: {address!r}")
    return bytes.fromhex(strip_hex_prefix(address))


def pack_bytes32(value: str) -> bytes:
    """Pack a 32-byte hex value (``0x`` prefixed)."""
    if not isinstance(value, str) or not HEX_BYTES32_RE.match(value):
        raise ValueError(f"not a 32-byte hex value: {value!r}")
    return bytes.fromhex(strip_hex_prefix(value))


def pack_uint256(value: Union[int, str]) -> bytes:
    """Pack an unsigned integer as a big-endian 32-byte word."""
    n = int(value)
    if n < 0 or n >= 2 ** 256:
        raise ValueError(f"uint256 out of range: {value!r}")
    return n.to_bytes(32, "big")
