"""Merkle root utilities for assertion identifiers.

An assertion root is an **append-order accumulator** (Merkle mountain range)
over the canonical statement list of an assertion.

Design goals:
- Deterministic across implementations
- Simple reference implementation (not optimized)
- Independent of input ordering (callers pass sorted statements)

Hashing:
- SHA-256
- Domain separation:
  - leaf = SHA256(0x00 || SHA256(statement_utf8))
  - node = SHA256(0x01 || left || right)

Peaks are bagged right-to-left into a single 32-byte root, rendered as
``0x`` + 64 lowercase hex chars.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from kasset.core import sha256_digest


def _is_hex_32(s: str) -> bool:
    if not isinstance(s, str):
        return False
    ss = s.strip().lower()
    if len(ss) != 64:
        return False
    try:
        bytes.fromhex(ss)
        return True
    except ValueError:
        return False


def leaf_hash(statement: str) -> str:
    """Compute the leaf hash of one canonical statement."""
    if not isinstance(statement, str):
        raise ValueError("statement must be a string")
    digest = sha256_digest(statement.encode("utf-8"))
    return sha256_digest(b"\x00" + digest).hex()


def node_hash(left_hex: str, right_hex: str) -> str:
    """Compute a parent hash from two child hashes (each 32 bytes hex)."""
    if not _is_hex_32(left_hex) or not _is_hex_32(right_hex):
        raise ValueError("left_hex and right_hex must be 64 hex chars")
    left = bytes.fromhex(left_hex.strip().lower())
    right = bytes.fromhex(right_hex.strip().lower())
    return sha256_digest(b"\x01" + left + right).hex()


@dataclass(frozen=True)
class Peak:
    height: int
    hash: str


def build_peaks(leaf_hashes: List[str]) -> List[Peak]:
    """Build peaks for a list of leaf hashes (left-to-right append order)."""
    peaks: List[Tuple[int, str]] = []  # (height, hash)
    for lh in leaf_hashes:
        if not _is_hex_32(lh):
            raise ValueError("leaf_hash must be 64 hex chars")
        cur_h = 0
        cur = lh.strip().lower()
        # Merge while the top peak has the same height.
        while peaks and peaks[-1][0] == cur_h:
            left_h, left = peaks.pop()
            cur = node_hash(left, cur)
            cur_h = left_h + 1
        peaks.append((cur_h, cur))
    return [Peak(height=h, hash=d) for (h, d) in peaks]


def bag_peaks(peaks: List[Peak]) -> str:
    """Compute the bagged root from peaks.

    The root is computed by folding peaks from right-to-left using the same node hash:

      bag = peaks[-1]
      for peak in reversed(peaks[:-1]):
          bag = node_hash(peak, bag)

    """
    if not peaks:
        raise ValueError("cannot bag an empty peak list")
    bag = peaks[-1].hash
    for p in reversed(peaks[:-1]):
        bag = node_hash(p.hash, bag)
    return bag


def merkle_root(statements: Iterable[str]) -> str:
    """Compute the ``0x``-prefixed root over statements in the given order."""
    leaves = [leaf_hash(s) for s in statements]
    if not leaves:
        raise ValueError("cannot compute a root over zero statements")
    return "0x" + bag_peaks(build_peaks(leaves))
