"""Content addressing helpers (CID v1 and SHA-256)."""

from __future__ import annotations

import base64
import hashlib
from typing import Union

Payload = Union[str, bytes]

# CIDv1 prefix: version 1, multicodec "raw" (0x55), multihash sha2-256 (0x12) with a 32 byte digest.
_CID_V1_RAW_SHA256_PREFIX = bytes([0x01, 0x55, 0x12, 0x20])
_MULTIBASE_BASE32 = "b"


def _to_bytes(payload: Payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    return payload.encode("utf-8")


def calculate_sha256(payload: Payload) -> str:
    """Return the lowercase hex SHA-256 digest of the payload."""
    return hashlib.sha256(_to_bytes(payload)).hexdigest()


def calculate_cid(payload: Payload) -> str:
    """Return the CIDv1 (raw codec, sha2-256, base32) string of the payload.

    Produces the same identifier IPFS assigns to a raw block, e.g. ``bafkrei...``.
    """
    digest = hashlib.sha256(_to_bytes(payload)).digest()
    encoded = base64.b32encode(_CID_V1_RAW_SHA256_PREFIX + digest).decode("ascii")
    return _MULTIBASE_BASE32 + encoded.lower().rstrip("=")


__all__ = ["calculate_cid", "calculate_sha256"]
