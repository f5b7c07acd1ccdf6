# src/reply_ledger/utils/hash.py
"""Hashing helpers for content fingerprints recorded on-chain."""

from __future__ import annotations

import hashlib


def sha256_hex(data: str | bytes) -> str:
    """Return the hexadecimal SHA-256 digest of the supplied data."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def content_hash(text: str) -> str:
    """Return the ``0x``-prefixed SHA-256 of reply text, as stored in ``bytes32``."""
    return "0x" + sha256_hex(text)


def verify_hash(text: str, expected: str) -> bool:
    """Check whether ``text`` hashes to ``expected`` (prefix and case insensitive)."""
    normalized = expected.lower()
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    return sha256_hex(text) == normalized
