"""Hashing helpers for pseudonymous identifiers."""

from __future__ import annotations

import hashlib


def sha256_hex(value: str) -> str:
    """Return the full SHA-256 hex digest for the provided text."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_text(value: str) -> str:
    """Return a short SHA-256 hash for the provided text."""
    return sha256_hex(value)[:12]
