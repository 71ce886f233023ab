"""Pseudonymous identifiers for abuse detection and reporter attribution."""

from __future__ import annotations

import uuid
from typing import Optional

from brs.utils.hashing import sha256_hex


def build_fingerprint(
    ip: str,
    user_agent: Optional[str] = None,
    accept_language: Optional[str] = None,
) -> str:
    """Derive the burst-detection fingerprint from request metadata."""
    return sha256_hex(f"{ip}|{user_agent or 'na'}|{accept_language or 'na'}")


def generate_anonymous_reporter_id() -> str:
    return str(uuid.uuid4())


def derive_reporter_hash(anonymous_reporter_id: str, secret: str) -> str:
    """Stable, non-reversible reporter pseudonym used for reconfirmation attribution."""
    return sha256_hex(f"{anonymous_reporter_id}:{secret}")
