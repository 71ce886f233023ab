"""Abuse controls and signed tracking links."""

from brs.security.fingerprint import build_fingerprint, derive_reporter_hash
from brs.security.rate_limit import FingerprintBurstTracker, FixedWindowRateLimiter
from brs.security.tokens import TrackingTokenSigner

__all__ = [
    "build_fingerprint",
    "derive_reporter_hash",
    "FingerprintBurstTracker",
    "FixedWindowRateLimiter",
    "TrackingTokenSigner",
]
