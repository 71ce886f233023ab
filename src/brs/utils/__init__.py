"""Utility helpers."""

from brs.utils.geo import distance_meters
from brs.utils.hashing import hash_text, sha256_hex
from brs.utils.logging import configure_logging, get_logger
from brs.utils.time import same_utc_day, utc_now

__all__ = [
    "distance_meters",
    "hash_text",
    "sha256_hex",
    "configure_logging",
    "get_logger",
    "same_utc_day",
    "utc_now",
]
