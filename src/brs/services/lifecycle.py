"""Report lifecycle transitions."""

from __future__ import annotations

from brs.errors import InvalidStatusTransitionError
from brs.models import REPORT_STATUSES

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "new": frozenset({"triaged", "invalid"}),
    "triaged": frozenset({"forwarded", "resolved", "invalid"}),
    "forwarded": frozenset({"resolved", "invalid"}),
    "resolved": frozenset(),
    "invalid": frozenset(),
}

def ensure_transition_allowed(from_status: str, to_status: str) -> None:
    """Raise InvalidStatusTransitionError naming both ends of an illegal move."""
    if to_status not in REPORT_STATUSES:
        raise InvalidStatusTransitionError(from_status, to_status)
    if to_status not in STATUS_TRANSITIONS.get(from_status, frozenset()):
        raise InvalidStatusTransitionError(from_status, to_status)
