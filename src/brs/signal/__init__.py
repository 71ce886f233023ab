"""Same-bike grouping, reconfirmation and signal scoring."""

from brs.signal.grouping import resolve_bike_group, select_bike_group_id
from brs.signal.reconfirmation import compute_reconfirmation
from brs.signal.scoring import score_duplicate_candidate, score_signal_group_candidate
from brs.signal.strength import compute_signal_strength
from brs.signal.timeline import build_signal_details

__all__ = [
    "resolve_bike_group",
    "select_bike_group_id",
    "compute_reconfirmation",
    "score_duplicate_candidate",
    "score_signal_group_candidate",
    "compute_signal_strength",
    "build_signal_details",
]
