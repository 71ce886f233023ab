"""Signal tier derived from a bike group's reconfirmation counters."""

from __future__ import annotations

from brs.models import ReportSignalSummary, SignalStrength

STRONG_SIGNAL_MIN_UNIQUE_REPORTERS = 2

SIGNAL_STRENGTH_PRIORITY: dict[str, int] = {
    "none": 0,
    "weak_same_reporter": 1,
    "strong_distinct_reporters": 2,
}


def compute_signal_strength(
    summary: ReportSignalSummary,
    min_unique_reporters: int = STRONG_SIGNAL_MIN_UNIQUE_REPORTERS,
) -> SignalStrength:
    """Evaluate the tier fresh from counters; tiers can drop on recomputation."""
    if (
        summary.distinct_reporter_reconfirmations > 0
        and summary.unique_reporters >= min_unique_reporters
    ):
        return "strong_distinct_reporters"

    if summary.has_qualifying_reconfirmation:
        return "weak_same_reporter"

    return "none"
