"""Operator-facing signal timeline for one bike group."""

from __future__ import annotations

from typing import Iterable, Optional

from brs.models import BikeGroup, Report, ReporterMatchKind, SignalDetails, SignalTimelineEntry
from brs.signal.reconfirmation import (
    COUNTED_CLASSES,
    SIGNAL_RECONFIRMATION_GAP_DAYS,
    bike_group_to_signal_summary,
    compute_reconfirmation,
    sort_history,
)
from brs.signal.strength import STRONG_SIGNAL_MIN_UNIQUE_REPORTERS

_ALPHABET_SIZE = 26


def reporter_label(index: int) -> str:
    """``Reporter A`` .. ``Reporter Z``, then ``Reporter A2`` and so on."""
    letter = chr(ord("A") + index % _ALPHABET_SIZE)
    suffix = str(index // _ALPHABET_SIZE + 1) if index >= _ALPHABET_SIZE else ""
    return f"Reporter {letter}{suffix}"


def label_reporters(reports: Iterable[Report]) -> dict[str, str]:
    """Map reporter hashes to pseudonymous labels in order of first appearance."""
    labels: dict[str, str] = {}
    for report in reports:
        if report.reporter_hash not in labels:
            labels[report.reporter_hash] = reporter_label(len(labels))
    return labels


def build_signal_details(
    reports: Iterable[Report],
    group: BikeGroup,
    gap_days: int = SIGNAL_RECONFIRMATION_GAP_DAYS,
    min_unique_reporters: int = STRONG_SIGNAL_MIN_UNIQUE_REPORTERS,
) -> SignalDetails:
    """Per-report classification for a group, reporters shown only by label."""
    history = sort_history(reports)
    result = compute_reconfirmation(history, gap_days, min_unique_reporters)
    labels = label_reporters(history)

    timeline: list[SignalTimelineEntry] = []
    for report in history:
        classification = result.classification_for(report.id) or "initial"

        match_kind: Optional[ReporterMatchKind] = None
        if classification == "counted_same_reporter":
            match_kind = "same_reporter"
        elif classification == "counted_distinct_reporter":
            match_kind = "distinct_reporter"

        timeline.append(
            SignalTimelineEntry(
                report_id=report.id,
                public_id=report.public_id,
                created_at=report.created_at,
                reporter_label=labels.get(report.reporter_hash, "Reporter"),
                classification=classification,
                reporter_match_kind=match_kind,
                qualified=classification in COUNTED_CLASSES,
                ignored_same_day=classification == "ignored_same_day",
            )
        )

    return SignalDetails(
        bike_group=group,
        signal_summary=bike_group_to_signal_summary(group),
        signal_strength=group.signal_strength,
        timeline=timeline,
    )
