"""Reconfirmation classification over a bike group's full report history.

The classifier is a pure function of the history: it is rerun from scratch
every time a report joins a group instead of updating counters
incrementally, so replaying or reordering stored reports always converges on
the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from brs.models import BikeGroup, ReconfirmationClass, Report, ReportSignalSummary, SignalStrength
from brs.signal.strength import STRONG_SIGNAL_MIN_UNIQUE_REPORTERS, compute_signal_strength
from brs.utils.time import days_between, same_utc_day

SIGNAL_RECONFIRMATION_GAP_DAYS = 28

COUNTED_CLASSES: frozenset[str] = frozenset(
    {"counted_same_reporter", "counted_distinct_reporter"}
)


@dataclass
class ReconfirmationResult:
    summary: ReportSignalSummary
    signal_strength: SignalStrength
    classification_by_report_id: dict[int, ReconfirmationClass] = field(default_factory=dict)

    def classification_for(self, report_id: int) -> Optional[ReconfirmationClass]:
        return self.classification_by_report_id.get(report_id)


def sort_history(reports: Iterable[Report]) -> list[Report]:
    """Order by creation time; the id breaks exact timestamp ties."""
    return sorted(reports, key=lambda report: (report.created_at, report.id))


def compute_reconfirmation(
    reports: Iterable[Report],
    gap_days: int = SIGNAL_RECONFIRMATION_GAP_DAYS,
    min_unique_reporters: int = STRONG_SIGNAL_MIN_UNIQUE_REPORTERS,
) -> ReconfirmationResult:
    """Classify every report in a group and derive the aggregate counters."""
    history = sort_history(reports)
    classification: dict[int, ReconfirmationClass] = {}

    same_reporter = 0
    distinct_reporter = 0
    first_qualifying_at: Optional[datetime] = None
    last_qualifying_at: Optional[datetime] = None

    for index, current in enumerate(history):
        if index == 0:
            classification[current.id] = "initial"
            continue

        earlier = history[:index]
        same_day_repeat = any(
            candidate.reporter_hash == current.reporter_hash
            and same_utc_day(candidate.created_at, current.created_at)
            for candidate in earlier
        )
        if same_day_repeat:
            classification[current.id] = "ignored_same_day"
            continue

        # Gap is measured against the most recent prior report, not the first.
        previous = earlier[-1]
        if days_between(previous.created_at, current.created_at) < gap_days:
            classification[current.id] = "non_qualifying"
            continue

        seen_reporters = {candidate.reporter_hash for candidate in earlier}
        if current.reporter_hash in seen_reporters:
            same_reporter += 1
            classification[current.id] = "counted_same_reporter"
        else:
            distinct_reporter += 1
            classification[current.id] = "counted_distinct_reporter"

        if first_qualifying_at is None:
            first_qualifying_at = current.created_at
        last_qualifying_at = current.created_at

    summary = ReportSignalSummary(
        total_reports=len(history),
        unique_reporters=len({report.reporter_hash for report in history}),
        same_reporter_reconfirmations=same_reporter,
        distinct_reporter_reconfirmations=distinct_reporter,
        first_qualifying_reconfirmation_at=first_qualifying_at,
        last_qualifying_reconfirmation_at=last_qualifying_at,
        last_report_at=history[-1].created_at if history else None,
        has_qualifying_reconfirmation=(same_reporter + distinct_reporter) > 0,
    )
    return ReconfirmationResult(
        summary=summary,
        signal_strength=compute_signal_strength(summary, min_unique_reporters),
        classification_by_report_id=classification,
    )


def apply_summary_to_bike_group(
    group: BikeGroup, result: ReconfirmationResult, now: datetime
) -> BikeGroup:
    """Return a copy of the group carrying the recomputed counters. The anchor is kept."""
    summary = result.summary
    return group.model_copy(
        update={
            "updated_at": now,
            "last_report_at": summary.last_report_at or group.last_report_at,
            "total_reports": summary.total_reports,
            "unique_reporters": summary.unique_reporters,
            "same_reporter_reconfirmations": summary.same_reporter_reconfirmations,
            "distinct_reporter_reconfirmations": summary.distinct_reporter_reconfirmations,
            "first_qualifying_reconfirmation_at": summary.first_qualifying_reconfirmation_at,
            "last_qualifying_reconfirmation_at": summary.last_qualifying_reconfirmation_at,
            "signal_strength": result.signal_strength,
        }
    )


def bike_group_to_signal_summary(group: BikeGroup) -> ReportSignalSummary:
    return ReportSignalSummary(
        total_reports=group.total_reports,
        unique_reporters=group.unique_reporters,
        same_reporter_reconfirmations=group.same_reporter_reconfirmations,
        distinct_reporter_reconfirmations=group.distinct_reporter_reconfirmations,
        first_qualifying_reconfirmation_at=group.first_qualifying_reconfirmation_at,
        last_qualifying_reconfirmation_at=group.last_qualifying_reconfirmation_at,
        last_report_at=group.last_report_at,
        has_qualifying_reconfirmation=(
            group.same_reporter_reconfirmations + group.distinct_reporter_reconfirmations
        )
        > 0,
    )
