"""Candidate scoring for duplicate suggestions and same-bike matching.

Both scorers share one weighted formula::

    score = 0.6 * distance + 0.25 * tag_overlap + 0.15 * recency

Every sub-score is clamped to [0, 1] and the result is rounded to four
decimals so that scores compare stably.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol, Sequence

from brs.models import ReportLocation
from brs.utils.geo import distance_meters
from brs.utils.time import days_between

DISTANCE_WEIGHT = 0.6
TAG_OVERLAP_WEIGHT = 0.25
RECENCY_WEIGHT = 0.15

DEDUPE_RADIUS_METERS = 15.0
DEDUPE_LOOKBACK_DAYS = 30
SIGNAL_MATCH_RADIUS_METERS = 10.0
SIGNAL_CANDIDATE_LOOKBACK_DAYS = 180
RECENCY_HORIZON_DAYS = 30


class Locatable(Protocol):
    location: ReportLocation
    tags: list[str]


class Candidate(Locatable, Protocol):
    id: int
    created_at: datetime


@dataclass(frozen=True)
class DedupeCandidate:
    report_id: int
    score: float
    distance_meters: float


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def tag_overlap_ratio(source: Iterable[str], target: Iterable[str]) -> float:
    """Jaccard similarity of two tag collections."""
    source_set = set(source)
    target_set = set(target)
    union = source_set | target_set
    if not union:
        return 0.0
    return len(source_set & target_set) / len(union)


def has_shared_tags(source: Iterable[str], target: Iterable[str]) -> bool:
    return not set(source).isdisjoint(target)


def recency_score(created_at: datetime, now: datetime) -> float:
    """1 for a brand new candidate, falling to 0 after the recency horizon."""
    age_days = days_between(created_at, now)
    return clamp01(1 - age_days / RECENCY_HORIZON_DAYS)


def dedupe_lookback_start(now: datetime, lookback_days: int = DEDUPE_LOOKBACK_DAYS) -> datetime:
    return now - timedelta(days=lookback_days)


def signal_lookback_start(
    now: datetime, lookback_days: int = SIGNAL_CANDIDATE_LOOKBACK_DAYS
) -> datetime:
    return now - timedelta(days=lookback_days)


def _distance_between(incoming: Locatable, candidate: Locatable) -> float:
    return distance_meters(
        incoming.location.lat,
        incoming.location.lng,
        candidate.location.lat,
        candidate.location.lng,
    )


def _weighted_score(
    distance: float,
    radius: float,
    incoming_tags: Sequence[str],
    candidate_tags: Sequence[str],
    candidate_created_at: datetime,
    now: datetime,
) -> float:
    distance_part = clamp01(1 - distance / radius)
    overlap_part = tag_overlap_ratio(incoming_tags, candidate_tags)
    recency_part = recency_score(candidate_created_at, now)
    score = (
        distance_part * DISTANCE_WEIGHT
        + overlap_part * TAG_OVERLAP_WEIGHT
        + recency_part * RECENCY_WEIGHT
    )
    return round(score, 4)


def score_duplicate_candidate(
    incoming: Locatable,
    candidate: Candidate,
    now: datetime,
    radius_meters: float = DEDUPE_RADIUS_METERS,
) -> Optional[DedupeCandidate]:
    """Score a possible duplicate; None when the candidate is outside the radius."""
    distance = _distance_between(incoming, candidate)
    if distance > radius_meters:
        return None

    score = _weighted_score(
        distance,
        radius_meters,
        incoming.tags,
        candidate.tags,
        candidate.created_at,
        now,
    )
    return DedupeCandidate(
        report_id=candidate.id,
        score=score,
        distance_meters=round(distance, 2),
    )


def score_signal_group_candidate(
    incoming: Locatable,
    candidate: Candidate,
    now: datetime,
    radius_meters: float = SIGNAL_MATCH_RADIUS_METERS,
) -> Optional[float]:
    """Score a same-bike match.

    None when the pair shares no tag (checked first) or is outside the radius.
    """
    if not has_shared_tags(incoming.tags, candidate.tags):
        return None

    distance = _distance_between(incoming, candidate)
    if distance > radius_meters:
        return None

    return _weighted_score(
        distance,
        radius_meters,
        incoming.tags,
        candidate.tags,
        candidate.created_at,
        now,
    )


def rank_duplicate_candidates(
    incoming: Locatable,
    candidates: Iterable[Candidate],
    now: datetime,
    limit: int = 5,
    radius_meters: float = DEDUPE_RADIUS_METERS,
) -> list[DedupeCandidate]:
    """Return the best-scoring duplicates, highest first; equal scores keep the lower id."""
    scored = [
        result
        for result in (
            score_duplicate_candidate(incoming, candidate, now, radius_meters)
            for candidate in candidates
        )
        if result is not None
    ]
    scored.sort(key=lambda item: (-item.score, item.report_id))
    return scored[:limit]
