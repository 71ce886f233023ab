"""Bike-group resolution for incoming reports."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from brs.models import BikeGroup, Report
from brs.signal.scoring import (
    SIGNAL_CANDIDATE_LOOKBACK_DAYS,
    SIGNAL_MATCH_RADIUS_METERS,
    Locatable,
    score_signal_group_candidate,
    signal_lookback_start,
)
from brs.utils.logging import get_logger

if TYPE_CHECKING:
    from brs.repositories.base import Repository


logger = get_logger(__name__)


def best_score_by_group(
    incoming: Locatable,
    candidates: Iterable[Report],
    now: datetime,
    radius_meters: float = SIGNAL_MATCH_RADIUS_METERS,
) -> dict[int, float]:
    """Highest same-bike score seen per bike group. Invalid reports never match."""
    best: dict[int, float] = {}
    for candidate in candidates:
        if candidate.status == "invalid":
            continue
        score = score_signal_group_candidate(incoming, candidate, now, radius_meters)
        if score is None:
            continue
        if score > best.get(candidate.bike_group_id, -1.0):
            best[candidate.bike_group_id] = score
    return best


def select_bike_group_id(
    incoming: Locatable,
    candidates: Iterable[Report],
    now: datetime,
    radius_meters: float = SIGNAL_MATCH_RADIUS_METERS,
) -> Optional[int]:
    """Pick the group with the highest max score.

    Equal scores resolve to the lowest group id, i.e. the oldest group.
    """
    best = best_score_by_group(incoming, candidates, now, radius_meters)
    if not best:
        return None
    ranked = sorted(best.items(), key=lambda item: (-item[1], item[0]))
    return ranked[0][0]


def resolve_bike_group(
    repository: Repository,
    incoming: Locatable,
    now: datetime,
    radius_meters: float = SIGNAL_MATCH_RADIUS_METERS,
    lookback_days: int = SIGNAL_CANDIDATE_LOOKBACK_DAYS,
) -> Optional[BikeGroup]:
    """Return the existing bike group the incoming report belongs to, if any."""
    candidates = repository.list_reports_since(signal_lookback_start(now, lookback_days))
    group_id = select_bike_group_id(incoming, candidates, now, radius_meters)
    if group_id is None:
        logger.info("bike_group.no_match candidates=%s", len(candidates))
        return None

    logger.info("bike_group.match bike_group_id=%s candidates=%s", group_id, len(candidates))
    return repository.get_bike_group_by_id(group_id)
