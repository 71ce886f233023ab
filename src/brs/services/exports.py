"""Export window resolution.

Rendering CSV/GeoJSON/PDF artifacts happens downstream; this module only
decides which reports belong to an export period.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from brs.errors import PeriodResolutionError
from brs.models import ExportPeriod, OperatorReportFilters, Report
from brs.repositories.base import Repository
from brs.utils.time import ensure_utc, utc_now

EXPORT_TIMEZONE = "Europe/Amsterdam"
EXPORT_PERIOD_TYPES = ("weekly", "monthly", "all")
ALL_TIME_START = date(2020, 1, 1)


def _local_midnight(day: date, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone)


def resolve_export_period(
    period_type: str,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    tz_name: str = EXPORT_TIMEZONE,
) -> ExportPeriod:
    """Resolve the UTC window for an export.

    Explicit bounds win. Otherwise ``weekly`` is the previous Monday-to-Sunday
    week and ``monthly`` the previous calendar month, both in the export
    timezone; ``all`` runs from 2020-01-01 to now.
    """
    if period_type not in EXPORT_PERIOD_TYPES:
        raise PeriodResolutionError(f"Unknown export period type: {period_type}")

    if period_start is not None and period_end is not None:
        start, end = ensure_utc(period_start), ensure_utc(period_end)
        if start > end:
            raise PeriodResolutionError(f"Export period start {start} is after end {end}")
        return ExportPeriod(period_type=period_type, period_start=start, period_end=end)

    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise PeriodResolutionError(f"Unknown export timezone: {tz_name}") from exc

    local_now = (now or utc_now()).astimezone(zone)

    if period_type == "all":
        start = _local_midnight(ALL_TIME_START, zone)
        end = local_now
    elif period_type == "weekly":
        previous_week = local_now.date() - timedelta(days=7)
        week_start = previous_week - timedelta(days=previous_week.weekday())
        start = _local_midnight(week_start, zone)
        end = _local_midnight(week_start + timedelta(days=7), zone) - timedelta(microseconds=1)
    elif period_type == "monthly":
        first_of_this_month = local_now.date().replace(day=1)
        month_start = (first_of_this_month - timedelta(days=1)).replace(day=1)
        start = _local_midnight(month_start, zone)
        end = _local_midnight(first_of_this_month, zone) - timedelta(microseconds=1)
    else:
        raise PeriodResolutionError(f"Unable to compute {period_type} period")

    return ExportPeriod(
        period_type=period_type,
        period_start=start.astimezone(timezone.utc),
        period_end=end.astimezone(timezone.utc),
    )


def list_reports_for_period(repository: Repository, period: ExportPeriod) -> list[Report]:
    """Reports created inside the period, oldest first."""
    filters = OperatorReportFilters(
        created_from=period.period_start, created_to=period.period_end
    )
    reports = repository.list_reports(filters)
    return sorted(reports, key=lambda report: (report.created_at, report.id))
