from datetime import datetime, timedelta, timezone

import pytest

from brs.errors import PeriodResolutionError
from brs.models import CreateReportPayload, PhotoUpload, ReportLocation
from brs.services.exports import list_reports_for_period, resolve_export_period

# Wednesday, still on Amsterdam summer time.
NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


def _payload() -> CreateReportPayload:
    return CreateReportPayload(
        photos=[PhotoUpload(name="bike.webp", mime_type="image/webp", data=b"webp")],
        location=ReportLocation(lat=52.3676, lng=4.9041),
        tags=["rusted"],
        ip="10.0.0.1",
        fingerprint_hash="d" * 64,
        reporter_hash="a" * 64,
    )


def test_weekly_is_previous_monday_to_sunday_in_amsterdam():
    period = resolve_export_period("weekly", now=NOW)

    assert period.period_start == datetime(2026, 10, 4, 22, 0, tzinfo=timezone.utc)
    assert period.period_end == datetime(
        2026, 10, 11, 21, 59, 59, 999999, tzinfo=timezone.utc
    )


def test_monthly_is_previous_calendar_month():
    period = resolve_export_period("monthly", now=NOW)

    assert period.period_start == datetime(2026, 8, 31, 22, 0, tzinfo=timezone.utc)
    assert period.period_end == datetime(
        2026, 9, 30, 21, 59, 59, 999999, tzinfo=timezone.utc
    )


def test_monthly_in_january_covers_december_in_winter_time():
    period = resolve_export_period("monthly", now=datetime(2026, 1, 15, tzinfo=timezone.utc))

    assert period.period_start == datetime(2025, 11, 30, 23, 0, tzinfo=timezone.utc)
    assert period.period_end == datetime(
        2025, 12, 31, 22, 59, 59, 999999, tzinfo=timezone.utc
    )


def test_all_runs_from_2020_until_now():
    period = resolve_export_period("all", now=NOW)

    assert period.period_start == datetime(2019, 12, 31, 23, 0, tzinfo=timezone.utc)
    assert period.period_end == NOW


def test_explicit_bounds_pass_through():
    start = datetime(2026, 5, 1, tzinfo=timezone.utc)
    end = datetime(2026, 5, 3, tzinfo=timezone.utc)

    period = resolve_export_period("weekly", start, end, now=NOW)

    assert (period.period_start, period.period_end) == (start, end)


def test_unknown_period_type_fails():
    with pytest.raises(PeriodResolutionError) as excinfo:
        resolve_export_period("yearly", now=NOW)

    assert excinfo.value.code == "period_resolution_failed"


def test_unknown_timezone_fails():
    with pytest.raises(PeriodResolutionError):
        resolve_export_period("weekly", now=NOW, tz_name="Mars/Olympus_Mons")


def test_reversed_explicit_bounds_fail():
    with pytest.raises(PeriodResolutionError):
        resolve_export_period("all", NOW, NOW - timedelta(days=1))


def test_list_reports_for_period(repository):
    group = repository.create_bike_group(ReportLocation(lat=52.3676, lng=4.9041))
    inside = repository.create_report(
        _payload(), group.id, created_at=datetime(2026, 10, 6, 12, 0, tzinfo=timezone.utc)
    )
    repository.create_report(
        _payload(), group.id, created_at=datetime(2026, 10, 12, 12, 0, tzinfo=timezone.utc)
    )
    earlier = repository.create_report(
        _payload(), group.id, created_at=datetime(2026, 10, 5, 8, 0, tzinfo=timezone.utc)
    )

    period = resolve_export_period("weekly", now=NOW)
    reports = list_reports_for_period(repository, period)

    assert [report.id for report in reports] == [earlier.id, inside.id]
