from datetime import datetime, timedelta, timezone

from brs.models import Report, ReportLocation
from brs.signal.reconfirmation import compute_reconfirmation

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
REPORTER_A = "a" * 64
REPORTER_B = "b" * 64


def _report(report_id: int, reporter_hash: str, created_at: datetime) -> Report:
    return Report(
        id=report_id,
        public_id=f"PUB{report_id}",
        created_at=created_at,
        updated_at=created_at,
        location=ReportLocation(lat=52.3676, lng=4.9041),
        tags=["flat_tires"],
        bike_group_id=1,
        fingerprint_hash="d" * 64,
        reporter_hash=reporter_hash,
    )


def _scenario() -> list[Report]:
    return [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_A, T0 + timedelta(days=28)),
        _report(3, REPORTER_B, T0 + timedelta(days=56)),
    ]


def test_single_report_is_initial():
    result = compute_reconfirmation([_report(1, REPORTER_A, T0)])

    assert result.classification_for(1) == "initial"
    assert result.signal_strength == "none"
    assert result.summary.total_reports == 1
    assert result.summary.has_qualifying_reconfirmation is False


def test_same_then_distinct_reporter_reaches_strong():
    result = compute_reconfirmation(_scenario())

    assert result.classification_by_report_id == {
        1: "initial",
        2: "counted_same_reporter",
        3: "counted_distinct_reporter",
    }
    assert result.summary.same_reporter_reconfirmations == 1
    assert result.summary.distinct_reporter_reconfirmations == 1
    assert result.summary.unique_reporters == 2
    assert result.summary.first_qualifying_reconfirmation_at == T0 + timedelta(days=28)
    assert result.summary.last_qualifying_reconfirmation_at == T0 + timedelta(days=56)
    assert result.signal_strength == "strong_distinct_reporters"


def test_same_reporter_only_is_weak():
    result = compute_reconfirmation(_scenario()[:2])

    assert result.signal_strength == "weak_same_reporter"


def test_same_day_same_reporter_is_ignored():
    reports = [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_A, T0 + timedelta(hours=2)),
    ]

    result = compute_reconfirmation(reports)

    assert result.classification_for(2) == "ignored_same_day"
    assert result.summary.same_reporter_reconfirmations == 0
    assert result.summary.distinct_reporter_reconfirmations == 0
    assert result.signal_strength == "none"


def test_other_reporter_on_same_day_is_non_qualifying():
    reports = [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_B, T0 + timedelta(hours=1)),
    ]

    result = compute_reconfirmation(reports)

    assert result.classification_for(2) == "non_qualifying"
    assert result.summary.unique_reporters == 2
    assert result.signal_strength == "none"


def test_gap_is_measured_from_previous_report():
    reports = [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_B, T0 + timedelta(days=20)),
        _report(3, REPORTER_A, T0 + timedelta(days=30)),
    ]

    result = compute_reconfirmation(reports)

    assert result.classification_for(2) == "non_qualifying"
    assert result.classification_for(3) == "non_qualifying"
    assert result.signal_strength == "none"


def test_gap_just_below_threshold_does_not_count():
    reports = [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_A, T0 + timedelta(days=28) - timedelta(seconds=1)),
    ]

    result = compute_reconfirmation(reports)

    assert result.classification_for(2) == "non_qualifying"


def test_classification_ignores_insertion_order():
    ordered = compute_reconfirmation(_scenario())
    shuffled = compute_reconfirmation(list(reversed(_scenario())))

    assert shuffled.classification_by_report_id == ordered.classification_by_report_id
    assert shuffled.summary == ordered.summary


def test_equal_timestamps_break_ties_by_id():
    reports = [
        _report(2, REPORTER_B, T0),
        _report(1, REPORTER_A, T0),
    ]

    result = compute_reconfirmation(reports)

    assert result.classification_for(1) == "initial"
    assert result.classification_for(2) == "non_qualifying"


def test_custom_gap_days():
    reports = [
        _report(1, REPORTER_A, T0),
        _report(2, REPORTER_B, T0 + timedelta(days=7)),
    ]

    result = compute_reconfirmation(reports, gap_days=7)

    assert result.classification_for(2) == "counted_distinct_reporter"
    assert result.signal_strength == "strong_distinct_reporters"
