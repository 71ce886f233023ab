from brs.models import ReportSignalSummary
from brs.signal.strength import compute_signal_strength


def _summary(**overrides) -> ReportSignalSummary:
    payload = {
        "total_reports": 1,
        "unique_reporters": 1,
        "same_reporter_reconfirmations": 0,
        "distinct_reporter_reconfirmations": 0,
        "has_qualifying_reconfirmation": False,
    }
    payload.update(overrides)
    return ReportSignalSummary(**payload)


def test_no_reconfirmation_is_none():
    assert compute_signal_strength(_summary()) == "none"


def test_same_reporter_reconfirmation_is_weak():
    summary = _summary(
        total_reports=2, same_reporter_reconfirmations=1, has_qualifying_reconfirmation=True
    )
    assert compute_signal_strength(summary) == "weak_same_reporter"


def test_distinct_reporter_reconfirmation_is_strong():
    summary = _summary(
        total_reports=2,
        unique_reporters=2,
        distinct_reporter_reconfirmations=1,
        has_qualifying_reconfirmation=True,
    )
    assert compute_signal_strength(summary) == "strong_distinct_reporters"


def test_strong_requires_minimum_unique_reporters():
    summary = _summary(
        total_reports=2,
        unique_reporters=2,
        distinct_reporter_reconfirmations=1,
        has_qualifying_reconfirmation=True,
    )
    assert compute_signal_strength(summary, min_unique_reporters=3) == "weak_same_reporter"
