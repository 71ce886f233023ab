import os
from datetime import timedelta

import pytest

from brs.config import Settings
from brs.db.client import db_cursor, schema_sql
from brs.errors import InvalidStatusTransitionError
from brs.models import (
    CreateReportPayload,
    ExportPeriod,
    OperatorSession,
    PhotoUpload,
    ReportLocation,
)
from brs.repositories.postgres import PostgresRepository
from brs.services import ReportService
from brs.utils.hashing import sha256_hex
from brs.utils.time import utc_now


pytestmark = pytest.mark.skipif(
    not os.getenv("RUN_LIVE_DB_TESTS"),
    reason="Set RUN_LIVE_DB_TESTS=1 to run live database tests",
)


def _payload(reporter: str, lat: float) -> CreateReportPayload:
    return CreateReportPayload(
        photos=[PhotoUpload(name="bike.jpg", mime_type="image/jpeg", data=b"jpeg")],
        location=ReportLocation(lat=lat, lng=4.9041),
        tags=["flat_tires"],
        ip="10.0.0.1",
        fingerprint_hash=sha256_hex(f"fp:{reporter}"),
        reporter_hash=sha256_hex(reporter),
    )


@pytest.fixture
def repository():
    settings = Settings()
    with db_cursor(settings) as cursor:
        cursor.execute(schema_sql())
    return PostgresRepository(settings)


def test_create_report_persists_group_and_events(repository):
    # Random latitude keeps repeated runs out of each other's bike groups.
    lat = 52.0 + int.from_bytes(os.urandom(2), "big") / 100_000
    service = ReportService(repository)

    response = service.create_report(_payload(f"live-{lat}", lat))
    report = repository.get_report_by_public_id(response.public_id)

    assert report is not None
    assert report.bike_group_id == response.bike_group_id
    assert repository.get_bike_group_by_id(report.bike_group_id).total_reports == 1
    assert [event.type for event in repository.list_events(report.id)] == ["created"]


def test_status_change_and_open_listing(repository):
    lat = 52.0 + int.from_bytes(os.urandom(2), "big") / 100_000
    service = ReportService(repository)
    response = service.create_report(_payload(f"live-{lat}", lat))
    report = repository.get_report_by_public_id(response.public_id)

    service.update_report_status(report.id, "invalid", OperatorSession(email="ops@example.org"))

    open_ids = {
        item.id for item in repository.list_open_reports_since(utc_now() - timedelta(hours=1))
    }
    assert report.id not in open_ids


def test_stale_status_update_is_rejected(repository):
    lat = 52.0 + int.from_bytes(os.urandom(2), "big") / 100_000
    service = ReportService(repository)
    response = service.create_report(_payload(f"live-{lat}", lat))
    report = repository.get_report_by_public_id(response.public_id)
    repository.update_report_status(report.id, "invalid", "ops@example.org", expected_status="new")

    with pytest.raises(InvalidStatusTransitionError):
        repository.update_report_status(
            report.id, "triaged", "ops@example.org", expected_status="new"
        )

    assert repository.get_report_by_id(report.id).status == "invalid"


def test_export_batch_round_trip(repository):
    now = utc_now()
    period = ExportPeriod(period_type="weekly", period_start=now - timedelta(days=7), period_end=now)

    batch = repository.create_export_batch(period, "ops@example.org", 2)

    assert repository.get_export_batch(batch.id) == batch
    assert batch.id in {item.id for item in repository.list_export_batches()}
