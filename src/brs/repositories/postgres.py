"""Postgres-backed repository (psycopg 3)."""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional

import orjson
from psycopg import Cursor
from psycopg.types.json import Jsonb

from brs.config import Settings
from brs.db.client import db_cursor
from brs.errors import InvalidStatusTransitionError
from brs.models import (
    OPEN_REPORT_STATUSES,
    BikeGroup,
    CreateReportPayload,
    DedupeGroup,
    ExportBatch,
    ExportPeriod,
    OperatorReportFilters,
    PhotoUpload,
    Report,
    ReportEvent,
    ReportEventType,
    ReportLocation,
    ReportPhoto,
    ReportStatus,
    Tag,
)
from brs.utils.logging import get_logger


logger = get_logger(__name__)

REPORT_COLUMNS = (
    "id, public_id, created_at, updated_at, status, lat, lng, accuracy_m, tags, note, "
    "source, dedupe_group_id, bike_group_id, fingerprint_hash, reporter_hash, "
    "flagged_for_review"
)
BIKE_GROUP_COLUMNS = (
    "id, created_at, updated_at, anchor_lat, anchor_lng, last_report_at, total_reports, "
    "unique_reporters, same_reporter_reconfirmations, distinct_reporter_reconfirmations, "
    "first_qualifying_reconfirmation_at, last_qualifying_reconfirmation_at, signal_strength"
)
EXPORT_BATCH_COLUMNS = (
    "id, period_type, period_start, period_end, generated_at, generated_by, row_count"
)


def _json_dumps(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def _to_report(row: dict[str, Any]) -> Report:
    return Report(
        id=row["id"],
        public_id=row["public_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        status=row["status"],
        location=ReportLocation(lat=row["lat"], lng=row["lng"], accuracy_m=row["accuracy_m"]),
        tags=list(row["tags"] or []),
        note=row["note"],
        source=row["source"],
        dedupe_group_id=row["dedupe_group_id"],
        bike_group_id=row["bike_group_id"],
        fingerprint_hash=row["fingerprint_hash"],
        reporter_hash=row["reporter_hash"],
        flagged_for_review=row["flagged_for_review"],
    )


def _to_event(row: dict[str, Any]) -> ReportEvent:
    return ReportEvent.model_validate(row)


class PostgresRepository:
    """Repository over the schema in ``brs/db/schema.sql``.

    Each call runs in its own transaction. Calls made inside
    ``bike_group_transaction`` share one connection pinned to the calling
    thread, and the group row stays locked until commit.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self._local = threading.local()

    @contextmanager
    def _cursor(self) -> Iterator[Cursor]:
        active = getattr(self._local, "cursor", None)
        if active is not None:
            yield active
            return
        with db_cursor(self.settings) as cursor:
            yield cursor

    @contextmanager
    def bike_group_transaction(self, bike_group_id: int) -> Iterator[None]:
        with db_cursor(self.settings) as cursor:
            cursor.execute("select id from bike_groups where id = %s for update", (bike_group_id,))
            self._local.cursor = cursor
            try:
                yield
            finally:
                self._local.cursor = None

    # Tags

    def get_tags(self) -> list[Tag]:
        with self._cursor() as cursor:
            cursor.execute("select id, code, label, is_active from tags order by id")
            return [Tag.model_validate(row) for row in cursor.fetchall()]

    def get_active_tags(self) -> set[str]:
        with self._cursor() as cursor:
            cursor.execute("select code from tags where is_active")
            return {row["code"] for row in cursor.fetchall()}

    # Reports

    def create_report(
        self,
        payload: CreateReportPayload,
        bike_group_id: int,
        created_at: Optional[datetime] = None,
    ) -> Report:
        public_id = uuid.uuid4().hex[:8].upper()
        with self._cursor() as cursor:
            cursor.execute(
                "insert into reports (public_id, created_at, updated_at, status, lat, lng, "
                "accuracy_m, tags, note, source, bike_group_id, fingerprint_hash, reporter_hash) "
                "values (%s, coalesce(%s, now()), coalesce(%s, now()), 'new', %s, %s, %s, %s, "
                "%s, %s, %s, %s, %s) "
                f"returning {REPORT_COLUMNS}",
                (
                    public_id,
                    created_at,
                    created_at,
                    payload.location.lat,
                    payload.location.lng,
                    payload.location.accuracy_m,
                    list(payload.tags),
                    payload.note,
                    payload.source,
                    bike_group_id,
                    payload.fingerprint_hash,
                    payload.reporter_hash,
                ),
            )
            return _to_report(cursor.fetchone())

    def save_report_photos(self, report_id: int, photos: Iterable[PhotoUpload]) -> list[ReportPhoto]:
        saved: list[ReportPhoto] = []
        with self._cursor() as cursor:
            for photo in photos:
                cursor.execute(
                    "insert into report_photos (report_id, mime_type, filename, size_bytes, data) "
                    "values (%s, %s, %s, %s, %s) "
                    "returning id, report_id, created_at, mime_type, filename, size_bytes, data",
                    (report_id, photo.mime_type, photo.name, len(photo.data), photo.data),
                )
                saved.append(ReportPhoto.model_validate(cursor.fetchone()))
        return saved

    def list_photos(self, report_id: int) -> list[ReportPhoto]:
        with self._cursor() as cursor:
            cursor.execute(
                "select id, report_id, created_at, mime_type, filename, size_bytes, data "
                "from report_photos where report_id = %s order by created_at, id",
                (report_id,),
            )
            return [ReportPhoto.model_validate(row) for row in cursor.fetchall()]

    def get_report_by_id(self, report_id: int) -> Optional[Report]:
        return self._fetch_report("id = %s", report_id)

    def get_report_by_public_id(self, public_id: str) -> Optional[Report]:
        return self._fetch_report("public_id = %s", public_id)

    def _fetch_report(self, condition: str, value: object) -> Optional[Report]:
        with self._cursor() as cursor:
            cursor.execute(f"select {REPORT_COLUMNS} from reports where {condition} limit 1", (value,))
            row = cursor.fetchone()
        return _to_report(row) if row else None

    def list_reports(self, filters: Optional[OperatorReportFilters] = None) -> list[Report]:
        conditions: list[str] = []
        params: list[object] = []
        if filters is not None:
            if filters.status:
                conditions.append("status = %s")
                params.append(filters.status)
            if filters.tag:
                conditions.append("%s = any(tags)")
                params.append(filters.tag)
            if filters.created_from:
                conditions.append("created_at >= %s")
                params.append(filters.created_from)
            if filters.created_to:
                conditions.append("created_at <= %s")
                params.append(filters.created_to)

        where = f" where {' and '.join(conditions)}" if conditions else ""
        with self._cursor() as cursor:
            cursor.execute(
                f"select {REPORT_COLUMNS} from reports{where} order by created_at desc, id desc",
                params,
            )
            return [_to_report(row) for row in cursor.fetchall()]

    def list_reports_since(self, since: datetime) -> list[Report]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {REPORT_COLUMNS} from reports where created_at >= %s "
                "order by created_at, id",
                (since,),
            )
            return [_to_report(row) for row in cursor.fetchall()]

    def list_open_reports_since(self, since: datetime) -> list[Report]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {REPORT_COLUMNS} from reports "
                "where created_at >= %s and status = any(%s) "
                "order by created_at, id",
                (since, sorted(OPEN_REPORT_STATUSES)),
            )
            return [_to_report(row) for row in cursor.fetchall()]

    def list_reports_by_bike_group_id(self, bike_group_id: int) -> list[Report]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {REPORT_COLUMNS} from reports where bike_group_id = %s "
                "order by created_at asc, id asc",
                (bike_group_id,),
            )
            return [_to_report(row) for row in cursor.fetchall()]

    def update_report_status(
        self,
        report_id: int,
        status: ReportStatus,
        actor: str,
        expected_status: Optional[ReportStatus] = None,
    ) -> Optional[Report]:
        with self._cursor() as cursor:
            if expected_status is None:
                cursor.execute(
                    "update reports set status = %s, updated_at = now() where id = %s "
                    f"returning {REPORT_COLUMNS}",
                    (status, report_id),
                )
            else:
                cursor.execute(
                    "update reports set status = %s, updated_at = now() "
                    f"where id = %s and status = %s returning {REPORT_COLUMNS}",
                    (status, report_id, expected_status),
                )
            row = cursor.fetchone()
            if row is None:
                if expected_status is None:
                    return None
                cursor.execute("select status from reports where id = %s", (report_id,))
                stored = cursor.fetchone()
                if stored is None:
                    return None
                raise InvalidStatusTransitionError(stored["status"], status)
            self._insert_event(cursor, report_id, "status_changed", actor, {"status": status})
            return _to_report(row)

    def set_flagged_for_review(self, report_id: int, flagged: bool) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "update reports set flagged_for_review = %s, updated_at = now() where id = %s",
                (flagged, report_id),
            )

    # Bike groups

    def create_bike_group(self, anchor: ReportLocation) -> BikeGroup:
        with self._cursor() as cursor:
            cursor.execute(
                "insert into bike_groups (anchor_lat, anchor_lng, last_report_at) "
                f"values (%s, %s, now()) returning {BIKE_GROUP_COLUMNS}",
                (anchor.lat, anchor.lng),
            )
            return BikeGroup.model_validate(cursor.fetchone())

    def get_bike_group_by_id(self, bike_group_id: int) -> Optional[BikeGroup]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {BIKE_GROUP_COLUMNS} from bike_groups where id = %s",
                (bike_group_id,),
            )
            row = cursor.fetchone()
        return BikeGroup.model_validate(row) if row else None

    def update_bike_group(self, group: BikeGroup) -> BikeGroup:
        # Anchor columns are fixed at creation and never written here.
        with self._cursor() as cursor:
            cursor.execute(
                "update bike_groups set last_report_at = %s, total_reports = %s, "
                "unique_reporters = %s, same_reporter_reconfirmations = %s, "
                "distinct_reporter_reconfirmations = %s, "
                "first_qualifying_reconfirmation_at = %s, "
                "last_qualifying_reconfirmation_at = %s, signal_strength = %s, "
                f"updated_at = now() where id = %s returning {BIKE_GROUP_COLUMNS}",
                (
                    group.last_report_at,
                    group.total_reports,
                    group.unique_reporters,
                    group.same_reporter_reconfirmations,
                    group.distinct_reporter_reconfirmations,
                    group.first_qualifying_reconfirmation_at,
                    group.last_qualifying_reconfirmation_at,
                    group.signal_strength,
                    group.id,
                ),
            )
            row = cursor.fetchone()
        if row is None:
            raise ValueError(f"bike group {group.id} does not exist")
        return BikeGroup.model_validate(row)

    # Dedupe groups

    def merge_reports(
        self, canonical_report_id: int, duplicate_report_ids: list[int], actor: str
    ) -> DedupeGroup:
        with self._cursor() as cursor:
            cursor.execute(
                "select id, merged_report_ids from dedupe_groups "
                "where canonical_report_id = %s for update",
                (canonical_report_id,),
            )
            existing = cursor.fetchone()
            current = list(existing["merged_report_ids"]) if existing else []
            merged = sorted(set(current) | set(duplicate_report_ids))

            if existing is None:
                cursor.execute(
                    "insert into dedupe_groups (canonical_report_id, merged_report_ids, created_by) "
                    "values (%s, %s, %s) "
                    "returning id, canonical_report_id, merged_report_ids, created_at, created_by",
                    (canonical_report_id, Jsonb(merged, dumps=_json_dumps), actor),
                )
            else:
                cursor.execute(
                    "update dedupe_groups set merged_report_ids = %s where id = %s "
                    "returning id, canonical_report_id, merged_report_ids, created_at, created_by",
                    (Jsonb(merged, dumps=_json_dumps), existing["id"]),
                )
            group = DedupeGroup.model_validate(cursor.fetchone())

            cursor.execute(
                "update reports set dedupe_group_id = %s, updated_at = now() where id = any(%s)",
                (group.id, [canonical_report_id, *merged]),
            )
            for duplicate_id in duplicate_report_ids:
                self._insert_event(
                    cursor,
                    duplicate_id,
                    "merged",
                    actor,
                    {"canonical_report_id": canonical_report_id, "dedupe_group_id": group.id},
                )
            return group

    # Events

    def add_event(
        self,
        report_id: int,
        event_type: ReportEventType,
        actor: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ReportEvent:
        with self._cursor() as cursor:
            return self._insert_event(cursor, report_id, event_type, actor, metadata or {})

    def _insert_event(
        self,
        cursor: Cursor,
        report_id: int,
        event_type: str,
        actor: str,
        metadata: dict[str, Any],
    ) -> ReportEvent:
        cursor.execute(
            "insert into report_events (report_id, type, actor, metadata) values (%s, %s, %s, %s) "
            "returning id, report_id, type, actor, metadata, created_at",
            (report_id, event_type, actor, Jsonb(metadata, dumps=_json_dumps)),
        )
        return _to_event(cursor.fetchone())

    def list_events(self, report_id: int) -> list[ReportEvent]:
        with self._cursor() as cursor:
            cursor.execute(
                "select id, report_id, type, actor, metadata, created_at from report_events "
                "where report_id = %s order by created_at asc, id asc",
                (report_id,),
            )
            return [_to_event(row) for row in cursor.fetchall()]

    # Exports

    def create_export_batch(
        self, period: ExportPeriod, generated_by: str, row_count: int
    ) -> ExportBatch:
        with self._cursor() as cursor:
            cursor.execute(
                "insert into export_batches (period_type, period_start, period_end, generated_by, "
                f"row_count) values (%s, %s, %s, %s, %s) returning {EXPORT_BATCH_COLUMNS}",
                (
                    period.period_type,
                    period.period_start,
                    period.period_end,
                    generated_by,
                    row_count,
                ),
            )
            return ExportBatch(**cursor.fetchone())

    def get_export_batch(self, batch_id: int) -> Optional[ExportBatch]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {EXPORT_BATCH_COLUMNS} from export_batches where id = %s", (batch_id,)
            )
            row = cursor.fetchone()
        return ExportBatch(**row) if row else None

    def list_export_batches(self) -> list[ExportBatch]:
        with self._cursor() as cursor:
            cursor.execute(
                f"select {EXPORT_BATCH_COLUMNS} from export_batches "
                "order by generated_at desc, id desc"
            )
            return [ExportBatch(**row) for row in cursor.fetchall()]
