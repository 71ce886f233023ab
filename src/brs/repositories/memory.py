"""In-process repository used for local runs and tests."""

from __future__ import annotations

import itertools
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Optional

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
from brs.repositories.default_tags import DEFAULT_TAGS
from brs.security.locks import KeyedLocks
from brs.utils.logging import get_logger
from brs.utils.time import utc_now


logger = get_logger(__name__)


@dataclass
class _Journal:
    """Writes made inside a bike-group transaction, undone on failure."""

    bike_group_id: int
    group_snapshot: Optional[BikeGroup]
    report_ids: list[int] = field(default_factory=list)
    event_ids: list[int] = field(default_factory=list)
    photo_ids: list[int] = field(default_factory=list)
    flagged_before: dict[int, bool] = field(default_factory=dict)


def _new_public_id() -> str:
    return uuid.uuid4().hex[:8].upper()


class MemoryRepository:
    """Thread-safe in-memory store.

    A store-wide lock protects the collections themselves; bike-group
    transactions additionally hold a per-group lock for their whole duration.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._group_locks = KeyedLocks()
        self._local = threading.local()
        self._ids = {
            name: itertools.count(1)
            for name in (
                "report",
                "photo",
                "event",
                "bike_group",
                "dedupe_group",
                "tag",
                "export_batch",
            )
        }
        self._tags = [
            Tag(id=next(self._ids["tag"]), code=code, label=label, is_active=True)
            for code, label in DEFAULT_TAGS
        ]
        self._reports: dict[int, Report] = {}
        self._photos: dict[int, ReportPhoto] = {}
        self._events: dict[int, ReportEvent] = {}
        self._bike_groups: dict[int, BikeGroup] = {}
        self._dedupe_groups: dict[int, DedupeGroup] = {}
        self._export_batches: dict[int, ExportBatch] = {}

    # Tags

    def get_tags(self) -> list[Tag]:
        with self._lock:
            return list(self._tags)

    def get_active_tags(self) -> set[str]:
        with self._lock:
            return {tag.code for tag in self._tags if tag.is_active}

    def set_tag_active(self, code: str, is_active: bool) -> None:
        with self._lock:
            self._tags = [
                tag.model_copy(update={"is_active": is_active}) if tag.code == code else tag
                for tag in self._tags
            ]

    # Reports

    def create_report(
        self,
        payload: CreateReportPayload,
        bike_group_id: int,
        created_at: Optional[datetime] = None,
    ) -> Report:
        now = created_at or self._clock()
        with self._lock:
            report = Report(
                id=next(self._ids["report"]),
                public_id=_new_public_id(),
                created_at=now,
                updated_at=now,
                status="new",
                location=payload.location,
                tags=list(payload.tags),
                note=payload.note,
                source=payload.source,
                bike_group_id=bike_group_id,
                fingerprint_hash=payload.fingerprint_hash,
                reporter_hash=payload.reporter_hash,
            )
            self._reports[report.id] = report
            journal = self._journal()
            if journal is not None:
                journal.report_ids.append(report.id)
            return report

    def save_report_photos(self, report_id: int, photos: Iterable[PhotoUpload]) -> list[ReportPhoto]:
        now = self._clock()
        saved: list[ReportPhoto] = []
        with self._lock:
            for photo in photos:
                entity = ReportPhoto(
                    id=next(self._ids["photo"]),
                    report_id=report_id,
                    created_at=now,
                    mime_type=photo.mime_type,
                    filename=photo.name,
                    size_bytes=len(photo.data),
                    data=photo.data,
                )
                self._photos[entity.id] = entity
                saved.append(entity)
            journal = self._journal()
            if journal is not None:
                journal.photo_ids.extend(photo.id for photo in saved)
        return saved

    def list_photos(self, report_id: int) -> list[ReportPhoto]:
        with self._lock:
            return [photo for photo in self._photos.values() if photo.report_id == report_id]

    def get_report_by_id(self, report_id: int) -> Optional[Report]:
        with self._lock:
            return self._reports.get(report_id)

    def get_report_by_public_id(self, public_id: str) -> Optional[Report]:
        with self._lock:
            for report in self._reports.values():
                if report.public_id == public_id:
                    return report
        return None

    def list_reports(self, filters: Optional[OperatorReportFilters] = None) -> list[Report]:
        with self._lock:
            reports = list(self._reports.values())

        if filters is not None:
            reports = [report for report in reports if _matches_filters(report, filters)]

        return sorted(reports, key=lambda report: (report.created_at, report.id), reverse=True)

    def list_reports_since(self, since: datetime) -> list[Report]:
        with self._lock:
            reports = [report for report in self._reports.values() if report.created_at >= since]
        return sorted(reports, key=lambda report: (report.created_at, report.id))

    def list_open_reports_since(self, since: datetime) -> list[Report]:
        with self._lock:
            reports = [
                report
                for report in self._reports.values()
                if report.status in OPEN_REPORT_STATUSES and report.created_at >= since
            ]
        return sorted(reports, key=lambda report: (report.created_at, report.id))

    def list_reports_by_bike_group_id(self, bike_group_id: int) -> list[Report]:
        with self._lock:
            reports = [
                report for report in self._reports.values() if report.bike_group_id == bike_group_id
            ]
        return sorted(reports, key=lambda report: (report.created_at, report.id))

    def update_report_status(
        self,
        report_id: int,
        status: ReportStatus,
        actor: str,
        expected_status: Optional[ReportStatus] = None,
    ) -> Optional[Report]:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                return None
            if expected_status is not None and current.status != expected_status:
                raise InvalidStatusTransitionError(current.status, status)
            updated = current.model_copy(update={"status": status, "updated_at": self._clock()})
            self._reports[report_id] = updated
            self.add_event(report_id, "status_changed", actor, {"status": status})
            return updated

    def set_flagged_for_review(self, report_id: int, flagged: bool) -> None:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                return
            journal = self._journal()
            if journal is not None:
                journal.flagged_before.setdefault(report_id, current.flagged_for_review)
            self._reports[report_id] = current.model_copy(
                update={"flagged_for_review": flagged, "updated_at": self._clock()}
            )

    # Bike groups

    def create_bike_group(self, anchor: ReportLocation) -> BikeGroup:
        now = self._clock()
        with self._lock:
            group = BikeGroup(
                id=next(self._ids["bike_group"]),
                created_at=now,
                updated_at=now,
                anchor_lat=anchor.lat,
                anchor_lng=anchor.lng,
                last_report_at=now,
            )
            self._bike_groups[group.id] = group
            return group

    def get_bike_group_by_id(self, bike_group_id: int) -> Optional[BikeGroup]:
        with self._lock:
            return self._bike_groups.get(bike_group_id)

    def update_bike_group(self, group: BikeGroup) -> BikeGroup:
        with self._lock:
            self._bike_groups[group.id] = group
            return group

    @contextmanager
    def bike_group_transaction(self, bike_group_id: int) -> Iterator[None]:
        with self._group_locks.hold(bike_group_id):
            journal = _Journal(
                bike_group_id=bike_group_id,
                group_snapshot=self.get_bike_group_by_id(bike_group_id),
            )
            self._local.journal = journal
            try:
                yield
            except Exception:
                self._rollback(journal)
                raise
            finally:
                self._local.journal = None

    def _journal(self) -> Optional[_Journal]:
        return getattr(self._local, "journal", None)

    def _rollback(self, journal: _Journal) -> None:
        with self._lock:
            for report_id in journal.report_ids:
                self._reports.pop(report_id, None)
            for event_id in journal.event_ids:
                self._events.pop(event_id, None)
            for photo_id in journal.photo_ids:
                self._photos.pop(photo_id, None)
            for report_id, flagged in journal.flagged_before.items():
                report = self._reports.get(report_id)
                if report is not None:
                    self._reports[report_id] = report.model_copy(
                        update={"flagged_for_review": flagged}
                    )
            if journal.group_snapshot is not None:
                self._bike_groups[journal.bike_group_id] = journal.group_snapshot
        logger.warning(
            "memory.rollback bike_group_id=%s reports=%s events=%s",
            journal.bike_group_id,
            len(journal.report_ids),
            len(journal.event_ids),
        )

    # Dedupe groups

    def merge_reports(
        self, canonical_report_id: int, duplicate_report_ids: list[int], actor: str
    ) -> DedupeGroup:
        now = self._clock()
        with self._lock:
            group = next(
                (
                    existing
                    for existing in self._dedupe_groups.values()
                    if existing.canonical_report_id == canonical_report_id
                ),
                None,
            )
            if group is None:
                group = DedupeGroup(
                    id=next(self._ids["dedupe_group"]),
                    canonical_report_id=canonical_report_id,
                    created_at=now,
                    created_by=actor,
                )

            merged = sorted(set(group.merged_report_ids) | set(duplicate_report_ids))
            group = group.model_copy(update={"merged_report_ids": merged})
            self._dedupe_groups[group.id] = group

            for report_id in [canonical_report_id, *merged]:
                report = self._reports.get(report_id)
                if report is not None:
                    self._reports[report_id] = report.model_copy(
                        update={"dedupe_group_id": group.id, "updated_at": now}
                    )

            for duplicate_id in duplicate_report_ids:
                self.add_event(
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
        with self._lock:
            event = ReportEvent(
                id=next(self._ids["event"]),
                report_id=report_id,
                type=event_type,
                actor=actor,
                metadata=dict(metadata or {}),
                created_at=self._clock(),
            )
            self._events[event.id] = event
            journal = self._journal()
            if journal is not None:
                journal.event_ids.append(event.id)
            return event

    def list_events(self, report_id: int) -> list[ReportEvent]:
        with self._lock:
            events = [event for event in self._events.values() if event.report_id == report_id]
        return sorted(events, key=lambda event: (event.created_at, event.id))

    # Exports

    def create_export_batch(
        self, period: ExportPeriod, generated_by: str, row_count: int
    ) -> ExportBatch:
        with self._lock:
            batch = ExportBatch(
                id=next(self._ids["export_batch"]),
                period_type=period.period_type,
                period_start=period.period_start,
                period_end=period.period_end,
                generated_at=self._clock(),
                generated_by=generated_by,
                row_count=row_count,
            )
            self._export_batches[batch.id] = batch
            return batch

    def get_export_batch(self, batch_id: int) -> Optional[ExportBatch]:
        with self._lock:
            return self._export_batches.get(batch_id)

    def list_export_batches(self) -> list[ExportBatch]:
        with self._lock:
            batches = list(self._export_batches.values())
        return sorted(batches, key=lambda batch: (batch.generated_at, batch.id), reverse=True)


def _matches_filters(report: Report, filters: OperatorReportFilters) -> bool:
    if filters.status and report.status != filters.status:
        return False
    if filters.tag and filters.tag not in report.tags:
        return False
    if filters.created_from and report.created_at < filters.created_from:
        return False
    if filters.created_to and report.created_at > filters.created_to:
        return False
    return True
