"""Repository contract consumed by the report service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ContextManager, Iterable, Optional, Protocol

from brs.models import (
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


class Repository(Protocol):
    """Storage for reports, bike groups, dedupe groups and the audit log."""

    def get_tags(self) -> list[Tag]:
        """Return every tag, active or not."""

    def get_active_tags(self) -> set[str]:
        """Return codes of tags that may be referenced by new reports."""

    def create_report(
        self,
        payload: CreateReportPayload,
        bike_group_id: int,
        created_at: Optional[datetime] = None,
    ) -> Report:
        """Insert a report attached to ``bike_group_id``."""

    def save_report_photos(self, report_id: int, photos: Iterable[PhotoUpload]) -> list[ReportPhoto]:
        """Store photo bytes for a report."""

    def list_photos(self, report_id: int) -> list[ReportPhoto]:
        """Return photos of a report, oldest first."""

    def get_report_by_id(self, report_id: int) -> Optional[Report]:
        """Return a report by internal id."""

    def get_report_by_public_id(self, public_id: str) -> Optional[Report]:
        """Return a report by its public short id."""

    def list_reports(self, filters: Optional[OperatorReportFilters] = None) -> list[Report]:
        """Return reports matching status/tag/date filters, newest first."""

    def list_reports_since(self, since: datetime) -> list[Report]:
        """Return reports created at or after ``since``, oldest first."""

    def list_open_reports_since(self, since: datetime) -> list[Report]:
        """Return new/triaged/forwarded reports created at or after ``since``, oldest first."""

    def list_reports_by_bike_group_id(self, bike_group_id: int) -> list[Report]:
        """Return a bike group's reports, oldest first."""

    def update_report_status(
        self,
        report_id: int,
        status: ReportStatus,
        actor: str,
        expected_status: Optional[ReportStatus] = None,
    ) -> Optional[Report]:
        """Set the status and append a ``status_changed`` event.

        With ``expected_status`` the write only happens while the stored status
        still equals it; otherwise ``InvalidStatusTransitionError`` is raised
        naming the stored status.
        """

    def set_flagged_for_review(self, report_id: int, flagged: bool) -> None:
        """Set or clear the review flag."""

    def create_bike_group(self, anchor: ReportLocation) -> BikeGroup:
        """Create an empty bike group anchored at ``anchor``."""

    def get_bike_group_by_id(self, bike_group_id: int) -> Optional[BikeGroup]:
        """Return a bike group by id."""

    def update_bike_group(self, group: BikeGroup) -> BikeGroup:
        """Persist recomputed counters and tier."""

    def merge_reports(
        self, canonical_report_id: int, duplicate_report_ids: list[int], actor: str
    ) -> DedupeGroup:
        """Create or extend the canonical report's dedupe group."""

    def add_event(
        self,
        report_id: int,
        event_type: ReportEventType,
        actor: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ReportEvent:
        """Append an audit event."""

    def list_events(self, report_id: int) -> list[ReportEvent]:
        """Return a report's events, oldest first."""

    def bike_group_transaction(self, bike_group_id: int) -> ContextManager[None]:
        """Serialize writes to one bike group; all or nothing on exit."""

    def create_export_batch(
        self, period: ExportPeriod, generated_by: str, row_count: int
    ) -> ExportBatch:
        """Record a generated export run."""

    def get_export_batch(self, batch_id: int) -> Optional[ExportBatch]:
        ...

    def list_export_batches(self) -> list[ExportBatch]:
        """Return export runs, newest first."""
