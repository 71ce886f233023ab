"""Report intake, operator workflows and signal enrichment."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from brs.config import Settings
from brs.errors import InvalidTagError, NotFoundError, RateLimitedError, ServiceError
from brs.models import (
    BikeGroup,
    CreateReportPayload,
    DedupeGroup,
    ExportBatch,
    ExportPeriod,
    ExportPeriodType,
    OperatorReportFilters,
    OperatorReportView,
    OperatorSession,
    Report,
    ReportCreateResponse,
    ReportDetails,
    ReportEvent,
    ReportPublicStatus,
    ReportStatus,
    Tag,
)
from brs.repositories.base import Repository
from brs.security.rate_limit import FingerprintBurstTracker, FixedWindowRateLimiter
from brs.security.tokens import TrackingTokenSigner
from brs.services.exports import list_reports_for_period, resolve_export_period
from brs.services.lifecycle import ensure_transition_allowed
from brs.signal.grouping import resolve_bike_group
from brs.signal.reconfirmation import (
    ReconfirmationResult,
    apply_summary_to_bike_group,
    bike_group_to_signal_summary,
    compute_reconfirmation,
)
from brs.signal.scoring import dedupe_lookback_start, rank_duplicate_candidates
from brs.signal.strength import SIGNAL_STRENGTH_PRIORITY
from brs.signal.timeline import build_signal_details
from brs.utils.hashing import hash_text
from brs.utils.logging import get_logger
from brs.utils.time import utc_now

CITIZEN_ACTOR = "citizen_anonymous"
SYSTEM_ACTOR = "system"


logger = get_logger(__name__)


class ReportService:
    """Entry point used by the intake, operator and export surfaces.

    Collaborators are injected so that tests can share one clock between the
    service, the repository and the abuse counters.
    """

    def __init__(
        self,
        repository: Repository,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        burst_tracker: Optional[FingerprintBurstTracker] = None,
        signer: Optional[TrackingTokenSigner] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.settings = settings or Settings()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=self.settings.report_rate_limit_requests,
            window_seconds=self.settings.report_rate_limit_window_seconds,
        )
        self.burst_tracker = burst_tracker or FingerprintBurstTracker(
            threshold=self.settings.fingerprint_burst_threshold,
            window_seconds=self.settings.report_rate_limit_window_seconds,
        )
        self.signer = signer or TrackingTokenSigner(
            self.settings.app_signing_secret,
            ttl=timedelta(days=self.settings.tracking_link_ttl_days),
        )
        self.clock = clock

    # Intake

    def create_report(self, payload: CreateReportPayload) -> ReportCreateResponse:
        """Persist a citizen report and return its tracking bundle.

        The report insert and the bike-group recomputation run in one
        bike-group transaction; a failure in either leaves neither behind.
        """
        now = self.clock()

        limit = self.rate_limiter.check(f"report:{payload.ip}", now.timestamp())
        if not limit.allowed:
            logger.warning("report.rate_limited ip_hash=%s", hash_text(payload.ip))
            raise RateLimitedError("Too many reports from this IP. Please retry later.")

        active_tags = self.repository.get_active_tags()
        for tag in payload.tags:
            if tag not in active_tags:
                raise InvalidTagError(f"Unknown or inactive tag: {tag}")

        group = resolve_bike_group(
            self.repository,
            payload,
            now,
            self.settings.signal_match_radius_meters,
            self.settings.signal_candidate_lookback_days,
        )
        if group is None:
            group = self.repository.create_bike_group(payload.location)
            logger.info("bike_group.created bike_group_id=%s", group.id)

        with self.repository.bike_group_transaction(group.id):
            report, group, result = self._insert_and_recompute(payload, group.id, now)

        dedupe_candidates = self._dedupe_candidate_ids(report, now)

        flagged = self.burst_tracker.register(payload.fingerprint_hash, now.timestamp())
        if flagged:
            self.repository.set_flagged_for_review(report.id, True)
            logger.warning(
                "report.flagged_for_review report_id=%s fingerprint=%s",
                report.id,
                hash_text(payload.fingerprint_hash),
            )

        token = self.signer.issue(report.public_id, now=now)
        tracking_url = self.settings.build_public_url(
            f"/report/status/{report.public_id}?token={token}"
        )

        logger.info(
            "report.created report_id=%s public_id=%s bike_group_id=%s signal=%s candidates=%s",
            report.id,
            report.public_id,
            group.id,
            group.signal_strength,
            len(dedupe_candidates),
        )
        return ReportCreateResponse(
            public_id=report.public_id,
            created_at=report.created_at,
            status=report.status,
            tracking_url=tracking_url,
            dedupe_candidates=dedupe_candidates,
            flagged_for_review=flagged,
            bike_group_id=group.id,
            signal_strength=result.signal_strength,
            signal_summary=result.summary,
        )

    def _insert_and_recompute(
        self, payload: CreateReportPayload, bike_group_id: int, now: datetime
    ) -> tuple[Report, BikeGroup, ReconfirmationResult]:
        report = self.repository.create_report(payload, bike_group_id, created_at=now)
        self.repository.save_report_photos(report.id, payload.photos)
        self.repository.add_event(
            report.id,
            "created",
            CITIZEN_ACTOR,
            {
                "source": payload.source,
                "retention_days": self.settings.photo_retention_days,
                "bike_group_id": bike_group_id,
            },
        )

        # Re-read inside the transaction; the resolver's copy may be stale.
        current = self.repository.get_bike_group_by_id(bike_group_id)
        if current is None:
            raise NotFoundError(
                f"Bike group {bike_group_id} not found", code="bike_group_not_found"
            )

        history = self.repository.list_reports_by_bike_group_id(bike_group_id)
        result = compute_reconfirmation(
            history,
            self.settings.signal_reconfirmation_gap_days,
            self.settings.strong_signal_min_unique_reporters,
        )
        updated = self.repository.update_bike_group(
            apply_summary_to_bike_group(current, result, now)
        )

        self._record_classification(report, bike_group_id, result)

        if current.signal_strength != result.signal_strength:
            self.repository.add_event(
                report.id,
                "signal_strength_changed",
                SYSTEM_ACTOR,
                {
                    "previous_signal_strength": current.signal_strength,
                    "signal_strength": result.signal_strength,
                    "bike_group_id": bike_group_id,
                },
            )
            logger.info(
                "bike_group.signal_changed bike_group_id=%s from=%s to=%s",
                bike_group_id,
                current.signal_strength,
                result.signal_strength,
            )

        return report, updated, result

    def _record_classification(
        self, report: Report, bike_group_id: int, result: ReconfirmationResult
    ) -> None:
        classification = result.classification_for(report.id)
        if classification == "ignored_same_day":
            self.repository.add_event(
                report.id,
                "signal_reconfirmation_ignored_same_day",
                SYSTEM_ACTOR,
                {"bike_group_id": bike_group_id},
            )
        elif classification == "counted_same_reporter":
            self.repository.add_event(
                report.id,
                "signal_reconfirmation_counted",
                SYSTEM_ACTOR,
                {"bike_group_id": bike_group_id, "reporter_match_kind": "same_reporter"},
            )
        elif classification == "counted_distinct_reporter":
            self.repository.add_event(
                report.id,
                "signal_reconfirmation_counted",
                SYSTEM_ACTOR,
                {"bike_group_id": bike_group_id, "reporter_match_kind": "distinct_reporter"},
            )

        logger.info(
            "report.classified report_id=%s bike_group_id=%s classification=%s",
            report.id,
            bike_group_id,
            classification,
        )

    def _dedupe_candidate_ids(self, report: Report, now: datetime) -> list[int]:
        since = dedupe_lookback_start(now, self.settings.dedupe_lookback_days)
        open_reports = [
            candidate
            for candidate in self.repository.list_open_reports_since(since)
            if candidate.id != report.id
        ]
        ranked = rank_duplicate_candidates(
            report,
            open_reports,
            now,
            limit=self.settings.dedupe_max_candidates,
            radius_meters=self.settings.dedupe_radius_meters,
        )
        return [candidate.report_id for candidate in ranked]

    # Citizen tracking

    def get_report_public_status(
        self, public_id: str, token: Optional[str]
    ) -> ReportPublicStatus:
        self.signer.verify_for(token, public_id, now=self.clock())

        report = self.repository.get_report_by_public_id(public_id)
        if report is None:
            raise NotFoundError(f"Report {public_id} not found")

        return ReportPublicStatus(
            public_id=report.public_id,
            status=report.status,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )

    # Operator views

    def list_operator_reports(
        self, filters: Optional[OperatorReportFilters] = None
    ) -> list[OperatorReportView]:
        """Reports enriched with their bike group's signal, filtered and sorted."""
        filters = filters or OperatorReportFilters()
        groups: dict[int, BikeGroup] = {}
        views: list[OperatorReportView] = []

        for report in self.repository.list_reports(filters):
            group = groups.get(report.bike_group_id)
            if group is None:
                group = self._require_bike_group(report.bike_group_id)
                groups[group.id] = group

            view = OperatorReportView(
                report=report,
                bike_group_id=group.id,
                signal_summary=bike_group_to_signal_summary(group),
                signal_strength=group.signal_strength,
            )
            if _matches_signal_filters(view, filters):
                views.append(view)

        if filters.sort == "signal":
            # Two stable passes: newest first, then strongest tier first.
            views.sort(key=lambda view: (view.report.created_at, view.report.id), reverse=True)
            views.sort(key=lambda view: SIGNAL_STRENGTH_PRIORITY[view.signal_strength], reverse=True)

        return views

    def get_report_details(self, report_id: int) -> ReportDetails:
        report = self._require_report(report_id)
        group = self._require_bike_group(report.bike_group_id)
        history = self.repository.list_reports_by_bike_group_id(group.id)

        return ReportDetails(
            report=report,
            events=self.repository.list_events(report.id),
            signal_details=build_signal_details(
                history,
                group,
                self.settings.signal_reconfirmation_gap_days,
                self.settings.strong_signal_min_unique_reporters,
            ),
        )

    def list_report_events(self, report_id: int) -> list[ReportEvent]:
        self._require_report(report_id)
        return self.repository.list_events(report_id)

    def get_available_tags(self) -> list[Tag]:
        return [tag for tag in self.repository.get_tags() if tag.is_active]

    # Operator actions

    def update_report_status(
        self, report_id: int, status: ReportStatus, session: OperatorSession
    ) -> Report:
        report = self._require_report(report_id)
        ensure_transition_allowed(report.status, status)

        # Compare-and-set against the status the transition was checked from.
        updated = self.repository.update_report_status(
            report_id, status, session.email, expected_status=report.status
        )
        if updated is None:
            raise NotFoundError(f"Report {report_id} not found")

        logger.info(
            "report.status_changed report_id=%s from=%s to=%s",
            report_id,
            report.status,
            status,
        )
        return updated

    def merge_duplicate_reports(
        self,
        canonical_report_id: int,
        duplicate_report_ids: Iterable[int],
        session: OperatorSession,
    ) -> DedupeGroup:
        if self.repository.get_report_by_id(canonical_report_id) is None:
            raise NotFoundError(
                f"Canonical report {canonical_report_id} not found",
                code="canonical_not_found",
            )

        duplicates = sorted(set(duplicate_report_ids) - {canonical_report_id})
        if not duplicates:
            raise ServiceError("At least one duplicate report id is required", code="no_duplicates")

        for duplicate_id in duplicates:
            if self.repository.get_report_by_id(duplicate_id) is None:
                raise NotFoundError(
                    f"Duplicate report {duplicate_id} not found",
                    code="duplicate_not_found",
                )

        group = self.repository.merge_reports(canonical_report_id, duplicates, session.email)
        logger.info(
            "report.merged canonical_report_id=%s dedupe_group_id=%s merged=%s",
            canonical_report_id,
            group.id,
            len(group.merged_report_ids),
        )
        return group

    def mark_exported(
        self,
        reports: Iterable[Report],
        session: OperatorSession,
        period: Optional[ExportPeriod] = None,
    ) -> int:
        """Append an ``exported`` event to each report; returns how many were marked."""
        metadata: dict[str, Any] = {}
        if period is not None:
            metadata = {
                "period_type": period.period_type,
                "period_start": period.period_start.isoformat(),
                "period_end": period.period_end.isoformat(),
            }

        count = 0
        for report in reports:
            self.repository.add_event(report.id, "exported", session.email, metadata)
            count += 1

        logger.info("report.exported count=%s actor=%s", count, session.email)
        return count

    def generate_export_batch(
        self,
        period_type: ExportPeriodType,
        session: OperatorSession,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> tuple[ExportBatch, list[Report]]:
        """Resolve the window, mark its reports exported and record the run.

        Returns the batch together with the reports it covers so callers can
        render them.
        """
        period = resolve_export_period(
            period_type,
            period_start,
            period_end,
            now=self.clock(),
            tz_name=self.settings.export_timezone,
        )
        reports = list_reports_for_period(self.repository, period)
        self.mark_exported(reports, session, period)
        batch = self.repository.create_export_batch(period, session.email, len(reports))

        logger.info(
            "export.batch id=%s type=%s rows=%s actor=%s",
            batch.id,
            batch.period_type,
            batch.row_count,
            session.email,
        )
        return batch, reports

    def get_export_batch(self, batch_id: int) -> ExportBatch:
        batch = self.repository.get_export_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Export batch {batch_id} not found", code="export_not_found")
        return batch

    def list_export_batches(self) -> list[ExportBatch]:
        return self.repository.list_export_batches()

    # Lookups

    def _require_report(self, report_id: int) -> Report:
        report = self.repository.get_report_by_id(report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def _require_bike_group(self, bike_group_id: int) -> BikeGroup:
        group = self.repository.get_bike_group_by_id(bike_group_id)
        if group is None:
            raise NotFoundError(
                f"Bike group {bike_group_id} not found", code="bike_group_not_found"
            )
        return group


def _matches_signal_filters(view: OperatorReportView, filters: OperatorReportFilters) -> bool:
    if filters.signal_strength and view.signal_strength != filters.signal_strength:
        return False
    if filters.strong_only and view.signal_strength != "strong_distinct_reporters":
        return False
    if (
        filters.has_qualifying_reconfirmation is not None
        and view.signal_summary.has_qualifying_reconfirmation
        != filters.has_qualifying_reconfirmation
    ):
        return False
    return True
