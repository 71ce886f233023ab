"""Report workflows built on the repository and signal engine."""

from brs.services.exports import list_reports_for_period, resolve_export_period
from brs.services.lifecycle import STATUS_TRANSITIONS, ensure_transition_allowed
from brs.services.report_service import ReportService

__all__ = [
    "ReportService",
    "STATUS_TRANSITIONS",
    "ensure_transition_allowed",
    "list_reports_for_period",
    "resolve_export_period",
]
