"""Core data models for reports, bike groups and signal state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ReportStatus = Literal["new", "triaged", "forwarded", "resolved", "invalid"]
SignalStrength = Literal["none", "weak_same_reporter", "strong_distinct_reporters"]
ReporterMatchKind = Literal["same_reporter", "distinct_reporter"]
ReconfirmationClass = Literal[
    "initial",
    "ignored_same_day",
    "non_qualifying",
    "counted_same_reporter",
    "counted_distinct_reporter",
]
ReportEventType = Literal[
    "created",
    "status_changed",
    "merged",
    "exported",
    "signal_reconfirmation_counted",
    "signal_reconfirmation_ignored_same_day",
    "signal_strength_changed",
]
ExportPeriodType = Literal["weekly", "monthly", "all"]

REPORT_STATUSES: tuple[str, ...] = ("new", "triaged", "forwarded", "resolved", "invalid")
OPEN_REPORT_STATUSES: frozenset[str] = frozenset({"new", "triaged", "forwarded"})

MAX_PHOTO_COUNT = 3
MIN_PHOTO_COUNT = 1
MAX_TAG_COUNT = 10
MIN_TAG_COUNT = 1
MAX_NOTE_LENGTH = 500
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_LOCATION_ACCURACY_M = 3000


class ReportLocation(BaseModel):
    """Submitted coordinate with the device's accuracy estimate."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    accuracy_m: float = Field(default=0.0, ge=0, le=MAX_LOCATION_ACCURACY_M)


class PhotoUpload(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    mime_type: Literal["image/jpeg", "image/webp"]
    data: bytes = Field(max_length=MAX_UPLOAD_BYTES)


class CreateReportPayload(BaseModel):
    """Validated citizen submission handed over by the intake endpoint."""

    photos: list[PhotoUpload] = Field(min_length=MIN_PHOTO_COUNT, max_length=MAX_PHOTO_COUNT)
    location: ReportLocation
    tags: list[str] = Field(min_length=MIN_TAG_COUNT, max_length=MAX_TAG_COUNT)
    note: Optional[str] = Field(default=None, max_length=MAX_NOTE_LENGTH)
    source: Literal["web"] = "web"
    ip: str = Field(min_length=3, max_length=120)
    fingerprint_hash: str = Field(min_length=64, max_length=64)
    reporter_hash: str = Field(min_length=64, max_length=64)


class Tag(BaseModel):
    id: int
    code: str
    label: str
    is_active: bool = True


class Report(BaseModel):
    """Stored report. Only status, dedupe group, review flag and updated_at change."""

    model_config = ConfigDict(extra="ignore")

    id: int
    public_id: str
    created_at: datetime
    updated_at: datetime
    status: ReportStatus = "new"
    location: ReportLocation
    tags: list[str]
    note: Optional[str] = None
    source: str = "web"
    dedupe_group_id: Optional[int] = None
    bike_group_id: int
    fingerprint_hash: str
    reporter_hash: str
    flagged_for_review: bool = False


class ReportPhoto(BaseModel):
    id: int
    report_id: int
    created_at: datetime
    mime_type: str
    filename: str
    size_bytes: int
    data: bytes = b""


class BikeGroup(BaseModel):
    """One physical bicycle/location cluster. The anchor never moves."""

    id: int
    created_at: datetime
    updated_at: datetime
    anchor_lat: float
    anchor_lng: float
    last_report_at: datetime
    total_reports: int = 0
    unique_reporters: int = 0
    same_reporter_reconfirmations: int = 0
    distinct_reporter_reconfirmations: int = 0
    first_qualifying_reconfirmation_at: Optional[datetime] = None
    last_qualifying_reconfirmation_at: Optional[datetime] = None
    signal_strength: SignalStrength = "none"


class ReportEvent(BaseModel):
    id: int
    report_id: int
    type: ReportEventType
    actor: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class DedupeGroup(BaseModel):
    id: int
    canonical_report_id: int
    merged_report_ids: list[int] = Field(default_factory=list)
    created_at: datetime
    created_by: str


class ReportSignalSummary(BaseModel):
    total_reports: int
    unique_reporters: int
    same_reporter_reconfirmations: int
    distinct_reporter_reconfirmations: int
    first_qualifying_reconfirmation_at: Optional[datetime] = None
    last_qualifying_reconfirmation_at: Optional[datetime] = None
    last_report_at: Optional[datetime] = None
    has_qualifying_reconfirmation: bool = False


class SignalTimelineEntry(BaseModel):
    report_id: int
    public_id: str
    created_at: datetime
    reporter_label: str
    classification: ReconfirmationClass
    reporter_match_kind: Optional[ReporterMatchKind] = None
    qualified: bool = False
    ignored_same_day: bool = False


class SignalDetails(BaseModel):
    bike_group: BikeGroup
    signal_summary: ReportSignalSummary
    signal_strength: SignalStrength
    timeline: list[SignalTimelineEntry] = Field(default_factory=list)


class OperatorSession(BaseModel):
    email: str
    role: Literal["operator"] = "operator"


class OperatorReportFilters(BaseModel):
    status: Optional[ReportStatus] = None
    tag: Optional[str] = None
    created_from: Optional[datetime] = Field(default=None, alias="from")
    created_to: Optional[datetime] = Field(default=None, alias="to")
    signal_strength: Optional[SignalStrength] = None
    has_qualifying_reconfirmation: Optional[bool] = None
    strong_only: bool = False
    sort: Literal["newest", "signal"] = "newest"

    model_config = ConfigDict(populate_by_name=True)


class OperatorReportView(BaseModel):
    report: Report
    bike_group_id: int
    signal_summary: ReportSignalSummary
    signal_strength: SignalStrength


class ReportCreateResponse(BaseModel):
    public_id: str
    created_at: datetime
    status: ReportStatus
    tracking_url: str
    dedupe_candidates: list[int] = Field(default_factory=list)
    flagged_for_review: bool = False
    bike_group_id: int
    signal_strength: SignalStrength
    signal_summary: ReportSignalSummary


class ReportPublicStatus(BaseModel):
    public_id: str
    status: ReportStatus
    created_at: datetime
    updated_at: datetime


class ReportDetails(BaseModel):
    report: Report
    events: list[ReportEvent] = Field(default_factory=list)
    signal_details: SignalDetails


class ExportPeriod(BaseModel):
    period_type: ExportPeriodType
    period_start: datetime
    period_end: datetime


class ExportBatch(BaseModel):
    """A generated export run, kept so operators can see what was handed over."""

    id: int
    period_type: ExportPeriodType
    period_start: datetime
    period_end: datetime
    generated_at: datetime
    generated_by: str
    row_count: int = Field(ge=0)
