"""Typer CLI entry point."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import orjson
import typer
from pydantic import BaseModel, ValidationError

from brs.config import Settings
from brs.db.client import db_cursor, schema_sql
from brs.errors import ServiceError
from brs.models import (
    CreateReportPayload,
    OperatorReportFilters,
    OperatorSession,
    PhotoUpload,
    ReportLocation,
)
from brs.repositories import get_repository
from brs.security.fingerprint import (
    build_fingerprint,
    derive_reporter_hash,
    generate_anonymous_reporter_id,
)
from brs.services import ReportService, list_reports_for_period, resolve_export_period
from brs.utils.logging import configure_logging, get_logger
from brs.utils.time import parse_timestamp


app = typer.Typer(help="Bike report signal CLI")
db_app = typer.Typer(help="Database utilities")
tags_app = typer.Typer(help="Tag commands")
report_app = typer.Typer(help="Report commands")
export_app = typer.Typer(help="Export commands")

app.add_typer(db_app, name="db")
app.add_typer(tags_app, name="tags")
app.add_typer(report_app, name="report")
app.add_typer(export_app, name="export")

logger = get_logger(__name__)

PHOTO_MIME_TYPES = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}


@app.callback()
def main() -> None:
    """Initialize logging for all commands."""
    settings = Settings()
    configure_logging(settings.log_level)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def _echo_json(value: Any) -> None:
    typer.echo(orjson.dumps(_to_jsonable(value), option=orjson.OPT_INDENT_2).decode())


def _run(action: Callable[[ReportService], Any]) -> None:
    """Run a service call and print its result; service errors exit with 1."""
    service = ReportService(get_repository(), Settings())
    try:
        result = action(service)
    except ServiceError as exc:
        logger.warning("cli.service_error code=%s message=%s", exc.code, exc.message)
        typer.echo(orjson.dumps(exc.to_dict()).decode(), err=True)
        raise typer.Exit(1)
    _echo_json(result)


def _parse_option_timestamp(value: Optional[str], name: str) -> Optional[datetime]:
    if value is None:
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise typer.BadParameter(f"{name} must be an ISO-8601 timestamp")
    return parsed


def _load_photo(path: Path) -> PhotoUpload:
    mime_type = PHOTO_MIME_TYPES.get(path.suffix.lower())
    if mime_type is None:
        raise typer.BadParameter(f"Unsupported photo type: {path.name}")
    return PhotoUpload(name=path.name, mime_type=mime_type, data=path.read_bytes())


@db_app.command("check")
def db_check() -> None:
    """Check database connectivity."""
    try:
        with db_cursor() as cursor:
            cursor.execute("select 1")
            logger.info("db.check.ok")
    except Exception as exc:
        logger.error("db.check.failed: %s", exc)
        typer.echo(f"Database check failed: {exc}", err=True)
        raise typer.Exit(1)


@db_app.command("init")
def db_init() -> None:
    """Apply the bundled schema and seed default tags."""
    with db_cursor() as cursor:
        cursor.execute(schema_sql())
    logger.info("db.init.ok")


@tags_app.command("list")
def tags_list() -> None:
    """List tags that new reports may use."""
    _run(lambda service: service.get_available_tags())


@report_app.command("create")
def report_create(
    lat: float = typer.Option(..., help="Latitude"),
    lng: float = typer.Option(..., help="Longitude"),
    accuracy: float = typer.Option(0.0, help="Location accuracy in meters"),
    tag: list[str] = typer.Option(..., "--tag", help="Tag code (repeatable)"),
    photo: list[Path] = typer.Option(
        ..., "--photo", exists=True, dir_okay=False, help="JPEG/WebP photo (repeatable)"
    ),
    note: Optional[str] = typer.Option(None, help="Free-text note"),
    reporter: Optional[str] = typer.Option(
        None, help="Anonymous reporter id (generated when omitted)"
    ),
    ip: str = typer.Option("127.0.0.1", help="Submitter IP used for rate limiting"),
    user_agent: Optional[str] = typer.Option(None, help="Submitter user agent"),
    accept_language: Optional[str] = typer.Option(None, help="Submitter Accept-Language header"),
) -> None:
    """Submit a report the way the intake endpoint would."""
    settings = Settings()
    reporter_id = reporter or generate_anonymous_reporter_id()
    try:
        payload = CreateReportPayload(
            photos=[_load_photo(path) for path in photo],
            location=ReportLocation(lat=lat, lng=lng, accuracy_m=accuracy),
            tags=tag,
            note=note,
            ip=ip,
            fingerprint_hash=build_fingerprint(ip, user_agent, accept_language),
            reporter_hash=derive_reporter_hash(reporter_id, settings.app_signing_secret),
        )
    except ValidationError as exc:
        typer.echo(f"Invalid report: {exc}", err=True)
        raise typer.Exit(1)

    _run(lambda service: service.create_report(payload))


@report_app.command("status")
def report_status(
    public_id: str = typer.Option(..., help="Public report id"),
    token: Optional[str] = typer.Option(None, help="Tracking token"),
) -> None:
    """Show the citizen-facing status for a tracking link."""
    _run(lambda service: service.get_report_public_status(public_id, token))


@report_app.command("details")
def report_details(report_id: int = typer.Option(..., "--id", help="Report id")) -> None:
    """Show a report with its events and signal timeline."""
    _run(lambda service: service.get_report_details(report_id))


@report_app.command("list")
def report_list(
    status: Optional[str] = typer.Option(None, help="Report status"),
    tag: Optional[str] = typer.Option(None, help="Tag code"),
    created_from: Optional[str] = typer.Option(None, "--from", help="Created at or after"),
    created_to: Optional[str] = typer.Option(None, "--to", help="Created at or before"),
    signal_strength: Optional[str] = typer.Option(None, help="Signal tier"),
    has_qualifying_reconfirmation: Optional[bool] = typer.Option(
        None, "--qualifying/--not-qualifying", help="Filter on qualifying reconfirmation"
    ),
    strong_only: bool = typer.Option(False, help="Only strong distinct-reporter signals"),
    sort: str = typer.Option("newest", help="newest or signal"),
) -> None:
    """List reports for operators."""
    try:
        filters = OperatorReportFilters(
            status=status,
            tag=tag,
            created_from=_parse_option_timestamp(created_from, "--from"),
            created_to=_parse_option_timestamp(created_to, "--to"),
            signal_strength=signal_strength,
            has_qualifying_reconfirmation=has_qualifying_reconfirmation,
            strong_only=strong_only,
            sort=sort,
        )
    except ValidationError as exc:
        typer.echo(f"Invalid filters: {exc}", err=True)
        raise typer.Exit(1)

    _run(lambda service: service.list_operator_reports(filters))


@report_app.command("transition")
def report_transition(
    report_id: int = typer.Option(..., "--id", help="Report id"),
    status: str = typer.Option(..., help="Target status"),
    actor: str = typer.Option(..., help="Operator email"),
) -> None:
    """Move a report through its lifecycle."""
    session = OperatorSession(email=actor)
    _run(lambda service: service.update_report_status(report_id, status, session))


@report_app.command("merge")
def report_merge(
    canonical_id: int = typer.Option(..., help="Report kept as canonical"),
    duplicate_id: list[int] = typer.Option(..., "--duplicate-id", help="Duplicate (repeatable)"),
    actor: str = typer.Option(..., help="Operator email"),
) -> None:
    """Merge duplicate reports into a canonical one."""
    session = OperatorSession(email=actor)
    _run(lambda service: service.merge_duplicate_reports(canonical_id, duplicate_id, session))


@export_app.command("period")
def export_period(
    period_type: str = typer.Option("weekly", "--type", help="weekly, monthly or all"),
    start: Optional[str] = typer.Option(None, help="Explicit period start"),
    end: Optional[str] = typer.Option(None, help="Explicit period end"),
) -> None:
    """Preview an export window and the reports inside it without recording anything."""
    settings = Settings()

    def action(service: ReportService) -> dict[str, Any]:
        period = resolve_export_period(
            period_type,
            _parse_option_timestamp(start, "--start"),
            _parse_option_timestamp(end, "--end"),
            tz_name=settings.export_timezone,
        )
        reports = list_reports_for_period(service.repository, period)
        return {"period": _to_jsonable(period), "reports": _to_jsonable(reports)}

    _run(action)


@export_app.command("generate")
def export_generate(
    period_type: str = typer.Option("weekly", "--type", help="weekly, monthly or all"),
    start: Optional[str] = typer.Option(None, help="Explicit period start"),
    end: Optional[str] = typer.Option(None, help="Explicit period end"),
    actor: str = typer.Option(..., help="Operator email recorded on the batch"),
) -> None:
    """Record an export batch and mark its reports exported."""
    session = OperatorSession(email=actor)

    def action(service: ReportService) -> dict[str, Any]:
        batch, reports = service.generate_export_batch(
            period_type,
            session,
            _parse_option_timestamp(start, "--start"),
            _parse_option_timestamp(end, "--end"),
        )
        return {"batch": _to_jsonable(batch), "reports": _to_jsonable(reports)}

    _run(action)


@export_app.command("list")
def export_list() -> None:
    """List recorded export batches, newest first."""
    _run(lambda service: service.list_export_batches())


if __name__ == "__main__":
    app()
