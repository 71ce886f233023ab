import pytest
from pydantic import ValidationError

from brs.config import Settings

DB_ENV_VARS = ("DATABASE_URL", "PGHOST", "PGUSER", "PGPASSWORD", "PGDATABASE")


@pytest.fixture
def clean_db_env(monkeypatch):
    for name in DB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(clean_db_env):
    settings = Settings(_env_file=None)

    assert settings.dedupe_radius_meters == 15.0
    assert settings.signal_match_radius_meters == 10.0
    assert settings.signal_reconfirmation_gap_days == 28
    assert settings.report_rate_limit_requests == 8
    assert settings.tracking_link_ttl_days == 90
    assert settings.has_database() is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DEDUPE_RADIUS_METERS", "20")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://example.org/")

    settings = Settings(_env_file=None)

    assert settings.dedupe_radius_meters == 20.0
    assert settings.build_public_url("report/status/X") == "https://example.org/report/status/X"


def test_database_url_from_pg_vars(clean_db_env, monkeypatch):
    monkeypatch.setenv("PGHOST", "db")
    monkeypatch.setenv("PGUSER", "brs")
    monkeypatch.setenv("PGPASSWORD", "secret")
    monkeypatch.setenv("PGDATABASE", "reports")

    settings = Settings(_env_file=None)

    assert settings.get_database_url() == "postgresql://brs:secret@db:5432/reports"


def test_database_url_missing_raises(clean_db_env):
    with pytest.raises(ValueError):
        Settings(_env_file=None).get_database_url()


def test_short_signing_secret_is_rejected(monkeypatch):
    monkeypatch.setenv("APP_SIGNING_SECRET", "short")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
