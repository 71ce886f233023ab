import orjson
import pytest
from typer.testing import CliRunner

from brs.cli.main import app
from brs.repositories import MemoryRepository, set_repository
from brs.security.fingerprint import build_fingerprint

runner = CliRunner()


@pytest.fixture
def cli_repository(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    repository = MemoryRepository()
    set_repository(repository)
    yield repository
    set_repository(None)


def _create_report(tmp_path, *extra: str):
    photo = tmp_path / "bike.jpg"
    photo.write_bytes(b"jpeg-bytes")
    return runner.invoke(
        app,
        [
            "report",
            "create",
            "--lat",
            "52.3676",
            "--lng",
            "4.9041",
            "--tag",
            "flat_tires",
            "--photo",
            str(photo),
            *extra,
        ],
    )


def test_tags_list(cli_repository):
    result = runner.invoke(app, ["tags", "list"])

    assert result.exit_code == 0
    codes = [tag["code"] for tag in orjson.loads(result.stdout)]
    assert len(codes) == 10
    assert "flat_tires" in codes


def test_report_create_uses_request_headers_for_fingerprint(cli_repository, tmp_path):
    result = _create_report(
        tmp_path, "--ip", "10.0.0.9", "--user-agent", "Mozilla/5.0", "--accept-language", "nl-NL"
    )

    assert result.exit_code == 0
    public_id = orjson.loads(result.stdout)["public_id"]
    report = cli_repository.get_report_by_public_id(public_id)
    assert report.fingerprint_hash == build_fingerprint("10.0.0.9", "Mozilla/5.0", "nl-NL")


def test_service_errors_exit_with_code(cli_repository):
    result = runner.invoke(
        app,
        ["report", "transition", "--id", "404", "--status", "triaged", "--actor", "op@example.org"],
    )

    assert result.exit_code == 1
    assert "report_not_found" in result.output


def test_export_generate_then_list(cli_repository, tmp_path):
    assert _create_report(tmp_path).exit_code == 0

    generated = runner.invoke(
        app, ["export", "generate", "--type", "all", "--actor", "op@example.org"]
    )
    listed = runner.invoke(app, ["export", "list"])

    assert generated.exit_code == 0
    batch = orjson.loads(generated.stdout)["batch"]
    assert batch["row_count"] == 1
    assert [item["id"] for item in orjson.loads(listed.stdout)] == [batch["id"]]
