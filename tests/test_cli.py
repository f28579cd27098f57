from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from msdeposit import cli

runner = CliRunner()

SUBMISSION_ID = "https://pass.example.org/submissions/1"


def _write_graph(tmp_path: Path, *, pi: str = "user:pi") -> Path:
    metadata = [
        {"id": "common", "data": {"title": "A Study", "authors": [{"author": "Jane Doe"}]}},
        {"id": "crossref", "data": {"doi": "10.1000/study"}},
    ]
    entities = [
        {
            "id": SUBMISSION_ID,
            "type": "Submission",
            "user": "user:submitter",
            "grants": ["grant:1"],
            "metadata": json.dumps(metadata),
        },
        {"id": "user:submitter", "type": "User", "firstName": "Sam", "lastName": "Submitter"},
        {"id": "user:pi", "type": "User", "firstName": "Pat", "lastName": "Investigator"},
        {"id": "grant:1", "type": "Grant", "pi": pi, "awardNumber": "R01-000"},
        {
            "id": "file:1",
            "type": "File",
            "name": "manuscript.pdf",
            "uri": "manuscript.pdf",
            "fileRole": "manuscript",
            "submission": SUBMISSION_ID,
        },
    ]
    path = tmp_path / "entities.json"
    path.write_text(json.dumps(entities), encoding="utf-8")
    return path


def test_config_json_flag(tmp_path, monkeypatch):
    data_dir = tmp_path / "msdeposit-data"
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(data_dir))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("MSDEPOSIT_ARCHIVE_FORMAT", "tar")

    result = runner.invoke(cli.app, ["config", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip())
    assert Path(payload["data_dir"]) == data_dir
    assert payload["log_level"] == "DEBUG"
    assert payload["archive_format"] == "tar"


def test_build_json_outputs_the_model(tmp_path, monkeypatch):
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "WARNING")
    entities = _write_graph(tmp_path)

    result = runner.invoke(cli.app, ["build", str(entities), SUBMISSION_ID, "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip())
    assert payload["id"] == SUBMISSION_ID
    assert payload["metadata"]["manuscript"]["title"] == "A Study"
    assert payload["metadata"]["article"]["doi"] == "10.1000/study"
    assert [person["type"] for person in payload["metadata"]["persons"]] == ["submitter", "pi", "author"]
    assert payload["files"][0]["type"] == "manuscript"


def test_build_reports_unresolved_references(tmp_path, monkeypatch):
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "WARNING")
    entities = _write_graph(tmp_path, pi="user:ghost")

    result = runner.invoke(cli.app, ["build", str(entities), SUBMISSION_ID])

    assert result.exit_code == 1
    assert "user:ghost" in result.stdout


def test_package_then_manifest(tmp_path, monkeypatch):
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "WARNING")
    entities = _write_graph(tmp_path)
    content_dir = tmp_path / "content"
    content_dir.mkdir()
    (content_dir / "manuscript.pdf").write_bytes(b"%PDF-1.7 body")
    destination = tmp_path / "out" / "package.zip"

    result = runner.invoke(
        cli.app,
        [
            "package",
            str(entities),
            SUBMISSION_ID,
            "--output",
            str(destination),
            "--content-dir",
            str(content_dir),
        ],
    )

    assert result.exit_code == 0
    assert destination.exists()

    shown = runner.invoke(cli.app, ["manifest", str(destination), "--json"])
    assert shown.exit_code == 0
    manifest = json.loads(shown.stdout.strip())
    assert manifest["submission"]["id"] == SUBMISSION_ID
    assert manifest["resources"][0]["size"] == len(b"%PDF-1.7 body")


def test_package_missing_content_fails_cleanly(tmp_path, monkeypatch):
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "WARNING")
    entities = _write_graph(tmp_path)
    destination = tmp_path / "package.zip"

    result = runner.invoke(
        cli.app,
        ["package", str(entities), SUBMISSION_ID, "-o", str(destination), "--content-dir", str(tmp_path)],
    )

    assert result.exit_code == 1
    assert "Packaging failed" in result.stdout
    assert not destination.exists()


def test_build_reports_malformed_entity_files(tmp_path, monkeypatch):
    monkeypatch.setenv("MSDEPOSIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("MSDEPOSIT_LOG_LEVEL", "WARNING")
    entities = tmp_path / "entities.json"
    entities.write_text(json.dumps(["not-an-entity"]), encoding="utf-8")

    result = runner.invoke(cli.app, ["build", str(entities), SUBMISSION_ID])

    assert result.exit_code == 1
    assert "must be an object" in result.stdout
