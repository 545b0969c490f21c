"""CLI tests."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from dupkeep.cli import cli
from dupkeep.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("DUPKEEP__")}
    env["HOME"] = str(tmp_path)
    return env


def _files(tmp_path: Path) -> tuple[Path, Path, Path]:
    source = tmp_path / "source"
    source.mkdir()
    hello = source / "hello.txt"
    copy = source / "copy.txt"
    other = source / "other.txt"
    hello.write_text("hi", encoding="utf-8")
    copy.write_text("hi", encoding="utf-8")
    other.write_text("something else", encoding="utf-8")
    return hello, copy, other


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Dupkeep ingests documents" in result.output
    for command in (
        "ingest",
        "scan",
        "duplicates",
        "resolve",
        "verify",
        "cleanup",
        "rules",
        "config",
    ):
        assert command in result.output


def test_ingest_duplicates_resolve_verify_flow(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    hello, copy, other = _files(tmp_path)

    ingest = runner.invoke(cli, ["ingest", str(hello), str(copy), str(other), "--json"], env=env)
    assert ingest.exit_code == 0, ingest.output
    payload = json.loads(ingest.output)
    assert len(payload["processed"]) == 3
    assert payload["errors"] == []

    listing = runner.invoke(cli, ["duplicates", "--json"], env=env)
    assert listing.exit_code == 0, listing.output
    groups = json.loads(listing.output)["groups"]
    assert len(groups) == 1
    assert len(groups[0]["record_ids"]) == 2

    resolved = runner.invoke(
        cli, ["resolve", "delete_all", *groups[0]["record_ids"], "--json"], env=env
    )
    assert resolved.exit_code == 0, resolved.output
    assert json.loads(resolved.output)["resolved_count"] == 2

    verified = runner.invoke(cli, ["verify", "--all", "--json"], env=env)
    assert verified.exit_code == 0, verified.output
    report = json.loads(verified.output)
    assert report["total"] == 1
    assert report["valid"] == 1

    state = json.loads(
        (tmp_path / ".dupkeep" / "state" / "records.json").read_text(encoding="utf-8")
    )
    assert [record["file_name"] for record in state["records"].values()] == ["other.txt"]


def test_ingest_rejected_file_exits_non_zero(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    bad = tmp_path / "setup.exe"
    bad.write_bytes(b"MZ")

    result = runner.invoke(cli, ["ingest", str(bad)], env=env)

    assert result.exit_code == 1
    assert "setup.exe" in result.output


def test_scan_and_rescan(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    _files(tmp_path)

    scan = runner.invoke(cli, ["scan", str(tmp_path / "source"), "--json"], env=env)
    assert scan.exit_code == 0, scan.output
    assert {item["uploaded_by"] for item in json.loads(scan.output)["processed"]} == {
        "SYSTEM_SCAN"
    }

    rescan = runner.invoke(cli, ["rescan", "--json"], env=env)
    assert rescan.exit_code == 0, rescan.output
    assert json.loads(rescan.output) == {
        "groups_processed": 1,
        "new_duplicates_found": 0,
        "groups_dissolved": 0,
    }


def test_delete_unknown_record_reports_error(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["delete", "missing", "--json"], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["succeeded"] == []
    assert payload["errors"][0].startswith("missing: ")


def test_verify_requires_ids_or_all(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["verify"], env=_env_with_home(tmp_path))

    assert result.exit_code == 2
    assert "--all" in result.output


def test_rules_show_and_set(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    rules_path = tmp_path / "rules.yaml"
    configured = runner.invoke(
        cli, ["config", "set", "categories.rules_path", "--value", str(rules_path)], env=env
    )
    assert configured.exit_code == 0, configured.output

    updated = runner.invoke(cli, ["rules", "set", "md", "Notes"], env=env)
    shown = runner.invoke(cli, ["rules", "show", "--json"], env=env)

    assert updated.exit_code == 0, updated.output
    assert rules_path.exists()
    extensions = json.loads(shown.output)["extensions"]
    assert extensions["md"] == "Notes"
    assert extensions["pdf"] == "Documents"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "storage:" in result.output
    assert (tmp_path / ".dupkeep" / "config.yaml").exists()


def test_config_set_updates_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "duplicates.soft_delete", "--value", "true"], env=env
    )
    repeat = runner.invoke(
        cli, ["config", "set", "duplicates.soft_delete", "--value", "true"], env=env
    )

    assert result.exit_code == 0
    assert "Updated duplicates.soft_delete" in result.output
    assert "No changes applied" in repeat.output
    manager = ConfigManager(config_path=tmp_path / ".dupkeep" / "config.yaml", env={})
    assert manager.load(include_env=False).duplicates.soft_delete is True


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "ingestion.workers", "--value", "many"], env=env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_quiet_hides_summaries_but_not_errors(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    hello, _, _ = _files(tmp_path)
    bad = tmp_path / "setup.exe"
    bad.write_bytes(b"MZ")

    accepted = runner.invoke(cli, ["ingest", str(hello), "--quiet"], env=env)
    rejected = runner.invoke(cli, ["ingest", str(bad), "--quiet"], env=env)

    assert accepted.exit_code == 0, accepted.output
    assert "Ingested" not in accepted.output
    assert rejected.exit_code == 1
    assert "setup.exe" in rejected.output
    assert "Ingested" not in rejected.output


def test_quiet_default_comes_from_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["DUPKEEP__CLI__QUIET_DEFAULT"] = "true"
    _files(tmp_path)
    runner.invoke(cli, ["scan", str(tmp_path / "source"), "--json"], env=env)

    plain = runner.invoke(cli, ["rescan"], env=env)
    as_json = runner.invoke(cli, ["rescan", "--json"], env=env)

    assert plain.exit_code == 0, plain.output
    assert "Rescan summary" not in plain.output
    assert as_json.exit_code == 0, as_json.output
    assert json.loads(as_json.output)["groups_processed"] == 1


def test_json_rejects_explicit_quiet(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["rescan", "--json", "--quiet"], env=_env_with_home(tmp_path))

    assert result.exit_code == 1
    assert "--json cannot be combined with --quiet" in result.output


def test_resolve_all_groups(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    hello, copy, other = _files(tmp_path)
    runner.invoke(cli, ["ingest", str(hello), str(copy), str(other), "--json"], env=env)

    missing_ids = runner.invoke(cli, ["resolve", "keep_newest"], env=env)
    resolved = runner.invoke(cli, ["resolve", "keep_newest", "--all", "--json"], env=env)
    listing = runner.invoke(cli, ["duplicates", "--json"], env=env)

    assert missing_ids.exit_code == 2
    assert "--all" in missing_ids.output
    assert resolved.exit_code == 0, resolved.output
    assert json.loads(resolved.output)["resolved_count"] == 1
    assert json.loads(listing.output)["groups"] == []


def test_cleanup_drops_records_whose_bytes_are_gone(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    hello, _, other = _files(tmp_path)
    ingest = runner.invoke(cli, ["ingest", str(hello), str(other), "--json"], env=env)
    processed = json.loads(ingest.output)["processed"]
    lost = processed[0]
    Path(lost["storage_location"]).unlink()

    result = runner.invoke(cli, ["cleanup", "--json"], env=env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["orphaned_records"] == [lost["id"]]
    assert payload["orphaned_objects"] == []
    assert payload["errors"] == []
