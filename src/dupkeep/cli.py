"""Command line interface for dupkeep."""

from __future__ import annotations

import difflib
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from dupkeep.config import ConfigManager, DupkeepConfig, resolve_with_precedence
from dupkeep.config.resolver import assign_path
from dupkeep.dedup import ResolutionStrategy
from dupkeep.engine import DedupEngine, build_engine
from dupkeep.errors import ConfigError, DupkeepError
from dupkeep.ingestion import IngestionResult, Upload
from dupkeep.logs import configure_logging

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For non-JSON flows.
    """

    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)

    raise click.ClickException(message) from original


@contextmanager
def _engine(json_output: bool) -> Iterator[DedupEngine]:
    """Load configuration, configure logging and yield a ready engine.

    Engine errors raised inside the block are converted into CLI errors.
    """
    engine: DedupEngine | None = None
    try:
        manager = ConfigManager()
        config = manager.load()
        state_dir = Path(config.repository.state_dir).expanduser()
        configure_logging(config.logging, state_dir / "logs")
        engine = build_engine(config)
        yield engine
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except DupkeepError as exc:
        code = type(exc).__name__
        _handle_cli_error(str(exc), code=code, json_output=json_output, original=exc)
    finally:
        if engine is not None:
            engine.close()


def _emit_message(message: Any, *, mode: str, quiet: bool) -> None:
    """Print CLI output unless quiet mode suppresses it.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
    """

    if quiet and mode != "error":
        return
    console.print(message)


def _quiet_mode(config: DupkeepConfig, *, quiet: bool, json_output: bool) -> bool:
    """Resolve quiet mode from the flag and ``cli.quiet_default``.

    Raises:
        click.ClickException: If ``--quiet`` is combined with ``--json``.
    """
    ctx = click.get_current_context()
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        return False
    return quiet_enabled


def _emit_errors(errors: list[str], *, quiet: bool) -> None:
    for error in errors:
        _emit_message(f"[red]{error}[/red]", mode="error", quiet=quiet)


def _emit_ingestion(result: IngestionResult, *, json_output: bool, quiet: bool) -> None:
    if json_output:
        console.print_json(data=result.model_dump(mode="json"))
        return

    if result.processed:
        table = Table(title="Ingested files")
        table.add_column("Name")
        table.add_column("Record")
        table.add_column("Category")
        table.add_column("Duplicate group")
        for record in result.processed:
            table.add_row(
                record.file_name,
                record.id,
                record.category,
                record.duplicate_group_id or "-",
            )
        _emit_message(table, mode="detail", quiet=quiet)
    _emit_errors(result.errors, quiet=quiet)
    _emit_message(
        f"[green]Ingested {len(result.processed)} files; {len(result.errors)} errors.[/green]",
        mode="summary",
        quiet=quiet,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="dupkeep")
def cli() -> None:
    """Dupkeep ingests documents, detects duplicates and keeps stored files honest."""


@cli.command()
@click.argument(
    "files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--uploader", type=str, help="Identity recorded as the uploader.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the results.")
def ingest(files: tuple[Path, ...], uploader: str | None, quiet: bool, json_output: bool) -> None:
    """Ingest one or more FILES."""
    uploads = [Upload(data=path.read_bytes(), name=path.name, uploader=uploader) for path in files]
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.ingest_many(uploads)
        _emit_ingestion(result, json_output=json_output, quiet=quiet_enabled)
    if result.errors and not result.processed:
        raise SystemExit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--recursive/--no-recursive", default=True, help="Descend into subdirectories.")
@click.option("--include-hidden", is_flag=True, help="Also ingest hidden files.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the results.")
def scan(
    path: Path, recursive: bool, include_hidden: bool, quiet: bool, json_output: bool
) -> None:
    """Ingest every supported file found under PATH."""
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.ingest_directory(path, recursive=recursive, include_hidden=include_hidden)
        _emit_ingestion(result, json_output=json_output, quiet=quiet_enabled)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the groups.")
def duplicates(json_output: bool) -> None:
    """List current duplicate groups."""
    with _engine(json_output) as engine:
        groups = engine.duplicate_groups()
        if json_output:
            console.print_json(
                data={"groups": [group.model_dump(mode="json") for group in groups]}
            )
            return
        if not groups:
            console.print("[green]No duplicate groups.[/green]")
            return
        table = Table(title="Duplicate groups")
        table.add_column("Group")
        table.add_column("Size", justify="right")
        table.add_column("Records")
        for group in groups:
            records = [engine.get_record(record_id) for record_id in group.record_ids]
            table.add_row(
                group.group_id,
                str(group.size),
                "\n".join(f"{record.id} {record.file_name}" for record in records),
            )
        console.print(table)


@cli.command()
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the rescan.")
def rescan(quiet: bool, json_output: bool) -> None:
    """Rebuild duplicate groups from all stored records."""
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.rescan()
        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return
        _emit_message(
            "[green]Rescan summary: "
            f"groups={result.groups_processed}, new_duplicates={result.new_duplicates_found}, "
            f"dissolved={result.groups_dissolved}.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


@cli.command()
@click.argument("strategy", type=click.Choice([item.value for item in ResolutionStrategy]))
@click.argument("record_ids", nargs=-1)
@click.option("--all", "resolve_all", is_flag=True, help="Resolve every duplicate group.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the resolution.")
def resolve(
    strategy: str, record_ids: tuple[str, ...], resolve_all: bool, quiet: bool, json_output: bool
) -> None:
    """Resolve duplicates among RECORD_IDS (or every group with --all) using STRATEGY."""
    if not record_ids and not resolve_all:
        raise click.UsageError("Provide RECORD_IDS or --all.")
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.resolve_duplicates(strategy, None if resolve_all else record_ids)
        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return
        _emit_errors(result.errors, quiet=quiet_enabled)
        _emit_message(
            f"[green]Resolved {result.resolved_count} records with {strategy}.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


@cli.command()
@click.argument("record_ids", nargs=-1)
@click.option("--all", "verify_all", is_flag=True, help="Verify every stored record.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the results.")
def verify(record_ids: tuple[str, ...], verify_all: bool, quiet: bool, json_output: bool) -> None:
    """Check stored bytes against their recorded hashes."""
    if not record_ids and not verify_all:
        raise click.UsageError("Provide RECORD_IDS or --all.")
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        report = engine.verify_all(None if verify_all else record_ids)
        if json_output:
            console.print_json(data=report.model_dump(mode="json"))
        else:
            table = Table(title="Verification")
            table.add_column("Record")
            table.add_column("Result")
            for item in report.results:
                colour = "green" if item.is_valid else "red"
                table.add_row(item.record_id, f"[{colour}]{item.reason}[/{colour}]")
            _emit_message(table, mode="detail", quiet=quiet_enabled)
            _emit_errors(report.errors, quiet=quiet_enabled)
            _emit_message(
                f"[green]Verify summary: total={report.total}, valid={report.valid}, "
                f"invalid={report.invalid}, missing={report.missing}.[/green]",
                mode="summary",
                quiet=quiet_enabled,
            )
    if report.invalid or report.missing or report.errors:
        raise SystemExit(1)


@cli.command()
@click.argument("record_ids", nargs=-1, required=True)
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the results.")
def delete(record_ids: tuple[str, ...], quiet: bool, json_output: bool) -> None:
    """Delete RECORD_IDS and release their stored bytes."""
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.delete_many(record_ids)
        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return
        _emit_errors(result.errors, quiet=quiet_enabled)
        _emit_message(
            f"[green]Deleted {len(result.succeeded)} records.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


@cli.command()
@click.option(
    "--min-age",
    "min_age",
    type=click.FloatRange(min=0),
    default=3600.0,
    show_default=True,
    help="Seconds an unreferenced object must have existed before it is deleted.",
)
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the cleanup.")
def cleanup(min_age: float, quiet: bool, json_output: bool) -> None:
    """Drop records whose bytes are gone and delete objects no record references."""
    with _engine(json_output) as engine:
        quiet_enabled = _quiet_mode(engine.config, quiet=quiet, json_output=json_output)
        result = engine.cleanup_orphans(min_age_seconds=min_age)
        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return
        for record_id in result.orphaned_records:
            _emit_message(f"Removed record {record_id}", mode="detail", quiet=quiet_enabled)
        for location in result.orphaned_objects:
            _emit_message(f"Deleted object {location}", mode="detail", quiet=quiet_enabled)
        _emit_errors(result.errors, quiet=quiet_enabled)
        _emit_message(
            f"[green]Cleanup summary: records={len(result.orphaned_records)}, "
            f"objects={len(result.orphaned_objects)}, errors={len(result.errors)}.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


@cli.group()
def rules() -> None:
    """Inspect and amend category rules."""


@rules.command("show")
@click.option("--json", "json_output", is_flag=True, help="Emit the extension table as JSON.")
def rules_show(json_output: bool) -> None:
    """Display the extension to category table."""
    with _engine(json_output) as engine:
        table_data = engine.rules.snapshot()
        if json_output:
            console.print_json(data={"extensions": table_data})
            return
        table = Table(title="Category rules")
        table.add_column("Extension")
        table.add_column("Category")
        for extension, category in table_data.items():
            table.add_row(f".{extension}", category)
        console.print(table)


@rules.command("set")
@click.argument("extension")
@click.argument("category")
@click.option("--reclassify", is_flag=True, help="Re-run classification over stored records.")
def rules_set(extension: str, category: str, reclassify: bool) -> None:
    """Map EXTENSION to CATEGORY for subsequent uploads."""
    with _engine(False) as engine:
        saved = engine.update_category_rule(extension, category)
        if saved is None:
            console.print(
                "[yellow]No rules file configured (categories.rules_path); "
                "the change applies to this process only.[/yellow]"
            )
        else:
            console.print(f"[green]Updated rules file {saved}.[/green]")
        if reclassify:
            result = engine.reclassify()
            console.print(f"[green]Reclassified {len(result.succeeded)} records.[/green]")


@cli.group()
def config() -> None:
    """Manage dupkeep configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must be a dotted path such as 'duplicates.soft_delete'.")

    try:
        parsed_value: Any = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        assign_path(file_data, segments, parsed_value, source_name="config")
        resolve_with_precedence(defaults=DupkeepConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()
    if _without_stamp(before) == _without_stamp(after):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    diff = difflib.unified_diff(
        _without_stamp(before),
        _without_stamp(after),
        fromfile="config.yaml (before)",
        tofile="config.yaml (after)",
        lineterm="",
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def _without_stamp(lines: list[str]) -> list[str]:
    return [line for line in lines if not line.startswith("# Last updated:")]


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
