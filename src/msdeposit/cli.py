"""Command-line interface for msdeposit."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import httpx
import structlog
import typer
from rich.console import Console
from rich.table import Table

from msdeposit.entities import load_entity_set
from msdeposit.errors import ModelBuildError, PackageIOError
from msdeposit.models import Submission
from msdeposit.services import (
    PackageAssembler,
    SubmissionModelBuilder,
    default_openers,
    read_manifest,
)
from msdeposit.settings import Settings, configure_logging, get_settings
from msdeposit.utils import slugify

console = Console()
app = typer.Typer(help="msdeposit – manuscript deposit packager")
ARCHIVE_FORMATS = ("zip", "tar", "tar.gz")
logger = structlog.get_logger(__name__)


@app.callback()
def main() -> None:
    configure_logging(Settings.load().log_level)


def _build(entities_path: Path, submission_id: str, metadata_path: Optional[Path]) -> Submission:
    metadata = metadata_path.read_text(encoding="utf-8") if metadata_path else None
    try:
        entities = load_entity_set(entities_path)
        return SubmissionModelBuilder(entities).build(submission_id, metadata)
    except ModelBuildError as exc:
        logger.warning("cli.build_failed", submission=submission_id, error=str(exc))
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _print_submission(submission: Submission) -> None:
    metadata = submission.metadata
    table = Table(title="Submission Preview")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_row("ID", submission.id)
    table.add_row("Title", metadata.manuscript.title or "—")
    table.add_row("Journal", metadata.journal.journal_title or "—")
    table.add_row("DOI", metadata.article.doi or "—")
    embargo = metadata.article.embargo_lift_date
    table.add_row("Embargo lifts", embargo.isoformat() if embargo else "—")
    table.add_row(
        "People",
        ", ".join(f"{person.name} ({person.type.value})" for person in metadata.persons) or "—",
    )
    console.print(table)

    files = Table(title=f"Files ({len(submission.files)})")
    files.add_column("Name")
    files.add_column("Type")
    files.add_column("Location", overflow="fold")
    for item in submission.files:
        files.add_row(item.name, item.type.value, item.location)
    console.print(files)


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Output settings as JSON"),
) -> None:
    """Display the resolved settings."""
    settings = get_settings()
    if json_output:
        typer.echo(settings.model_dump_json(indent=2))
        return
    table = Table(title="msdeposit Settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def build(
    entities: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Entity graph JSON"),
    submission_id: str = typer.Argument(..., help="Identifier of the root submission entity"),
    metadata: Optional[Path] = typer.Option(
        None, "--metadata", exists=True, dir_okay=False, help="Replace the submission's metadata document"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output the model as JSON"),
) -> None:
    """Build the normalized submission model."""
    submission = _build(entities, submission_id, metadata)
    if json_output:
        typer.echo(submission.model_dump_json(indent=2))
        return
    _print_submission(submission)


@app.command()
def package(
    entities: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Entity graph JSON"),
    submission_id: str = typer.Argument(..., help="Identifier of the root submission entity"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Package file to write"),
    archive_format: Optional[str] = typer.Option(None, "--format", help="zip, tar or tar.gz"),
    content_dir: Optional[Path] = typer.Option(
        None, "--content-dir", file_okay=False, help="Base directory for relative file locations"
    ),
    metadata: Optional[Path] = typer.Option(
        None, "--metadata", exists=True, dir_okay=False, help="Replace the submission's metadata document"
    ),
) -> None:
    """Build the submission and stream its files into a deposit package."""
    settings = get_settings()
    if content_dir is not None:
        settings = settings.model_copy(update={"content_base_dir": content_dir})
    archive_format = archive_format or settings.archive_format
    if archive_format not in ARCHIVE_FORMATS:
        raise typer.BadParameter(f"Format must be one of: {', '.join(ARCHIVE_FORMATS)}")

    submission = _build(entities, submission_id, metadata)
    target = output or settings.data_dir / f"{slugify(submission.name)}.{archive_format}"

    with httpx.Client(timeout=settings.http_timeout, follow_redirects=True) as client:
        assembler = PackageAssembler(default_openers(settings, client), settings)
        try:
            receipt = assembler.write_package(submission, target, archive_format)
        except PackageIOError as exc:
            console.print(f"[red]Packaging failed[/red]: {exc}")
            raise typer.Exit(code=1) from exc

    table = Table(title=f"Package {target.name}")
    table.add_column("Path")
    table.add_column("Role")
    table.add_column("Size", justify="right")
    table.add_column(settings.checksum_algorithms[0])
    for resource in receipt.resources:
        table.add_row(
            resource.path,
            resource.role.value,
            str(resource.size),
            resource.checksums.get(settings.checksum_algorithms[0], "—"),
        )
    console.print(table)
    console.print(f"[green]Wrote package[/green]: {target}")


@app.command()
def manifest(
    package_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    json_output: bool = typer.Option(False, "--json", help="Output the manifest as JSON"),
) -> None:
    """Show the manifest of a written package."""
    settings = get_settings()
    try:
        payload = read_manifest(package_path, settings.manifest_name)
    except PackageIOError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    if json_output:
        typer.echo(json.dumps(payload, indent=2))
        return
    table = Table(title=f"Manifest for {payload['submission']['id']}")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Size", justify="right")
    table.add_column("Media type")
    for entry in payload["resources"]:
        table.add_row(entry["name"], entry["role"], str(entry["size"]), entry["mediaType"])
    console.print(table)


if __name__ == "__main__":
    app()
