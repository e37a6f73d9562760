"""ragcore ingest — add files to the knowledge base.

Each file is extracted, split into overlapping chunks and embedded
concurrently. Files already ingested (same bytes) are skipped.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from ragcore.cli.common import console, open_services, require_api_key
from ragcore.cli.errors import err_embedding, err_extraction, err_file_not_found
from ragcore.errors import EmbeddingError, ExtractionError
from ragcore.ingest.extract import guess_content_type, is_supported
from ragcore.ingest.pipeline import IngestResult, IngestService
from ragcore.services import DEFAULT_DB_PATH


def ingest_cmd(
    files: Annotated[
        list[Path],
        typer.Argument(help="Files to ingest."),
    ],
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Tag to attach to every file (repeatable)."),
    ] = None,
    content_type: Annotated[
        str | None,
        typer.Option("--content-type", help="Override the content type guessed from the file name."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the database (created if missing)."),
    ] = DEFAULT_DB_PATH,
) -> None:
    """Ingest one or more files into the knowledge base."""
    services = open_services(db)
    try:
        require_api_key(services.embedder.model)
        failures = 0
        for path in files:
            if not _ingest_file(services.ingest, path, tag or [], content_type):
                failures += 1
    finally:
        services.close()

    if failures:
        raise typer.Exit(1)


def _ingest_file(
    service: IngestService,
    path: Path,
    tags: list[str],
    content_type: str | None,
) -> bool:
    console.print(f"\n[bold]→ {path}[/]")
    if not path.is_file():
        console.print(err_file_not_found(str(path)))
        return False

    resolved_type = content_type or guess_content_type(path.name)
    if not is_supported(resolved_type):
        unsupported = ExtractionError(f"Unsupported content type '{resolved_type}'")
        console.print(err_extraction(str(path), unsupported))
        return False

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("Extracting and embedding…", total=None)
        try:
            result = asyncio.run(
                service.ingest(path.read_bytes(), path.name, content_type=content_type, tags=tags)
            )
        except ExtractionError as exc:
            console.print(err_extraction(str(path), exc))
            return False
        except EmbeddingError as exc:
            console.print(err_embedding(exc))
            return False

    _report(result)
    return True


def _report(result: IngestResult) -> None:
    doc = result.document
    if result.deduplicated:
        console.print(
            f"  [dim]↷ Unchanged — already stored as {doc.id} ({result.chunk_count} chunks)[/]"
        )
        return
    console.print(f"  [green]✓[/] {doc.id}  {result.chunk_count} chunks, {result.embedded_count} embedded")
    if result.failed_count:
        console.print(
            f"  [yellow]⚠[/] {result.failed_count} chunk(s) could not be embedded.\n"
            f"  Retry:  ragcore reembed {doc.id}"
        )
