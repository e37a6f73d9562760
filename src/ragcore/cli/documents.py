"""ragcore documents / remove / reembed — document lifecycle commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragcore.cli.common import console, open_services, require_api_key
from ragcore.cli.errors import err_document_not_found, err_embedding
from ragcore.errors import EmbeddingError, NotFoundError
from ragcore.services import DEFAULT_DB_PATH

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the database.")]


def documents_cmd(db: _DbOption = DEFAULT_DB_PATH) -> None:
    """List ingested documents."""
    services = open_services(db, must_exist=True)
    try:
        documents = services.ingest.list_documents()
        if not documents:
            console.print("[dim]No documents ingested yet.[/]")
            return

        table = Table(title="Documents", show_lines=False)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Filename")
        table.add_column("Type", style="dim")
        table.add_column("Size", justify="right")
        table.add_column("Chunks", justify="right")
        table.add_column("Tags", style="dim")
        table.add_column("Created", style="dim")
        for doc in documents:
            table.add_row(
                doc.id,
                doc.filename,
                doc.content_type,
                f"{doc.size:,}",
                str(services.repo.count_chunks_by_document(doc.id)),
                ", ".join(doc.tags),
                (doc.created_at or "")[:19],
            )
        console.print(table)
    finally:
        services.close()


def remove_cmd(
    document_id: Annotated[str, typer.Argument(help="ID of the document to remove.")],
    db: _DbOption = DEFAULT_DB_PATH,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document with its chunks and embeddings."""
    services = open_services(db, must_exist=True)
    try:
        doc = services.repo.get_document(document_id)
        if doc is None:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(1)

        chunk_count = services.repo.count_chunks_by_document(doc.id)
        console.print(f"\nRemove document: [bold]{doc.filename}[/] ({doc.id})")
        console.print(f"  Chunks: {chunk_count}")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        try:
            services.ingest.delete_document(doc.id)
        except NotFoundError:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(1)
        console.print(f"[green]✓[/] Removed {doc.filename}")
    finally:
        services.close()


def reembed_cmd(
    document_id: Annotated[str, typer.Argument(help="ID of the document to repair.")],
    db: _DbOption = DEFAULT_DB_PATH,
) -> None:
    """Embed chunks of a document that are still missing a vector."""
    services = open_services(db, must_exist=True)
    try:
        require_api_key(services.embedder.model)
        try:
            count = asyncio.run(services.ingest.reembed_missing(document_id))
        except NotFoundError:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(1)
        except EmbeddingError as exc:
            console.print(err_embedding(exc))
            raise typer.Exit(1)
        if count:
            console.print(f"[green]✓[/] Re-embedded {count} chunk(s)")
        else:
            console.print("[dim]Nothing to re-embed.[/]")
    finally:
        services.close()
