"""ragcore search — show the context snippets retrieved for a query."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from ragcore.cli.common import console, open_services, require_api_key
from ragcore.cli.errors import err_embedding
from ragcore.errors import EmbeddingError
from ragcore.rag.prompt import source_label
from ragcore.services import DEFAULT_DB_PATH

_PREVIEW_CHARS = 300


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of snippets (default from config)."),
    ] = None,
    document: Annotated[
        str | None,
        typer.Option("--document", help="Restrict the search to one document ID."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to the database.")] = DEFAULT_DB_PATH,
) -> None:
    """Search the knowledge base."""
    services = open_services(db, must_exist=True)
    try:
        require_api_key(services.embedder.model)
        try:
            result = asyncio.run(services.retriever.search(query, top_k=top_k, document_id=document))
        except EmbeddingError as exc:
            console.print(err_embedding(exc))
            raise typer.Exit(1)
    finally:
        services.close()

    cached = " (cached)" if result.cached else ""
    console.print(
        f"[bold]{len(result.snippets)}[/] result(s) in {result.latency_ms:.0f} ms{cached}\n"
    )
    for snippet in result.snippets:
        preview = snippet.text[:_PREVIEW_CHARS]
        if len(snippet.text) > _PREVIEW_CHARS:
            preview += "…"
        console.print(
            Panel(
                Text(preview),
                title=f"{escape(source_label(snippet))}  score {snippet.score:.3f}",
                title_align="left",
                expand=False,
            )
        )
