"""ragcore CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from ragcore.cli.chat import chat_cmd, history_cmd, sessions_cmd
from ragcore.cli.common import set_verbose
from ragcore.cli.documents import documents_cmd, reembed_cmd, remove_cmd
from ragcore.cli.ingest import ingest_cmd
from ragcore.cli.init import init_cmd
from ragcore.cli.search import search_cmd
from ragcore.cli.tools import tools_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragcore")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragcore {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="ragcore",
    help=(
        "ragcore — retrieval-augmented chat over your documents.\n\n"
        "  ragcore ingest   Add files to the knowledge base.\n"
        "  ragcore chat     Ask questions grounded in it."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """ragcore — retrieval-augmented chat over your documents."""
    set_verbose(verbose)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("documents")(documents_cmd)
app.command("remove")(remove_cmd)
app.command("reembed")(reembed_cmd)
app.command("search")(search_cmd)
app.command("chat")(chat_cmd)
app.command("sessions")(sessions_cmd)
app.command("history")(history_cmd)
app.command("tools")(tools_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragcore version."""
    typer.echo(f"ragcore {_installed_version()}")


if __name__ == "__main__":
    app()
