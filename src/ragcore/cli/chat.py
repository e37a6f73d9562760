"""ragcore chat / sessions / history — conversational commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from ragcore.chat.events import DELTA, DONE, EMBEDDING_FAILED, ERROR, TOOL_CALL, TOOL_RESULT
from ragcore.chat.orchestrator import ChatOrchestrator, ChatRequest, ChatResult
from ragcore.cli.common import console, default_user, open_services, require_api_key
from ragcore.cli.errors import (
    err_embedding,
    err_provider,
    err_session_not_found,
    warn_unknown_tools,
)
from ragcore.errors import EmbeddingError, NotFoundError, ProviderError
from ragcore.services import DEFAULT_DB_PATH

_DbOption = Annotated[Path, typer.Option("--db", help="Path to the database.")]
_UserOption = Annotated[
    str | None,
    typer.Option("--user", help="Session owner (default: current OS user)."),
]

_TOOL_RESULT_PREVIEW = 200


def chat_cmd(
    message: Annotated[str, typer.Argument(help="Your message.")],
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Continue an existing session."),
    ] = None,
    no_rag: Annotated[
        bool,
        typer.Option("--no-rag", help="Answer without retrieving context."),
    ] = False,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of context snippets."),
    ] = None,
    tool: Annotated[
        list[str] | None,
        typer.Option("--tool", help="Offer a tool to the model (repeatable)."),
    ] = None,
    no_stream: Annotated[
        bool,
        typer.Option("--no-stream", help="Wait for the full answer instead of streaming."),
    ] = False,
    user: _UserOption = None,
    db: _DbOption = DEFAULT_DB_PATH,
) -> None:
    """Ask a question, grounded in the knowledge base."""
    services = open_services(db)
    try:
        require_api_key(services.provider.model)
        if not no_rag:
            require_api_key(services.embedder.model)

        tool_names = tool or []
        unknown = [n for n in tool_names if services.registry.get(n) is None]
        if unknown:
            console.print(warn_unknown_tools(unknown))

        request = ChatRequest(
            message=message,
            user_id=user or default_user(),
            session_id=session,
            use_rag=not no_rag,
            top_k=top_k,
            tool_names=tool_names,
        )
        try:
            if no_stream:
                result = asyncio.run(services.orchestrator.chat_turn(request))
                console.print(result.content, markup=False, highlight=False)
                _print_footer(result)
            else:
                asyncio.run(_stream(services.orchestrator, request))
        except NotFoundError:
            console.print(err_session_not_found(session or ""))
            raise typer.Exit(1)
        except EmbeddingError as exc:
            console.print(err_embedding(exc))
            raise typer.Exit(1)
        except ProviderError as exc:
            console.print(err_provider(exc))
            raise typer.Exit(1)
    finally:
        services.close()


async def _stream(orchestrator: ChatOrchestrator, request: ChatRequest) -> None:
    async for event in orchestrator.stream_turn(request):
        if event.type == DELTA:
            console.print(event.content, end="", markup=False, highlight=False)
        elif event.type == TOOL_CALL:
            console.print(f"\n[dim]⚙ {event.tool_name} {escape(event.tool_args or '')}[/]")
        elif event.type == TOOL_RESULT:
            preview = event.content[:_TOOL_RESULT_PREVIEW]
            console.print(f"[dim]  → {escape(preview)}[/]")
        elif event.type == DONE:
            console.print()
            if event.result is not None:
                _print_footer(event.result)
        elif event.type == ERROR:
            console.print()
            failure = RuntimeError(event.error)
            if event.code == EMBEDDING_FAILED:
                console.print(err_embedding(failure))
            else:
                console.print(err_provider(failure))
            raise typer.Exit(1)


def _print_footer(result: ChatResult) -> None:
    parts = [f"session {result.session_id}"]
    if result.snippets:
        parts.append(f"{len(result.snippets)} source(s)")
    if result.tool_calls:
        parts.append(f"{result.tool_calls} tool call(s)")
    console.print(f"[dim]{'  |  '.join(parts)}[/]")


def sessions_cmd(user: _UserOption = None, db: _DbOption = DEFAULT_DB_PATH) -> None:
    """List your chat sessions, newest first."""
    services = open_services(db, must_exist=True)
    try:
        sessions = services.repo.list_sessions(user or default_user())
    finally:
        services.close()

    if not sessions:
        console.print("[dim]No chat sessions yet.[/]")
        return

    table = Table(title="Chat sessions")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Created", style="dim")
    for s in sessions:
        table.add_row(s.id, escape(s.title), (s.created_at or "")[:19])
    console.print(table)


def history_cmd(
    session_id: Annotated[str, typer.Argument(help="Session to show.")],
    user: _UserOption = None,
    db: _DbOption = DEFAULT_DB_PATH,
) -> None:
    """Show the messages of a chat session."""
    services = open_services(db, must_exist=True)
    try:
        session = services.repo.get_session(session_id)
        if session is None or session.user_id != (user or default_user()):
            console.print(err_session_not_found(session_id))
            raise typer.Exit(1)
        messages = services.repo.list_messages(session_id)
    finally:
        services.close()

    console.print(f"[bold]{escape(session.title)}[/]\n")
    for msg in messages:
        style = {"user": "bold cyan", "assistant": "green", "tool": "dim"}.get(msg.role, "")
        console.print(f"[{style}]{msg.role}:[/] " if style else f"{msg.role}: ", end="")
        console.print(msg.content, markup=False, highlight=False)
