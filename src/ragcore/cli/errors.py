"""Rich error messages for the ragcore CLI.

Every error shown to the user states what went wrong and the action that
fixes it.

Usage:
    from ragcore.cli.errors import err_no_db
    console.print(err_no_db(".ragcore.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or switch to a local model:  export RAGCORE_PROVIDER=local"
    )


def err_no_db(db_path: str = ".ragcore.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  ragcore ingest <file>  to create it."
    )


def err_config(exc: Exception) -> str:
    return (
        f"[red]Error:[/] Invalid configuration: {exc}\n"
        "  Fix ragcore.yaml (or ~/.ragcore/config.yaml) and try again."
    )


def err_file_not_found(path: str) -> str:
    return f"[red]Error:[/] File not found: '{path}'"


def err_extraction(path: str, exc: Exception) -> str:
    return (
        f"[red]✗ Could not read[/] '{path}': {exc}\n"
        "  Supported: plain text, Markdown, CSV, JSON, XML, YAML, HTML, PDF, EPUB.\n"
        "  Pass --content-type if the file extension is misleading."
    )


def err_embedding(exc: Exception) -> str:
    return (
        f"[red]Error:[/] Embedding failed: {exc}\n"
        "  Check embedding.model / embedding.dimensions in ragcore.yaml and your API key."
    )


def err_provider(exc: Exception) -> str:
    return (
        f"[red]Error:[/] Chat model failed: {exc}\n"
        "  Check generation.model in ragcore.yaml, your API key, or the local model server."
    )


def err_document_not_found(document_id: str) -> str:
    return (
        f"[yellow]Document not found:[/] '{document_id}' is not in the knowledge base.\n"
        "  Run:  ragcore documents  to see all ingested documents."
    )


def err_session_not_found(session_id: str) -> str:
    return (
        f"[yellow]Session not found:[/] '{session_id}'.\n"
        "  Run:  ragcore sessions  to list your chat sessions."
    )


def warn_unknown_tools(names: list[str]) -> str:
    return (
        f"[yellow]⚠[/] Unknown tool(s) ignored: {', '.join(names)}\n"
        "  Run:  ragcore tools  to list available tools."
    )
