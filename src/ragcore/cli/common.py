"""Shared plumbing for CLI commands: options, config loading, service wiring."""

from __future__ import annotations

import getpass
from pathlib import Path

import typer
from rich.console import Console

from ragcore.cli.errors import err_config, err_no_api_key, err_no_db
from ragcore.config import ConfigError, load_config
from ragcore.log import configure_logging
from ragcore.rag.llm_client import validate_api_key
from ragcore.services import DEFAULT_DB_PATH, Services, build_services

console = Console()

_verbose = False


def set_verbose(value: bool) -> None:
    global _verbose
    _verbose = value


def default_user() -> str:
    try:
        return getpass.getuser() or "local"
    except (KeyError, OSError):
        return "local"


def open_services(db: Path = DEFAULT_DB_PATH, *, must_exist: bool = False) -> Services:
    """Load config, configure logging and build services, exiting on user errors."""
    if must_exist and not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1)

    configure_logging("DEBUG" if _verbose else cfg.logging.level)
    return build_services(cfg, db)


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1)
