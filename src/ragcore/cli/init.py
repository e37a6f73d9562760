"""ragcore init — create the knowledge base and config scaffold.

Creates:
  .ragcore.db              — empty database with schema
  ragcore.yaml             — project config (left alone if present)
  ~/.ragcore/config.yaml   — global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from ragcore.config import ensure_global_config
from ragcore.db.connection import Database
from ragcore.db.schema import initialize

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")

_PROJECT_YAML = """\
# ragcore project configuration. API keys belong in environment variables.
embedding:
  model: openai/text-embedding-3-small
  dimensions: 1536

generation:
  provider: openai          # openai | local
  model: openai/gpt-4o-mini

rag:
  top_k: 6
  max_context_chars: 10000
  chunk_size: 3000
  chunk_overlap: 200

tools:
  enabled: true
  max_tool_calls: 3
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
) -> None:
    """Create .ragcore.db, ragcore.yaml and the global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / ".ragcore.db"
    conn = Database(db_path).connect()
    initialize(conn)
    conn.close()
    console.print(f"  [green]✓[/] {db_path.name}")

    yaml_path = project_dir / "ragcore.yaml"
    if yaml_path.exists():
        console.print(f"  [dim]↷ {yaml_path.name} already exists[/]")
    else:
        yaml_path.write_text(_PROJECT_YAML, encoding="utf-8")
        console.print(f"  [green]✓[/] {yaml_path.name}")

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\nNext steps:")
    console.print("  1. ragcore ingest <file>...      (build the knowledge base)")
    console.print('  2. ragcore chat "your question"  (ask with retrieved context)')
