"""ragcore tools — list the tools a chat turn can offer the model."""

from __future__ import annotations

from rich.table import Table

from ragcore.cli.common import console
from ragcore.tools.builtin import register_builtin_tools
from ragcore.tools.registry import ToolRegistry


def tools_cmd() -> None:
    """List built-in tools."""
    registry = register_builtin_tools(ToolRegistry())
    table = Table(title="Tools")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Arguments", style="dim")
    for tool in registry.list_tools():
        args = ", ".join(tool.parameters.get("properties", {}))
        table.add_row(tool.name, tool.description, args)
    console.print(table)
