"""Tool registry — named tools the model can call during a chat turn.

``invoke()`` never raises: an unknown tool, bad arguments, a handler
exception or a timeout all come back as a textual result that is fed to the
model like any other tool output.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Union[str, Awaitable[str]]]


@dataclass(frozen=True)
class ToolDefinition:
    """What the model is told about a tool.

    Attributes:
        parameters: JSON Schema object describing the ``args`` payload.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class Tool:
    """A callable tool. Sync handlers run in a worker thread."""

    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    def definition(self) -> ToolDefinition:
        return ToolDefinition(self.name, self.description, self.parameters)


class ToolRegistry:
    """Name → Tool mapping with safe, time-bounded invocation."""

    def __init__(self, timeout_seconds: float | None = 30.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning("Replacing already registered tool '%s'", tool.name)
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """Return registered tools sorted by name."""
        return [self._tools[n] for n in sorted(self._tools)]

    def definitions(self, names: Iterable[str] | None = None) -> list[ToolDefinition]:
        """Definitions for *names* (all tools when None); unknown names are skipped."""
        if names is None:
            return [t.definition() for t in self.list_tools()]
        result: list[ToolDefinition] = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                logger.warning("Requested tool '%s' is not registered; ignoring", name)
                continue
            result.append(tool.definition())
        return result

    async def invoke(self, name: str, args_json: str) -> str:
        """Run tool *name* with JSON-encoded *args_json* and return its text output."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Tool not found: %s", name)
            return f"Tool not found: {name}"

        try:
            args = json.loads(args_json) if args_json else {}
            if not isinstance(args, dict):
                raise ValueError("tool arguments must be a JSON object")
            result = await asyncio.wait_for(self._call(tool, args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Tool '%s' timed out after %ss", name, self.timeout_seconds)
            return f"Error invoking tool: timed out after {self.timeout_seconds}s"
        except Exception as exc:
            logger.error("Failed to invoke tool '%s' with args %s: %s", name, args_json, exc)
            return f"Error invoking tool: {exc}"

        return str(result)

    @staticmethod
    async def _call(tool: Tool, args: dict[str, Any]) -> str:
        if inspect.iscoroutinefunction(tool.handler):
            return await tool.handler(args)
        return await asyncio.to_thread(tool.handler, args)
