"""Tool call parser — extracts <tool_call>{...}</tool_call> markers from model text.

Marker body is JSON: {"name": "<tool>", "args": {...}}. Matching is
case-insensitive and may span lines. Malformed bodies are logged and skipped;
they never fail the turn.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TOOL_CALL_RE = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ToolCall:
    """A parsed tool invocation. ``args_json`` is the JSON encoding of the args object."""

    name: str
    args_json: str

    @property
    def args(self) -> dict:
        return json.loads(self.args_json)


def parse_tool_calls(text: str | None) -> list[ToolCall]:
    """Return every well-formed tool call in *text*, left to right."""
    if not text:
        return []

    calls: list[ToolCall] = []
    for match in _TOOL_CALL_RE.finditer(text):
        body = match.group(1).strip()
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            logger.warning("Skipping malformed tool call %r: %s", body[:200], exc)
            continue

        name = payload.get("name") if isinstance(payload, dict) else None
        args = payload.get("args", {}) if isinstance(payload, dict) else None
        if not isinstance(name, str) or not name.strip():
            logger.warning("Skipping tool call without a name: %r", body[:200])
            continue
        if args is None:
            args = {}
        if not isinstance(args, dict):
            logger.warning("Skipping tool call '%s' whose args are not an object", name)
            continue

        calls.append(ToolCall(name=name.strip(), args_json=json.dumps(args, sort_keys=True)))
    return calls

