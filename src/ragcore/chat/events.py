"""Events emitted by a streaming chat turn."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ragcore.chat.orchestrator import ChatResult

DELTA = "delta"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"
DONE = "done"
ERROR = "error"

EVENT_TYPES: frozenset[str] = frozenset([DELTA, TOOL_CALL, TOOL_RESULT, DONE, ERROR])

# Error codes carried by ``error`` events
EMBEDDING_FAILED = "embedding_failed"
PROVIDER_FAILED = "provider_failed"


@dataclass(frozen=True)
class ChatEvent:
    """One step of a chat turn.

    ``content`` holds the token text for ``delta``, the tool output for
    ``tool_result`` and the full answer for ``done``. An ``error`` event
    carries the message in ``error`` and the failing stage in ``code``. A turn
    always ends with exactly one ``done`` or ``error`` event.
    """

    type: str
    session_id: str
    content: str = ""
    tool_name: str | None = None
    tool_args: str | None = None
    error: str | None = None
    code: str | None = None
    result: ChatResult | None = None

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Invalid chat event type '{self.type}'")

    @property
    def terminal(self) -> bool:
        return self.type in (DONE, ERROR)
