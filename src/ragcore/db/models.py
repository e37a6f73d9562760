"""Domain models for the ragcore database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

ROLES: frozenset[str] = frozenset(["system", "user", "assistant", "tool"])


@dataclass
class Document:
    """An ingested file, identified by the SHA-256 checksum of its bytes.

    Immutable once stored, except for ``tags``.
    """

    id: str
    filename: str
    content_type: str
    size: int
    checksum: str
    tags: list[str] = field(default_factory=list)
    created_at: str | None = None


@dataclass
class Chunk:
    id: str
    document_id: str
    chunk_index: int
    text: str
    metadata: str = field(default_factory=lambda: "{}")
    embedding: list[float] | None = None
    created_at: str | None = None
    rowid: int | None = None  # set after insert; key into the vec table

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class ChatSession:
    id: str
    user_id: str
    title: str
    created_at: str | None = None


@dataclass
class ChatMessage:
    """One append-only entry in a chat session.

    ``role`` is one of system, user, assistant, tool.
    """

    id: str
    session_id: str
    role: str
    content: str
    tokens_in: int | None = None
    tokens_out: int | None = None
    created_at: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Invalid chat role '{self.role}'; expected one of {sorted(ROLES)}")
