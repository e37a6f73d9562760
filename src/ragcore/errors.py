"""Exception hierarchy shared by the ingestion, retrieval and chat layers."""

from __future__ import annotations


class RagError(Exception):
    """Base class for all ragcore failures."""


class ExtractionError(RagError):
    """Raised when document bytes cannot be turned into text.

    Fatal for the document being ingested; nothing is persisted.
    """


class EmbeddingError(RagError):
    """Raised when the embedding provider fails or returns a malformed vector."""


class ProviderError(RagError):
    """Raised when the chat-completion provider fails."""


class NotFoundError(RagError, LookupError):
    """Raised when a document or chat session id does not exist."""
