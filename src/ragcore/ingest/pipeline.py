"""Ingestion pipeline — bytes → text → chunks → concurrent embeddings.

Documents are content-addressed: the SHA-256 of the raw bytes is checked
before anything else, and re-ingesting the same bytes returns the existing
document without re-chunking or re-embedding.

Chunk rows are written first, then every chunk is embedded concurrently
(bounded by ``max_concurrency``). A chunk whose embedding fails is logged and
left without a vector; ``reembed_missing()`` fills those gaps later.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from ragcore.db.models import Chunk, Document
from ragcore.db.repository import Repository
from ragcore.db.vectors import ensure_vec_table, model_to_slug
from ragcore.errors import EmbeddingError, ExtractionError, NotFoundError
from ragcore.ingest.extract import extract_text, guess_content_type
from ragcore.ingest.splitter import TextSplitter
from ragcore.rag.embeddings import EmbeddingClient
from ragcore.rag.retriever import Retriever

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of one ingest() call.

    Attributes:
        deduplicated: True when the bytes were already stored; ``document``
            is then the earlier record and nothing new was written.
    """

    document: Document
    chunk_count: int
    embedded_count: int
    deduplicated: bool = False

    @property
    def failed_count(self) -> int:
        return self.chunk_count - self.embedded_count


class IngestService:
    """Owns the document lifecycle: ingest, list, re-embed and delete.

    Args:
        repo: Document and chunk store.
        splitter: Text segmenter.
        embedder: Embedding client; its model selects the vec table.
        retriever: Optional retriever whose cache is cleared on corpus changes.
        max_concurrency: Upper bound on in-flight embedding requests.
    """

    def __init__(
        self,
        repo: Repository,
        splitter: TextSplitter,
        embedder: EmbeddingClient,
        retriever: Retriever | None = None,
        max_concurrency: int = 8,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._repo = repo
        self._splitter = splitter
        self._embedder = embedder
        self._retriever = retriever
        self.max_concurrency = max_concurrency

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def ingest(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
        tags: Iterable[str] = (),
    ) -> IngestResult:
        """Store *data* as a document and embed its chunks.

        Raises:
            ExtractionError: The bytes cannot be turned into text. Nothing is
                persisted in that case.
        """
        checksum = hashlib.sha256(data).hexdigest()
        existing = self._repo.get_document_by_checksum(checksum)
        if existing is not None:
            logger.info("'%s' already ingested as %s; skipping", filename, existing.id)
            count = self._repo.count_chunks_by_document(existing.id)
            table = self._vec_table()
            embedded = count - len(self._repo.chunks_without_embedding(table, existing.id))
            return IngestResult(existing, count, embedded, deduplicated=True)

        content_type = content_type or guess_content_type(filename)
        text = extract_text(data, content_type, filename)
        pieces = self._splitter.split(text)
        if not pieces:
            raise ExtractionError(f"No text could be extracted from '{filename}'.")

        document = Document(
            id=str(uuid.uuid4()),
            filename=filename,
            content_type=content_type,
            size=len(data),
            checksum=checksum,
            tags=sorted(set(tags)),
        )
        self._repo.add_document(document)

        chunks: list[Chunk] = []
        for piece in pieces:
            chunk = Chunk(
                id=str(uuid.uuid4()),
                document_id=document.id,
                chunk_index=piece.index,
                text=piece.text,
                metadata=json.dumps({"chars": len(piece.text), "overlap_chars": piece.overlap_chars}),
            )
            self._repo.add_chunk(chunk)
            chunks.append(chunk)

        table = self._vec_table()
        embedded = await self._embed_all(chunks, table, replace=False)
        self._invalidate()

        logger.info(
            "Ingested '%s' as %s: %d chunks, %d embedded",
            filename,
            document.id,
            len(chunks),
            embedded,
        )
        return IngestResult(document, len(chunks), embedded)

    async def reembed_missing(self, document_id: str) -> int:
        """Embed the chunks of *document_id* that have no vector yet.

        Each repaired chunk is replaced whole (row and vector together).
        Returns the number of chunks that now have a vector.
        """
        self._require_document(document_id)
        table = self._vec_table()
        missing = self._repo.chunks_without_embedding(table, document_id)
        if not missing:
            return 0
        embedded = await self._embed_all(missing, table, replace=True)
        self._invalidate()
        logger.info("Re-embedded %d of %d chunks of %s", embedded, len(missing), document_id)
        return embedded

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def list_documents(self) -> list[Document]:
        return self._repo.list_documents()

    def get_document(self, document_id: str) -> Document:
        return self._require_document(document_id)

    def delete_document(self, document_id: str) -> None:
        """Remove a document with its chunks and vectors.

        Raises:
            NotFoundError: No document with that id.
        """
        if not self._repo.delete_document(document_id):
            raise NotFoundError(f"Document not found: {document_id}")
        self._invalidate()
        logger.info("Deleted document %s", document_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _vec_table(self) -> str:
        return ensure_vec_table(
            self._repo.conn, model_to_slug(self._embedder.model), self._embedder.dimensions
        )

    def _require_document(self, document_id: str) -> Document:
        document = self._repo.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return document

    def _invalidate(self) -> None:
        if self._retriever is not None:
            self._retriever.invalidate()

    async def _embed_all(self, chunks: list[Chunk], table: str, replace: bool) -> int:
        """Fan out one embedding task per chunk and store each vector as it lands."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _embed_one(chunk: Chunk) -> bool:
            async with semaphore:
                try:
                    vector = await self._embedder.embed(chunk.text)
                except EmbeddingError as exc:
                    logger.warning(
                        "Embedding failed for chunk %d of %s: %s",
                        chunk.chunk_index,
                        chunk.document_id,
                        exc,
                    )
                    return False
            if replace:
                self._repo.replace_chunk(chunk, table, vector)
            else:
                self._repo.add_embedding(table, chunk.rowid, vector)
                chunk.embedding = vector
            return True

        results = await asyncio.gather(*(_embed_one(c) for c in chunks))
        return sum(results)
