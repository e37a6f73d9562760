"""Dense retriever: sqlite-vec nearest neighbours → MMR → character budget.

Pipeline for one query:
  1. Embed the query (EmbeddingError propagates; there is no fallback).
  2. Fetch 2·k nearest chunks by cosine distance, optionally within one
     document. similarity = 1 - distance.
  3. Rerank with MMR down to k snippets (see ragcore.rag.mmr).
  4. Apply the character budget: keep snippets while they fit; the first one
     that does not fit is truncated to the remaining budget if at least
     MIN_TRUNCATED_CHARS remain, otherwise dropped; then stop.

Results are cached per (query, k, document) with a TTL; ingestion and
deletion clear the cache.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, replace

from ragcore.db.repository import Repository
from ragcore.db.vectors import model_to_slug, vec_table_exists, vec_table_name
from ragcore.rag.embeddings import EmbeddingClient
from ragcore.rag.mmr import MMRWeights, mmr_rerank

logger = logging.getLogger(__name__)

MIN_TRUNCATED_CHARS = 100
CANDIDATE_MULTIPLIER = 2


@dataclass(frozen=True)
class ContextSnippet:
    """A retrieved chunk ready for prompt assembly.

    Attributes:
        score: Cosine similarity to the query, in [-1, 1].
    """

    chunk_id: str
    document_id: str
    document_name: str
    chunk_index: int
    text: str
    metadata: str
    score: float


@dataclass(frozen=True)
class SearchResult:
    query: str
    snippets: list[ContextSnippet]
    latency_ms: float
    cached: bool = False


# ------------------------------------------------------------------
# Cache
# ------------------------------------------------------------------


class SearchCache:
    """In-memory TTL cache with least-recently-used eviction."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple, tuple[float, list[ContextSnippet]]] = OrderedDict()

    def get(self, key: tuple) -> list[ContextSnippet] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def put(self, key: tuple, value: list[ContextSnippet]) -> None:
        if self.max_entries <= 0 or self.ttl_seconds <= 0:
            return
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        if self._entries:
            logger.debug("Clearing %d cached search results", len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ------------------------------------------------------------------
# Budget
# ------------------------------------------------------------------


def apply_budget(snippets: list[ContextSnippet], max_chars: int) -> list[ContextSnippet]:
    """Trim *snippets* so their combined text length is at most *max_chars*."""
    kept: list[ContextSnippet] = []
    used = 0
    for snippet in snippets:
        if used + len(snippet.text) <= max_chars:
            kept.append(snippet)
            used += len(snippet.text)
            continue
        remaining = max_chars - used
        if remaining >= MIN_TRUNCATED_CHARS:
            kept.append(replace(snippet, text=snippet.text[:remaining]))
        break
    return kept


# ------------------------------------------------------------------
# Retriever
# ------------------------------------------------------------------


class Retriever:
    """Embedding search with MMR diversity and a context character budget.

    Args:
        repo: Open Repository.
        embedder: Client used for query embeddings; its model selects the vec table.
        top_k: Default number of snippets.
        max_context_chars: Total character budget for returned snippet text.
        weights: MMR weights.
        cache: Optional SearchCache; pass None to disable caching.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        top_k: int = 6,
        max_context_chars: int = 10_000,
        weights: MMRWeights | None = None,
        cache: SearchCache | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self.top_k = top_k
        self.max_context_chars = max_context_chars
        self.weights = weights or MMRWeights()
        self.cache = cache
        self.vec_table = vec_table_name(model_to_slug(embedder.model))

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        document_id: str | None = None,
    ) -> list[ContextSnippet]:
        """Return up to k context snippets for *query*, best first (MMR order).

        Raises:
            EmbeddingError: If the query cannot be embedded.
        """
        k = top_k if top_k is not None else self.top_k
        key = (query, k, document_id)

        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                logger.debug("Search cache hit for %r (k=%d)", query, k)
                return list(hit)

        snippets = await self._search(query, k, document_id)

        if self.cache is not None:
            self.cache.put(key, snippets)
        return list(snippets)

    async def search(
        self,
        query: str,
        top_k: int | None = None,
        document_id: str | None = None,
    ) -> SearchResult:
        """Run retrieve() and report wall-clock latency."""
        k = top_k if top_k is not None else self.top_k
        cached = self.cache is not None and self.cache.get((query, k, document_id)) is not None
        start = time.perf_counter()
        snippets = await self.retrieve(query, k, document_id)
        latency_ms = (time.perf_counter() - start) * 1000
        return SearchResult(query=query, snippets=snippets, latency_ms=latency_ms, cached=cached)

    def invalidate(self) -> None:
        """Drop cached results; called whenever the corpus changes."""
        if self.cache is not None:
            self.cache.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _search(self, query: str, k: int, document_id: str | None) -> list[ContextSnippet]:
        embedding = await self._embedder.embed(query)

        if k <= 0 or not vec_table_exists(self._repo.conn, self.vec_table):
            logger.debug("No vector index '%s' yet; nothing to retrieve", self.vec_table)
            return []

        hits = self._repo.search_vec(
            self.vec_table,
            embedding,
            limit=k * CANDIDATE_MULTIPLIER,
            document_id=document_id,
        )
        names = self._repo.get_document_names([chunk.document_id for chunk, _ in hits])
        candidates = [
            ContextSnippet(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                document_name=names.get(chunk.document_id, "Unknown"),
                chunk_index=chunk.chunk_index,
                text=chunk.text,
                metadata=chunk.metadata,
                score=1.0 - distance,
            )
            for chunk, distance in hits
        ]
        candidates.sort(key=lambda s: s.score, reverse=True)

        reranked = mmr_rerank(candidates, k, self.weights)
        budgeted = apply_budget(reranked, self.max_context_chars)
        logger.debug(
            "Retrieved %d candidates → %d after MMR → %d within %d-char budget",
            len(candidates),
            len(reranked),
            len(budgeted),
            self.max_context_chars,
        )
        return budgeted
