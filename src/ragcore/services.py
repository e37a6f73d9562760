"""Wire configuration into ready-to-use services.

The CLI (or any other transport) calls ``build_services()`` once and works
only with the returned objects.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from ragcore.chat.orchestrator import ChatOrchestrator
from ragcore.config import RagcoreConfig
from ragcore.db.connection import Database
from ragcore.db.repository import Repository
from ragcore.db.schema import initialize
from ragcore.ingest.pipeline import IngestService
from ragcore.ingest.splitter import TextSplitter
from ragcore.rag.embeddings import EmbeddingClient
from ragcore.rag.llm_client import ChatProvider, create_provider
from ragcore.rag.mmr import MMRWeights
from ragcore.rag.prompt import PromptAssembler
from ragcore.rag.retriever import Retriever, SearchCache
from ragcore.tools.builtin import register_builtin_tools
from ragcore.tools.registry import ToolRegistry

DEFAULT_DB_PATH = Path(".ragcore.db")


@dataclass
class Services:
    config: RagcoreConfig
    conn: sqlite3.Connection
    repo: Repository
    embedder: EmbeddingClient
    retriever: Retriever
    ingest: IngestService
    provider: ChatProvider
    registry: ToolRegistry
    orchestrator: ChatOrchestrator

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Services:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def build_services(
    config: RagcoreConfig,
    db_path: Path | str = DEFAULT_DB_PATH,
    *,
    provider: ChatProvider | None = None,
    embedder: EmbeddingClient | None = None,
    registry: ToolRegistry | None = None,
) -> Services:
    """Open the database and assemble every service from *config*.

    *provider*, *embedder* and *registry* replace the configured ones when
    given.
    """
    conn = Database(db_path).connect()
    initialize(conn)
    repo = Repository(conn)

    if embedder is None:
        embedder = EmbeddingClient(
            model=config.embedding.model,
            dimensions=config.embedding.dimensions,
            api_base=config.embedding.api_base,
            num_retries=config.embedding.num_retries,
        )

    rag = config.rag
    retriever = Retriever(
        repo,
        embedder,
        top_k=rag.top_k,
        max_context_chars=rag.max_context_chars,
        weights=MMRWeights.from_config(rag.mmr),
        cache=SearchCache(rag.cache_ttl_seconds, rag.cache_max_entries),
    )
    ingest = IngestService(
        repo,
        TextSplitter(rag.chunk_size, rag.chunk_overlap),
        embedder,
        retriever=retriever,
        max_concurrency=config.embedding.max_concurrency,
    )

    if provider is None:
        provider = create_provider(config.generation)
    if registry is None:
        registry = register_builtin_tools(
            ToolRegistry(timeout_seconds=config.tools.timeout_seconds),
            fetch_timeout=config.tools.timeout_seconds,
        )

    orchestrator = ChatOrchestrator(
        repo,
        retriever,
        provider,
        PromptAssembler(
            system_prompt=rag.system_prompt,
            temperature=config.generation.temperature,
            max_tokens=config.generation.max_tokens,
        ),
        registry,
        max_tool_calls=config.tools.max_tool_calls,
        history_window=config.chat.history_window,
        tools_enabled=config.tools.enabled,
    )

    return Services(
        config=config,
        conn=conn,
        repo=repo,
        embedder=embedder,
        retriever=retriever,
        ingest=ingest,
        provider=provider,
        registry=registry,
        orchestrator=orchestrator,
    )
