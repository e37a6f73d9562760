"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragcore.db.connection import Database
from ragcore.db.repository import Repository
from ragcore.db.schema import initialize

EMBED_DIMS = 4


def fake_vector(text: str) -> list[float]:
    """Deterministic, non-zero 4-d vector for *text*."""
    digest = hashlib.sha256(text.encode()).digest()
    return [1.0 + b / 255 for b in digest[:EMBED_DIMS]]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".ragcore.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def embedder():
    """Stand-in EmbeddingClient: 4-d vectors derived from the text hash."""
    client = MagicMock()
    client.model = "test/embed"
    client.dimensions = EMBED_DIMS
    client.embed = AsyncMock(side_effect=fake_vector)
    return client
