"""Fixtures for CLI tests: real database, stand-in models."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragcore.config import RagcoreConfig
from ragcore.services import build_services


@pytest.fixture
def provider():
    """Stand-in chat provider; streams its reply in two deltas."""
    mock = MagicMock()
    mock.model = "test/model"
    mock.reply = "The answer is 42."
    mock.complete = AsyncMock(side_effect=lambda prompt: mock.reply)

    async def _stream(prompt):
        middle = len(mock.reply) // 2
        yield mock.reply[:middle]
        yield mock.reply[middle:]

    mock.stream = _stream
    return mock


@pytest.fixture
def cli_services(embedder, provider, monkeypatch):
    """Route CLI commands to services built around the stand-in models."""
    monkeypatch.setenv("COLUMNS", "200")

    def _build(cfg, db_path):
        return build_services(cfg, db_path, provider=provider, embedder=embedder)

    with patch("ragcore.cli.common.load_config", return_value=RagcoreConfig()), patch(
        "ragcore.cli.common.build_services", side_effect=_build
    ):
        yield
