"""Tests for ragcore ingest / documents / remove / reembed."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from ragcore.cli.main import app
from ragcore.db.connection import Database
from ragcore.db.repository import Repository
from ragcore.errors import EmbeddingError

runner = CliRunner()


@pytest.fixture
def db(tmp_path: Path) -> Path:
    return tmp_path / ".ragcore.db"


@pytest.fixture
def notes(tmp_path: Path) -> Path:
    path = tmp_path / "notes.txt"
    path.write_text("Solar panels convert sunlight into electricity.", encoding="utf-8")
    return path


def _documents(db: Path):
    conn = Database(db).connect()
    try:
        return Repository(conn).list_documents()
    finally:
        conn.close()


def _ingest(db: Path, *args: str):
    return runner.invoke(app, ["ingest", *args, "--db", str(db)])


# ---------------------------------------------------------------------------
# ragcore ingest
# ---------------------------------------------------------------------------


def test_ingest_file(cli_services, db: Path, notes: Path) -> None:
    result = _ingest(db, str(notes), "--tag", "energy", "-t", "solar")

    assert result.exit_code == 0, result.output
    assert "1 chunks, 1 embedded" in result.output
    (doc,) = _documents(db)
    assert doc.filename == "notes.txt"
    assert doc.tags == ["energy", "solar"]


def test_ingest_same_file_twice_is_skipped(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    result = _ingest(db, str(notes))

    assert result.exit_code == 0, result.output
    assert "Unchanged" in result.output
    assert len(_documents(db)) == 1


def test_ingest_missing_file(cli_services, db: Path, tmp_path: Path) -> None:
    result = _ingest(db, str(tmp_path / "nope.txt"))
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_ingest_unsupported_file(cli_services, db: Path, tmp_path: Path) -> None:
    image = tmp_path / "photo.png"
    image.write_bytes(b"\x89PNG\r\n\x1a\n")

    with patch("pathlib.Path.read_bytes") as read_bytes:
        result = _ingest(db, str(image))

    assert result.exit_code == 1
    assert "Could not read" in result.output
    assert "image/png" in result.output
    read_bytes.assert_not_called()
    assert _documents(db) == []


def test_ingest_content_type_override(cli_services, db: Path, tmp_path: Path) -> None:
    dump = tmp_path / "export.bin"
    dump.write_text("Wind turbines turn moving air into electricity.", encoding="utf-8")

    result = _ingest(db, str(dump), "--content-type", "text/plain")

    assert result.exit_code == 0, result.output
    (doc,) = _documents(db)
    assert doc.content_type == "text/plain"


def test_ingest_continues_after_a_failed_file(cli_services, db: Path, notes: Path, tmp_path: Path) -> None:
    result = _ingest(db, str(tmp_path / "nope.txt"), str(notes))

    assert result.exit_code == 1
    assert len(_documents(db)) == 1


def test_ingest_reports_unembedded_chunks(cli_services, embedder, db: Path, notes: Path) -> None:
    embedder.embed.side_effect = EmbeddingError("rate limited")

    result = _ingest(db, str(notes))

    assert result.exit_code == 0, result.output
    assert "0 embedded" in result.output
    assert "ragcore reembed" in result.output


# ---------------------------------------------------------------------------
# ragcore documents
# ---------------------------------------------------------------------------


def test_documents_no_db(cli_services, db: Path) -> None:
    result = runner.invoke(app, ["documents", "--db", str(db)])
    assert result.exit_code == 1
    assert "No database" in result.output


def test_documents_lists_ingested(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    result = runner.invoke(app, ["documents", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "notes.txt" in result.output
    assert _documents(db)[0].id in result.output


def test_documents_empty(cli_services, db: Path) -> None:
    Database(db).connect().close()
    result = runner.invoke(app, ["documents", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "No documents" in result.output


# ---------------------------------------------------------------------------
# ragcore remove
# ---------------------------------------------------------------------------


def test_remove_with_yes(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    doc_id = _documents(db)[0].id

    result = runner.invoke(app, ["remove", doc_id, "--db", str(db), "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed notes.txt" in result.output
    assert _documents(db) == []


def test_remove_cancelled(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    doc_id = _documents(db)[0].id

    result = runner.invoke(app, ["remove", doc_id, "--db", str(db)], input="n\n")

    assert result.exit_code == 0, result.output
    assert "Cancelled" in result.output
    assert len(_documents(db)) == 1


def test_remove_unknown_document(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    result = runner.invoke(app, ["remove", "missing", "--db", str(db), "--yes"])
    assert result.exit_code == 1
    assert "Document not found" in result.output


# ---------------------------------------------------------------------------
# ragcore reembed
# ---------------------------------------------------------------------------


def test_reembed_fills_missing_vectors(cli_services, embedder, db: Path, notes: Path) -> None:
    original = embedder.embed.side_effect
    embedder.embed.side_effect = EmbeddingError("rate limited")
    _ingest(db, str(notes))
    embedder.embed.side_effect = original
    doc_id = _documents(db)[0].id

    result = runner.invoke(app, ["reembed", doc_id, "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "Re-embedded 1 chunk(s)" in result.output


def test_reembed_nothing_to_do(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    doc_id = _documents(db)[0].id

    result = runner.invoke(app, ["reembed", doc_id, "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "Nothing to re-embed" in result.output


def test_reembed_unknown_document(cli_services, db: Path, notes: Path) -> None:
    _ingest(db, str(notes))
    result = runner.invoke(app, ["reembed", "missing", "--db", str(db)])
    assert result.exit_code == 1
    assert "Document not found" in result.output
