"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from ragcore.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def _add_document(conn, id="doc-1", checksum="abc"):
    conn.execute(
        "INSERT INTO documents (id, filename, content_type, size, checksum) VALUES (?, ?, ?, ?, ?)",
        (id, "a.txt", "text/plain", 3, checksum),
    )


@pytest.mark.parametrize("table", ["documents", "chunks", "chat_sessions", "chat_messages"])
def test_tables_exist(tmp_db, table):
    assert _table_exists(tmp_db, table)


def test_documents_columns(tmp_db):
    cols = _table_columns(tmp_db, "documents")
    assert cols == {"id", "filename", "content_type", "size", "checksum", "tags", "created_at"}


def test_chunks_columns(tmp_db):
    cols = _table_columns(tmp_db, "chunks")
    assert cols == {"id", "document_id", "chunk_index", "text", "metadata", "created_at"}


def test_chat_messages_columns(tmp_db):
    cols = _table_columns(tmp_db, "chat_messages")
    assert cols == {"id", "session_id", "role", "content", "tokens_in", "tokens_out", "created_at"}


def test_schema_version_recorded(tmp_db):
    version = tmp_db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    rows = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert rows == CURRENT_VERSION


def test_checksum_unique(tmp_db):
    _add_document(tmp_db, id="d1", checksum="same")
    with pytest.raises(sqlite3.IntegrityError):
        _add_document(tmp_db, id="d2", checksum="same")


def test_chunk_index_unique_per_document(tmp_db):
    _add_document(tmp_db)
    tmp_db.execute(
        "INSERT INTO chunks (id, document_id, chunk_index, text) VALUES ('c1', 'doc-1', 0, 'a')"
    )
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO chunks (id, document_id, chunk_index, text) VALUES ('c2', 'doc-1', 0, 'b')"
        )


def test_document_delete_cascades_to_chunks(tmp_db):
    _add_document(tmp_db)
    tmp_db.execute(
        "INSERT INTO chunks (id, document_id, chunk_index, text) VALUES ('c1', 'doc-1', 0, 'a')"
    )
    tmp_db.execute("DELETE FROM documents WHERE id = 'doc-1'")
    tmp_db.commit()
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks").fetchone()[0] == 0


def test_chat_message_role_checked(tmp_db):
    tmp_db.execute("INSERT INTO chat_sessions (id, user_id, title) VALUES ('s1', 'u1', 't')")
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO chat_messages (id, session_id, role, content) "
            "VALUES ('m1', 's1', 'robot', 'hi')"
        )


def test_session_delete_cascades_to_messages(tmp_db):
    tmp_db.execute("INSERT INTO chat_sessions (id, user_id, title) VALUES ('s1', 'u1', 't')")
    tmp_db.execute(
        "INSERT INTO chat_messages (id, session_id, role, content) VALUES ('m1', 's1', 'user', 'hi')"
    )
    tmp_db.execute("DELETE FROM chat_sessions WHERE id = 's1'")
    tmp_db.commit()
    assert tmp_db.execute("SELECT COUNT(*) FROM chat_messages").fetchone()[0] == 0
