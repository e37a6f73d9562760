"""Repository pattern for all ragcore database operations.

Single interface for: documents, chunks, vec embeddings, chat sessions and
chat messages. Vec tables are model-managed (ensure_vec_table); the
repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3

from ragcore.db.models import ChatMessage, ChatSession, Chunk, Document


class Repository:
    """Data access layer for all ragcore database entities.

    Wraps an open sqlite3.Connection and provides typed methods for documents,
    chunks, vec embeddings and chat history. The connection is owned by the
    caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see ragcore.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> None:
        """Insert a new document record.

        Raises:
            sqlite3.IntegrityError: If a document with the same checksum exists.
        """
        self._conn.execute(
            """
            INSERT INTO documents (id, filename, content_type, size, checksum, tags)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.filename,
                document.content_type,
                document.size,
                document.checksum,
                json.dumps(document.tags),
            ),
        )
        self._conn.commit()

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_checksum(self, checksum: str) -> Document | None:
        """Return the document whose bytes hash to *checksum*, or None."""
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE checksum = ?", (checksum,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """Return all documents ordered by ingestion time (oldest first)."""
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at, rowid"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def get_document_names(self, document_ids: list[str]) -> dict[str, str]:
        """Return {document_id: filename} for the given ids."""
        if not document_ids:
            return {}
        unique = sorted(set(document_ids))
        placeholders = ",".join("?" * len(unique))
        rows = self._conn.execute(
            f"SELECT id, filename FROM documents WHERE id IN ({placeholders})", unique
        ).fetchall()
        return {r["id"]: r["filename"] for r in rows}

    def update_tags(self, document_id: str, tags: list[str]) -> None:
        """Replace the tag set of a document (the only mutable document field)."""
        self._conn.execute(
            "UPDATE documents SET tags = ? WHERE id = ?", (json.dumps(tags), document_id)
        )
        self._conn.commit()

    def delete_document(self, document_id: str) -> bool:
        """Delete a document, its chunks and their embeddings.

        Chunks go through ``ON DELETE CASCADE``; vec rows are removed first
        because virtual tables cannot carry foreign keys.

        Returns:
            True if a document row was deleted.
        """
        self.delete_embeddings_by_document(document_id, commit=False)
        cur = self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk row. Returns the new rowid (the vec table key)."""
        cur = self._conn.execute(
            """
            INSERT INTO chunks (id, document_id, chunk_index, text, metadata)
            VALUES (?, ?, ?, ?, ?)
            """,
            (chunk.id, chunk.document_id, chunk.chunk_index, chunk.text, chunk.metadata),
        )
        self._conn.commit()
        chunk.rowid = cur.lastrowid
        return cur.lastrowid

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid = ?", (rowid,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks(self, document_id: str) -> list[Chunk]:
        """Return the chunks of a document ordered by chunk_index."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_document(self, document_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def replace_chunk(self, chunk: Chunk, table: str, embedding: list[float]) -> int:
        """Replace a chunk record whole: row and vector together.

        The old row (looked up by chunk id) and its vector are deleted and a
        new row + vector inserted in one transaction. Chunk text is never
        updated in place and a vector is never attached to an existing row.

        Returns:
            The rowid of the new chunk row.
        """
        with self._conn:
            old = self._conn.execute(
                "SELECT rowid FROM chunks WHERE id = ?", (chunk.id,)
            ).fetchone()
            if old is not None:
                self._conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (old["rowid"],))
                self._conn.execute("DELETE FROM chunks WHERE rowid = ?", (old["rowid"],))
            cur = self._conn.execute(
                """
                INSERT INTO chunks (id, document_id, chunk_index, text, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (chunk.id, chunk.document_id, chunk.chunk_index, chunk.text, chunk.metadata),
            )
            rowid = cur.lastrowid
            self._conn.execute(
                f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
                (rowid, json.dumps(embedding)),
            )
        chunk.rowid = rowid
        chunk.embedding = embedding
        return rowid

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def add_embedding(self, table: str, rowid: int, embedding: list[float]) -> None:
        """Store the vector for a freshly inserted chunk (rowid = chunk rowid)."""
        self._conn.execute(
            f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
            (rowid, json.dumps(embedding)),
        )
        self._conn.commit()

    def chunks_without_embedding(self, table: str, document_id: str) -> list[Chunk]:
        """Return chunks of *document_id* that have no vector in *table*."""
        embedded = {
            r[0] for r in self._conn.execute(f"SELECT rowid FROM {table}").fetchall()
        }
        return [c for c in self.list_chunks(document_id) if c.rowid not in embedded]

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        document_id: str | None = None,
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, distance) sorted by distance.

        Distances are cosine distances (0 = identical direction). With
        *document_id* the search is restricted to one document's chunks.
        """
        if document_id is None:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? "
                "ORDER BY distance LIMIT ?",
                (json.dumps(embedding), limit),
            ).fetchall()
        else:
            vec_rows = self._conn.execute(
                f"""
                SELECT v.rowid AS rowid, vec_distance_cosine(v.embedding, ?) AS distance
                FROM {table} v JOIN chunks c ON c.rowid = v.rowid
                WHERE c.document_id = ?
                ORDER BY distance LIMIT ?
                """,
                (json.dumps(embedding), document_id, limit),
            ).fetchall()

        results: list[tuple[Chunk, float]] = []
        for vec_row in vec_rows:
            chunk = self.get_chunk_by_rowid(vec_row["rowid"])
            if chunk is not None:
                results.append((chunk, vec_row["distance"]))
        return results

    def delete_embeddings_by_document(self, document_id: str, commit: bool = True) -> int:
        """Delete all vec embeddings for *document_id* from every vec table.

        Returns the total number of embedding rows deleted across all vec tables.
        """
        rowids = [
            r[0]
            for r in self._conn.execute(
                "SELECT rowid FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchall()
        ]
        if not rowids:
            return 0

        vec_tables = [
            r[0]
            for r in self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%' "
                "AND sql LIKE 'CREATE VIRTUAL TABLE%'"
            ).fetchall()
        ]

        total_deleted = 0
        placeholders = ",".join("?" * len(rowids))
        for table in vec_tables:
            cur = self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )
            total_deleted += max(cur.rowcount, 0)

        if commit:
            self._conn.commit()
        return total_deleted

    # ------------------------------------------------------------------
    # Chat sessions
    # ------------------------------------------------------------------

    def create_session(self, session: ChatSession) -> None:
        self._conn.execute(
            "INSERT INTO chat_sessions (id, user_id, title) VALUES (?, ?, ?)",
            (session.id, session.user_id, session.title),
        )
        self._conn.commit()

    def get_session(self, session_id: str) -> ChatSession | None:
        row = self._conn.execute(
            "SELECT id, user_id, title, created_at FROM chat_sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(self, user_id: str) -> list[ChatSession]:
        """Return a user's sessions, newest first."""
        rows = self._conn.execute(
            """
            SELECT id, user_id, title, created_at FROM chat_sessions
            WHERE user_id = ? ORDER BY created_at DESC, rowid DESC
            """,
            (user_id,),
        ).fetchall()
        return [_row_to_session(r) for r in rows]

    # ------------------------------------------------------------------
    # Chat messages (append-only)
    # ------------------------------------------------------------------

    def add_message(self, message: ChatMessage) -> None:
        self._conn.execute(
            """
            INSERT INTO chat_messages (id, session_id, role, content, tokens_in, tokens_out)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.session_id,
                message.role,
                message.content,
                message.tokens_in,
                message.tokens_out,
            ),
        )
        self._conn.commit()

    def list_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Return messages in chronological order.

        With *limit*, only the most recent *limit* messages are returned
        (still oldest first).
        """
        sql = (
            "SELECT id, session_id, role, content, tokens_in, tokens_out, created_at "
            "FROM chat_messages WHERE session_id = ? ORDER BY rowid DESC"
        )
        params: tuple = (session_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (session_id, limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_message(r) for r in reversed(rows)]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

_DOCUMENT_COLUMNS = "id, filename, content_type, size, checksum, tags, created_at"
_CHUNK_COLUMNS = "rowid, id, document_id, chunk_index, text, metadata, created_at"


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        filename=row["filename"],
        content_type=row["content_type"],
        size=row["size"],
        checksum=row["checksum"],
        tags=json.loads(row["tags"]),
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_session(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        created_at=row["created_at"],
    )


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        tokens_in=row["tokens_in"],
        tokens_out=row["tokens_out"],
        created_at=row["created_at"],
    )
