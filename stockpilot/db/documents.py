"""AI document storage."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ..errors import PersistenceError
from .schema import ensure_schema, new_id, transaction

_DOCUMENT_FIELDS = frozenset({
    "filename", "mime_type", "original_data", "extracted_data", "status",
    "document_type", "amount", "vendor", "category", "description",
    "document_date", "confidence",
})


class DocumentDB:
    """Manages the ai_documents table."""

    def __init__(self, db_path: str | Path = "~/.config/stockpilot/stockpilot.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = ensure_schema(self._db_path)
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open document database: {e}") from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def create_document(
        self,
        filename: str,
        *,
        mime_type: str | None = None,
        original_data: str | None = None,
        status: str = "processing",
        document_type: str = "receipt",
    ) -> dict:
        document_id = new_id()
        with transaction(self._get_conn()) as conn:
            conn.execute(
                """INSERT INTO ai_documents
                   (id, filename, mime_type, original_data, status, document_type)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (document_id, filename, mime_type, original_data, status, document_type),
            )
        return self.get_document(document_id)  # type: ignore[return-value]

    def get_document(self, document_id: str) -> dict | None:
        try:
            row = self._get_conn().execute(
                "SELECT * FROM ai_documents WHERE id = ?", (document_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return dict(row) if row else None

    def list_documents(self, status: str | None = None) -> list[dict]:
        """Return documents, newest first, optionally filtered by status."""
        sql = "SELECT * FROM ai_documents"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY created_at DESC, rowid DESC"
        try:
            rows = self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return [dict(r) for r in rows]

    def update_document(
        self, document_id: str, *, expected_status: str | None = None, **fields
    ) -> dict:
        """Update columns of a document and return the new row.

        With ``expected_status`` the update only applies while the stored
        status still equals it; otherwise PersistenceError is raised.
        """
        unknown = set(fields) - _DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown document fields: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            sql = f"UPDATE ai_documents SET {assignments} WHERE id = ?"
            params: tuple = (*fields.values(), document_id)
            if expected_status is not None:
                sql += " AND status = ?"
                params += (expected_status,)
            with transaction(self._get_conn()) as conn:
                cur = conn.execute(sql, params)
                if cur.rowcount == 0:
                    raise PersistenceError(
                        f"Document {document_id} not found or no longer {expected_status or 'present'}"
                    )
        document = self.get_document(document_id)
        if document is None:
            raise PersistenceError(f"Document not found: {document_id}")
        return document

    def delete_document(self, document_id: str) -> None:
        with transaction(self._get_conn()) as conn:
            conn.execute("DELETE FROM ai_documents WHERE id = ?", (document_id,))
