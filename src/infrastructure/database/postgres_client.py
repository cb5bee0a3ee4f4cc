"""PostgreSQL document table for local development.

Documents live in a single jsonb table keyed by their full path, with the
parent collection path stored alongside so collection reads are one index
scan:

    CREATE TABLE documents (
        path        text PRIMARY KEY,
        parent      text NOT NULL,
        data        jsonb NOT NULL,
        created_seq bigserial,
        updated_at  timestamptz NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX documents_parent_idx ON documents (parent, created_seq);
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

try:
    import psycopg2
    from psycopg2 import pool
    from psycopg2.extras import Json, RealDictCursor
except ImportError:  # pragma: no cover
    psycopg2 = None  # type: ignore
    pool = None  # type: ignore
    Json = None  # type: ignore
    RealDictCursor = None  # type: ignore


class PostgresClient:
    """Document-table client with connection pooling."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled and psycopg2 is not None:
            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=10,
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "loyalty"),
                    user=os.getenv("POSTGRES_USER", "loyalty"),
                    password=os.getenv("POSTGRES_PASSWORD", "loyalty_dev_password"),
                )
            except Exception as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def get_cursor(self) -> Generator[Any, None, None]:
        """Yield a dict cursor inside a transaction that commits on clean exit.

        Raises:
            RuntimeError: If local database is not enabled.
        """
        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = self._pool.getconn()
        try:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def fetch_document(self, path: str) -> dict[str, Any] | None:
        with self.get_cursor() as cursor:
            cursor.execute("SELECT data FROM documents WHERE path = %s", (path,))
            row = cursor.fetchone()
            return dict(row["data"]) if row else None

    def fetch_collection(self, parent: str) -> list[tuple[str, dict[str, Any]]]:
        """Return (path, data) pairs of a collection in insertion order."""
        with self.get_cursor() as cursor:
            cursor.execute(
                "SELECT path, data FROM documents WHERE parent = %s ORDER BY created_seq",
                (parent,),
            )
            return [(row["path"], dict(row["data"])) for row in cursor.fetchall()]

    def replace_document(self, path: str, parent: str, data: dict[str, Any]) -> None:
        with self.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO documents (path, parent, data) VALUES (%s, %s, %s)
                ON CONFLICT (path) DO UPDATE
                SET data = EXCLUDED.data, updated_at = CURRENT_TIMESTAMP
                """,
                (path, parent, Json(data)),
            )

    def insert_if_absent(self, path: str, parent: str, data: dict[str, Any]) -> bool:
        """Insert a document only if no row exists. Returns True if inserted."""
        with self.get_cursor() as cursor:
            cursor.execute(
                "INSERT INTO documents (path, parent, data) VALUES (%s, %s, %s) ON CONFLICT (path) DO NOTHING",
                (path, parent, Json(data)),
            )
            return cursor.rowcount == 1

    def merge_document(self, path: str, parent: str, data: dict[str, Any]) -> None:
        # jsonb || keeps keys that are not in the patch
        with self.get_cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO documents (path, parent, data) VALUES (%s, %s, %s)
                ON CONFLICT (path) DO UPDATE
                SET data = documents.data || EXCLUDED.data, updated_at = CURRENT_TIMESTAMP
                """,
                (path, parent, Json(data)),
            )

    def update_document(self, path: str, data: dict[str, Any]) -> int:
        """Patch an existing document. Returns the number of rows touched (0 or 1)."""
        with self.get_cursor() as cursor:
            cursor.execute(
                "UPDATE documents SET data = data || %s, updated_at = CURRENT_TIMESTAMP WHERE path = %s",
                (Json(data), path),
            )
            return cursor.rowcount

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool:
            self._pool.closeall()


# Singleton instance
_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Get PostgreSQL client singleton.

    Returns:
        PostgresClient instance if enabled, None otherwise.
    """
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
