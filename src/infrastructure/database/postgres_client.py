"""PostgreSQL profile store for local development.

Provides a connection pool and query helpers so profiles and meetings can be
kept in a local PostgreSQL database instead of Supabase tables.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Generator

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from src.domain.errors import UpstreamFailure

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    age INTEGER,
    providers TEXT[] NOT NULL DEFAULT '{}',
    display_name TEXT,
    photo_url TEXT,
    email_verified BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    last_login TIMESTAMPTZ
);
CREATE TABLE IF NOT EXISTS meetings (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    owner_uid TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    scheduled_at TEXT,
    status TEXT NOT NULL DEFAULT 'scheduled',
    is_public BOOLEAN NOT NULL DEFAULT FALSE,
    participants TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS meetings_owner_uid_idx ON meetings (owner_uid);
"""


class PostgresClient:
    """PostgreSQL client with connection pooling."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled:
            try:
                self._pool = pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=int(os.getenv("POSTGRES_POOL_SIZE", "10")),
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "linkup"),
                    user=os.getenv("POSTGRES_USER", "linkup"),
                    password=os.getenv("POSTGRES_PASSWORD", "linkup_dev_password"),
                )
            except psycopg2.Error as exc:  # pragma: no cover
                raise UpstreamFailure(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc
            self.ensure_schema()

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """Borrow a pooled connection, committing on success.

        Raises:
            UpstreamFailure: If the local database is not enabled.
        """
        if not self.enabled or self._pool is None:
            raise UpstreamFailure("Local PostgreSQL database is not enabled")

        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def get_cursor(self) -> Generator[Any, None, None]:
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def ensure_schema(self) -> None:
        with self.get_cursor() as cursor:
            cursor.execute(SCHEMA)
        logger.info("PostgreSQL schema ready")

    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """Run a query and return its first row, or None."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute(self, query: str, params: tuple = ()) -> int:
        """Run an UPDATE or DELETE and return the affected row count."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount


# Singleton instance
_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Return the PostgreSQL client singleton when USE_LOCAL_DB=1."""
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
