"""PostgreSQL-backed key/value storage with automatic table migration."""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime
from typing import Any


class PostgresStore:
    """Persist collection records as JSONB rows in PostgreSQL.

    Each call runs the synchronous psycopg query in a worker thread.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("BLUEPRINT_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    async def migrate(self) -> None:
        await asyncio.to_thread(self._migrate_sync)

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, collection, key)

    async def put(self, collection: str, key: str, value: dict[str, Any]) -> None:
        await asyncio.to_thread(self._put_sync, collection, key, value)

    async def delete(self, collection: str, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, collection, key)

    async def list(self, collection: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._list_sync, collection)

    def _migrate_sync(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_records (
                    collection TEXT NOT NULL,
                    record_key TEXT NOT NULL,
                    value_json JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    PRIMARY KEY (collection, record_key)
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_kv_records_updated_at
                ON kv_records(collection, updated_at DESC)
                """)
            conn.commit()

    def _get_sync(self, collection: str, key: str) -> dict[str, Any] | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                SELECT value_json
                FROM kv_records
                WHERE collection = %s AND record_key = %s
                """,
                (collection, key),
            ).fetchone()
        if row is None:
            return None
        return self._parse_json_optional(row["value_json"])

    def _put_sync(self, collection: str, key: str, value: dict[str, Any]) -> None:
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (collection, record_key, value_json, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (collection, record_key)
                DO UPDATE SET value_json = EXCLUDED.value_json,
                              updated_at = EXCLUDED.updated_at
                """,
                (collection, key, self._json_wrapper(value), now, now),
            )
            conn.commit()

    def _delete_sync(self, collection: str, key: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                "DELETE FROM kv_records WHERE collection = %s AND record_key = %s",
                (collection, key),
            )
            conn.commit()

    def _list_sync(self, collection: str) -> list[dict[str, Any]]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT value_json
                FROM kv_records
                WHERE collection = %s
                ORDER BY created_at ASC
                """,
                (collection,),
            ).fetchall()
        output: list[dict[str, Any]] = []
        for row in rows:
            parsed = self._parse_json_optional(row["value_json"])
            if parsed is not None:
                output.append(parsed)
        return output

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_optional(raw: Any) -> dict[str, Any] | None:
        if raw is None:
            return None
        if isinstance(raw, str):
            parsed = json.loads(raw)
        else:
            parsed = raw
        if isinstance(parsed, dict):
            return parsed
        return None
