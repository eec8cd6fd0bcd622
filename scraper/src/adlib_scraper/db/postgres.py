"""Postgres-backed document store (one JSONB table, one transaction per batch)."""

from __future__ import annotations

import threading
from typing import Any, Sequence

import psycopg2
from psycopg2.extras import Json

from ..config import Settings
from ..errors import PersistenceError
from ..logging import jlog
from .base import DocumentSnapshot, FieldFilter, WriteBatch, WriteOp, encode_value, new_document_id

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT        NOT NULL,
    id          TEXT        NOT NULL,
    data        JSONB       NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS documents_creatives_hash
    ON documents ((data #> '{hash}'::text[])) WHERE collection = 'creatives';
CREATE INDEX IF NOT EXISTS documents_jobs_start_time
    ON documents (((data #>> '{startTime}'::text[]) COLLATE "C")) WHERE collection = 'scraping_jobs';
"""


def sql_connect(settings: Settings):
    """Return a psycopg2 connection from ``DATABASE_URL`` or discrete settings."""

    if settings.database_url:
        return psycopg2.connect(settings.database_url, connect_timeout=10)

    password = settings.require_db_password()
    if settings.db_host and settings.db_host.startswith("/"):
        # Unix socket directory (e.g. /cloudsql/<instance>)
        return psycopg2.connect(
            host=settings.db_host,
            dbname=settings.db_name,
            user=settings.db_user,
            password=password,
            connect_timeout=10,
        )
    return psycopg2.connect(
        host=settings.db_host or "127.0.0.1",
        port=settings.db_port,
        dbname=settings.db_name,
        user=settings.db_user,
        password=password,
        connect_timeout=10,
        sslmode=settings.db_sslmode,
    )


def ensure_schema(con) -> None:
    """Create the documents table and its indexes if they do not exist."""

    with con:
        with con.cursor() as cur:
            cur.execute(SCHEMA_SQL)


def _path(field: str) -> list[str]:
    return field.split(".")


def build_where(collection: str, where: Sequence[FieldFilter]) -> tuple[str, list[Any]]:
    """Translate filters into a SQL predicate over the JSONB payload."""

    clauses = ["collection = %s"]
    params: list[Any] = [collection]
    for flt in where:
        value = encode_value(flt.value)
        path = _path(flt.field)
        if value is None and flt.op in ("==", "!="):
            null_check = "(data #> %s::text[] IS NULL OR data #> %s::text[] = 'null'::jsonb)"
            clauses.append(null_check if flt.op == "==" else f"NOT {null_check}")
            params.extend([path, path])
        elif flt.op in ("==", "!="):
            sql_op = "=" if flt.op == "==" else "<>"
            clauses.append(f"data #> %s::text[] {sql_op} %s::jsonb")
            params.extend([path, Json(value)])
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            clauses.append(f"(data #>> %s::text[])::numeric {flt.op} %s")
            params.extend([path, value])
        else:
            clauses.append(f'(data #>> %s::text[]) COLLATE "C" {flt.op} %s')
            params.extend([path, str(value)])
    return " AND ".join(clauses), params


class PostgresDocumentStore:
    """Document store over a single ``documents`` table keyed by (collection, id)."""

    def __init__(self, con) -> None:
        self._con = con
        self._lock = threading.Lock()

    @classmethod
    def connect(cls, settings: Settings, *, create_schema: bool = True) -> "PostgresDocumentStore":
        con = sql_connect(settings)
        if create_schema:
            ensure_schema(con)
        return cls(con)

    def close(self) -> None:
        self._con.close()

    def new_id(self) -> str:
        return new_document_id()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock, self._con:
            with self._con.cursor() as cur:
                cur.execute("SELECT data FROM documents WHERE collection = %s AND id = %s", (collection, doc_id))
                row = cur.fetchone()
        if row is None:
            return DocumentSnapshot(id=doc_id, exists=False)
        return DocumentSnapshot(id=doc_id, exists=True, data=row[0])

    def query(
        self,
        collection: str,
        *,
        where: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        predicate, params = build_where(collection, where)
        sql = f"SELECT id, data FROM documents WHERE {predicate}"
        if order_by:
            sql += ' AND data #>> %s::text[] IS NOT NULL ORDER BY (data #>> %s::text[]) COLLATE "C"'
            sql += " DESC" if descending else " ASC"
            params.extend([_path(order_by), _path(order_by)])
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)
        with self._lock, self._con:
            with self._con.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        return [DocumentSnapshot(id=doc_id, exists=True, data=data) for doc_id, data in rows]

    def apply(self, ops: Sequence[WriteOp]) -> None:
        try:
            with self._lock, self._con:
                with self._con.cursor() as cur:
                    for op in ops:
                        self._execute(cur, op)
        except PersistenceError:
            jlog("error", event="batch_commit_failed", backend="postgres", ops=len(ops))
            raise
        except psycopg2.Error as exc:
            jlog("error", event="batch_commit_failed", backend="postgres", ops=len(ops), error=str(exc))
            raise PersistenceError(f"batch commit failed: {exc}") from exc
        jlog("debug", event="batch_committed", backend="postgres", ops=len(ops))

    def _execute(self, cur, op: WriteOp) -> None:
        if op.kind == "set":
            cur.execute(
                """
                INSERT INTO documents(collection, id, data)
                VALUES (%s, %s, %s)
                ON CONFLICT (collection, id) DO UPDATE
                   SET data       = EXCLUDED.data,
                       updated_at = NOW()
                """,
                (op.collection, op.doc_id, Json(op.data or {})),
            )
        elif op.kind == "update":
            cur.execute(
                """
                UPDATE documents
                   SET data       = data || %s::jsonb,
                       updated_at = NOW()
                 WHERE collection = %s AND id = %s
                """,
                (Json(op.data or {}), op.collection, op.doc_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"cannot update missing document {op.collection}/{op.doc_id}")
        elif op.kind == "delete":
            cur.execute("DELETE FROM documents WHERE collection = %s AND id = %s", (op.collection, op.doc_id))
        else:
            raise PersistenceError(f"unknown write kind {op.kind!r}")


__all__ = ["PostgresDocumentStore", "SCHEMA_SQL", "build_where", "ensure_schema", "sql_connect"]
