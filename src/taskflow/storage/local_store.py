# src/taskflow/storage/local_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from ..core.errors import WriteFailure
from .base import ALL_COLLECTIONS, CollectionSpec, Document, DocumentStore

logger = logging.getLogger(__name__)


class LocalStore(DocumentStore):
    """
    SQLite document store scoped to one process.

    Every entity is one JSON document in the `documents` table. Subscribers are
    notified only about writes made through *this* instance: there is no
    cross-process fan-out, so another process writing the same file is not
    observed until the next subscribe.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "taskflow.sqlite3") -> None:
        super().__init__()
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_documents()
        except sqlite3.Error:
            total = -1
        logger.info("LocalStore ready db=%s documents=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (collection, id)
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
            conn.commit()
        finally:
            conn.close()

    # ---- document primitives ----

    def _write_doc(self, collection: str, doc_id: str, body: Document) -> None:
        now = time.time()
        try:
            conn = self._get_conn()
            try:
                conn.execute(
                    """
                    INSERT INTO documents(collection, id, body, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(collection, id) DO UPDATE SET
                        body = excluded.body,
                        updated_at = excluded.updated_at
                    """,
                    (collection, doc_id, json.dumps(body, ensure_ascii=False), now, now),
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.exception("LocalStore put failed %s/%s", collection, doc_id)
            raise WriteFailure(collection, "put", doc_id, e) from e

        logger.debug("put %s/%s", collection, doc_id)
        self._publish(self._spec(collection))

    def _delete_doc(self, collection: str, doc_id: str) -> None:
        try:
            conn = self._get_conn()
            try:
                cur = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?", (collection, doc_id)
                )
                conn.commit()
                removed = cur.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.exception("LocalStore remove failed %s/%s", collection, doc_id)
            raise WriteFailure(collection, "remove", doc_id, e) from e

        if not removed:
            # Removing an unknown id is a successful no-op: nothing changed, nothing to publish.
            logger.debug("remove %s/%s: not found", collection, doc_id)
            return
        logger.debug("remove %s/%s", collection, doc_id)
        self._publish(self._spec(collection))

    def _load_docs(self, spec: CollectionSpec[Any]) -> list[Document]:
        order = "DESC" if spec.newest_first else "ASC"
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"SELECT body FROM documents WHERE collection = ? ORDER BY rowid {order}",
                (spec.name,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()

        out: list[Document] = []
        for row in rows:
            try:
                val = json.loads(row["body"])
            except ValueError:
                logger.warning("LocalStore: undecodable %s document skipped", spec.name)
                continue
            if isinstance(val, dict):
                out.append(val)
        return out

    # ---- public helpers ----

    @staticmethod
    def _spec(collection: str) -> CollectionSpec[Any]:
        for spec in ALL_COLLECTIONS:
            if spec.name == collection:
                return spec
        raise KeyError(collection)

    def count_documents(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM documents").fetchone()
            return int(n)
        finally:
            conn.close()
