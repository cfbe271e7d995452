from __future__ import annotations

import json
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from models.progress import RecordedWord
from models.sync import ChangeType, PendingChange
from utils.errors import StoreUnavailableError

from . import database


class LocalStore:
    """Durable key-value store backed by the local SQLite file.

    Recorded words, pending changes and namespaced documents live in separate
    tables, so components sharing the store never touch each other's keys.
    Every SQLite failure is raised as StoreUnavailableError.
    """

    def __init__(self, db_path: Optional[Path] = None, initialize: bool = True):
        self.db_path = Path(db_path or database.DB_PATH)
        if initialize:
            try:
                database.init_db(self.db_path)
            except (sqlite3.Error, OSError) as exc:
                raise StoreUnavailableError(f"Local store unavailable: {exc}") from exc

    @contextmanager
    def _connect(self):
        try:
            with database.get_conn(self.db_path) as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Local store unavailable: {exc}") from exc

    # Recorded words

    def is_word_recorded(self, verse_reference: str, word_index: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT 1 FROM recorded_words WHERE verse_reference = ? AND word_index = ?",
                (verse_reference, word_index),
            )
            return cursor.fetchone() is not None

    def mark_word_recorded(
        self, verse_reference: str, word_index: int, recorded_at: Optional[float] = None
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO recorded_words (verse_reference, word_index, recorded_at)
                VALUES (?, ?, ?)
                """,
                (verse_reference, word_index, recorded_at if recorded_at is not None else time.time()),
            )
            conn.commit()

    def get_recorded_words(self, verse_reference: str) -> List[RecordedWord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT verse_reference, word_index, recorded_at
                FROM recorded_words
                WHERE verse_reference = ?
                ORDER BY word_index
                """,
                (verse_reference,),
            )
            return [
                RecordedWord(
                    verse_reference=row["verse_reference"],
                    word_index=int(row["word_index"]),
                    timestamp=float(row["recorded_at"]),
                )
                for row in cursor.fetchall()
            ]

    def delete_recorded_words(self, verse_reference: str) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM recorded_words WHERE verse_reference = ?",
                (verse_reference,),
            )
            conn.commit()
            return cursor.rowcount

    # Pending changes

    def add_pending_change(
        self,
        change_type: ChangeType,
        verse_reference: str,
        payload: Dict[str, Any],
        timestamp: float,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO pending_changes (change_type, verse_reference, payload, timestamp, synced)
                VALUES (?, ?, ?, ?, 0)
                """,
                (ChangeType(change_type).value, verse_reference, json.dumps(payload), timestamp),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_pending_changes(self) -> List[PendingChange]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, change_type, verse_reference, payload, timestamp, synced
                FROM pending_changes
                ORDER BY id
                """
            )
            return [
                PendingChange(
                    id=int(row["id"]),
                    type=ChangeType(row["change_type"]),
                    verse_reference=row["verse_reference"],
                    payload=json.loads(row["payload"] or "{}"),
                    timestamp=float(row["timestamp"]),
                    synced=bool(row["synced"]),
                )
                for row in cursor.fetchall()
            ]

    def delete_pending_changes(self, change_ids: Iterable[int]) -> None:
        ids = [int(change_id) for change_id in change_ids]
        if not ids:
            return
        with self._connect() as conn:
            conn.executemany("DELETE FROM pending_changes WHERE id = ?", [(i,) for i in ids])
            conn.commit()

    # Namespaced documents

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            row = cursor.fetchone()
        if not row:
            return default
        return json.loads(row["value"])

    def put(self, namespace: str, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (namespace, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (namespace, key, json.dumps(value), time.time()),
            )
            conn.commit()

    def delete(self, namespace: str, key: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            conn.commit()

    def list(self, namespace: str) -> Dict[str, Any]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT key, value FROM kv_store WHERE namespace = ? ORDER BY key",
                (namespace,),
            )
            return {row["key"]: json.loads(row["value"]) for row in cursor.fetchall()}

    def clear(self, namespace: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_store WHERE namespace = ?", (namespace,))
            conn.commit()
