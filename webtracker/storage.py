"""Keyed record store: in-memory and SQLite implementations."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Protocol

from webtracker.errors import StorageError
from webtracker.models import new_id, utcnow

logger = logging.getLogger(__name__)

KINDS = (
    "products",
    "sources",
    "history",
    "comparisons",
    "notification_configs",
    "notification_logs",
    "false_positives",
)

Predicate = Callable[[dict], bool]


class Store(Protocol):
    """Records are plain JSON-compatible dicts keyed by ``id``."""

    def insert(self, kind: str, record: dict) -> dict: ...

    def get(self, kind: str, record_id: str) -> dict | None: ...

    def update(self, kind: str, record_id: str, **fields) -> dict: ...

    def delete(self, kind: str, record_id: str) -> bool: ...

    def find(self, kind: str, predicate: Predicate | None = None) -> list[dict]: ...

    def count(self, kind: str, predicate: Predicate | None = None) -> int: ...

    def delete_where(self, kind: str, predicate: Predicate) -> int: ...


def _encode(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def _normalize(record: dict) -> dict:
    """Detached JSON-compatible copy of ``record``."""
    try:
        return json.loads(json.dumps(record, default=_encode))
    except (TypeError, ValueError) as e:
        raise StorageError(f"Record is not serializable: {e}") from e


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise StorageError(f"Unknown record kind '{kind}'")


def _stamp_new(record: dict) -> dict:
    record = _normalize(record)
    now = utcnow().isoformat()
    record.setdefault("id", new_id())
    record.setdefault("created_at", now)
    record.setdefault("updated_at", now)
    return record


class MemoryStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self):
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict]] = {kind: {} for kind in KINDS}

    def insert(self, kind: str, record: dict) -> dict:
        _check_kind(kind)
        record = _stamp_new(record)
        with self._lock:
            if record["id"] in self._data[kind]:
                raise StorageError(f"Duplicate id '{record['id']}' in {kind}")
            self._data[kind][record["id"]] = record
        return _normalize(record)

    def get(self, kind: str, record_id: str) -> dict | None:
        _check_kind(kind)
        with self._lock:
            record = self._data[kind].get(record_id)
            return _normalize(record) if record is not None else None

    def update(self, kind: str, record_id: str, **fields) -> dict:
        _check_kind(kind)
        changes = _normalize(fields)
        with self._lock:
            record = self._data[kind].get(record_id)
            if record is None:
                raise StorageError(f"No {kind} record with id '{record_id}'")
            record.update(changes)
            if "updated_at" not in changes:
                record["updated_at"] = utcnow().isoformat()
            return _normalize(record)

    def delete(self, kind: str, record_id: str) -> bool:
        _check_kind(kind)
        with self._lock:
            return self._data[kind].pop(record_id, None) is not None

    def find(self, kind: str, predicate: Predicate | None = None) -> list[dict]:
        _check_kind(kind)
        with self._lock:
            records = [_normalize(r) for r in self._data[kind].values()]
        return [r for r in records if predicate is None or predicate(r)]

    def count(self, kind: str, predicate: Predicate | None = None) -> int:
        return len(self.find(kind, predicate))

    def delete_where(self, kind: str, predicate: Predicate) -> int:
        _check_kind(kind)
        with self._lock:
            doomed = [rid for rid, r in self._data[kind].items() if predicate(_normalize(r))]
            for rid in doomed:
                del self._data[kind][rid]
        return len(doomed)


class SqliteStore:
    """
    One table per record kind holding JSON documents.

    Predicate queries load the kind and filter in Python; rows come back
    in insertion order.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a SQLite connection; commits on success."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"SQLite error: {e}") from e
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        with self.get_connection() as conn:
            for kind in KINDS:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {kind} (
                        id TEXT PRIMARY KEY,
                        data TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
        logger.debug("Store ready at %s", self.db_path)

    def insert(self, kind: str, record: dict) -> dict:
        _check_kind(kind)
        record = _stamp_new(record)
        with self._lock, self.get_connection() as conn:
            try:
                conn.execute(
                    f"INSERT INTO {kind} (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (record["id"], json.dumps(record), record["created_at"], record["updated_at"]),
                )
            except sqlite3.IntegrityError as e:
                raise StorageError(f"Duplicate id '{record['id']}' in {kind}") from e
        return record

    def get(self, kind: str, record_id: str) -> dict | None:
        _check_kind(kind)
        with self.get_connection() as conn:
            row = conn.execute(f"SELECT data FROM {kind} WHERE id = ?", (record_id,)).fetchone()
        return json.loads(row["data"]) if row else None

    def update(self, kind: str, record_id: str, **fields) -> dict:
        _check_kind(kind)
        changes = _normalize(fields)
        with self._lock, self.get_connection() as conn:
            row = conn.execute(f"SELECT data FROM {kind} WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                raise StorageError(f"No {kind} record with id '{record_id}'")
            record = json.loads(row["data"])
            record.update(changes)
            if "updated_at" not in changes:
                record["updated_at"] = utcnow().isoformat()
            conn.execute(
                f"UPDATE {kind} SET data = ?, updated_at = ? WHERE id = ?",
                (json.dumps(record), record["updated_at"], record_id),
            )
        return record

    def delete(self, kind: str, record_id: str) -> bool:
        _check_kind(kind)
        with self._lock, self.get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {kind} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def find(self, kind: str, predicate: Predicate | None = None) -> list[dict]:
        _check_kind(kind)
        with self.get_connection() as conn:
            rows = conn.execute(f"SELECT data FROM {kind} ORDER BY rowid").fetchall()
        records = [json.loads(row["data"]) for row in rows]
        return [r for r in records if predicate is None or predicate(r)]

    def count(self, kind: str, predicate: Predicate | None = None) -> int:
        if predicate is None:
            _check_kind(kind)
            with self.get_connection() as conn:
                return conn.execute(f"SELECT COUNT(*) FROM {kind}").fetchone()[0]
        return len(self.find(kind, predicate))

    def delete_where(self, kind: str, predicate: Predicate) -> int:
        with self._lock:
            doomed = [r["id"] for r in self.find(kind, predicate)]
            if not doomed:
                return 0
            with self.get_connection() as conn:
                conn.executemany(f"DELETE FROM {kind} WHERE id = ?", [(rid,) for rid in doomed])
        return len(doomed)
