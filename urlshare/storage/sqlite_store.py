"""SQLite-backed mapping store.

The database runs in WAL mode: a write transaction (``BEGIN IMMEDIATE``) holds
the single database write lock until it commits, while readers keep working
on the last committed snapshot. Each thread talks to the file through its own
connection; the store object is the one process-wide handle.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, TypeVar

from urlshare.core.errors import InvalidInputError, StorageFailureError
from urlshare.core.models import Mapping
from urlshare.storage.kv import MappingStore, format_key
from urlshare.util.logger import logger


T = TypeVar("T")


class SqliteMappingStore(MappingStore):
    def __init__(
        self,
        db_path: str = "urlshare.db",
        *,
        bucket: str = "urls",
        key_radix: int = 10,
        key_separator: str = "r",
        key_min_width: int = 0,
        write_timeout_seconds: float = 5.0,
        read_retries: int = 3,
    ) -> None:
        if key_radix not in (10, 16):
            raise ValueError(f"unsupported key radix: {key_radix}")
        bucket = (bucket or "").strip()
        if not bucket:
            raise ValueError("bucket name required")

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.bucket = bucket
        self.key_radix = key_radix
        self.key_separator = key_separator
        self.key_min_width = key_min_width
        self.write_timeout_seconds = write_timeout_seconds
        self.read_retries = max(1, read_retries)

        self._local = threading.local()
        # 只保护连接登记表，数据读写的串行化交给 SQLite 写锁
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False

        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.write_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute(f"PRAGMA busy_timeout={int(self.write_timeout_seconds * 1000)}")
        return conn

    def _conn(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageFailureError(f"store is closed path={self.db_path}")
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                raise StorageFailureError(f"cannot open database path={self.db_path}: {exc}") from exc
            with self._connections_lock:
                self._connections.append(conn)
            self._local.conn = conn
        return conn

    def _init_db(self) -> None:
        try:
            conn = self._conn()
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS bucket_items (
                      bucket TEXT NOT NULL,
                      key TEXT NOT NULL,
                      value TEXT NOT NULL,
                      PRIMARY KEY (bucket, key)
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS bucket_sequences (
                      bucket TEXT PRIMARY KEY,
                      value INTEGER NOT NULL
                    )
                    """
                )
                conn.execute(
                    "INSERT OR IGNORE INTO bucket_sequences (bucket, value) VALUES (?, 0)",
                    (self.bucket,),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as exc:
            raise StorageFailureError(f"cannot initialize database path={self.db_path}: {exc}") from exc
        logger.info("sqlite store initialized path=%s bucket=%s", self.db_path, self.bucket)

    def _write(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn inside one write transaction. Never retried."""
        conn = self._conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StorageFailureError(f"cannot acquire write transaction: {exc}") from exc
        try:
            result = fn(conn)
            conn.execute("COMMIT")
            return result
        except BaseException as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if isinstance(exc, sqlite3.Error):
                raise StorageFailureError(f"write transaction failed: {exc}") from exc
            raise

    def _read(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn inside one read snapshot, retrying transient lock errors."""
        conn = self._conn()
        for attempt in range(self.read_retries):
            try:
                conn.execute("BEGIN")
                try:
                    return fn(conn)
                finally:
                    if conn.in_transaction:
                        conn.execute("COMMIT")
            except sqlite3.OperationalError as exc:
                if "locked" not in str(exc).lower() or attempt == self.read_retries - 1:
                    raise StorageFailureError(f"read transaction failed: {exc}") from exc
                time.sleep(0.01 * (attempt + 1))
            except sqlite3.Error as exc:
                raise StorageFailureError(f"read transaction failed: {exc}") from exc
        raise RuntimeError("unreachable retry state")

    def _next_free_key(self, conn: sqlite3.Connection, base: str) -> str:
        # 显式 upsert 可能已经占用了下一个序号对应的 key，跳过直到空闲
        while True:
            conn.execute(
                "UPDATE bucket_sequences SET value = value + 1 WHERE bucket = ?",
                (self.bucket,),
            )
            row = conn.execute(
                "SELECT value FROM bucket_sequences WHERE bucket = ?",
                (self.bucket,),
            ).fetchone()
            key = format_key(
                int(row[0]),
                base=base,
                separator=self.key_separator,
                radix=self.key_radix,
                min_width=self.key_min_width,
            )
            taken = conn.execute(
                "SELECT 1 FROM bucket_items WHERE bucket = ? AND key = ?",
                (self.bucket, key),
            ).fetchone()
            if taken is None:
                return key
            logger.debug("sequence key already taken bucket=%s key=%s", self.bucket, key)

    def create(self, target: str, *, base: str = "") -> str:
        def _create(conn: sqlite3.Connection) -> str:
            key = self._next_free_key(conn, base)
            conn.execute(
                "INSERT INTO bucket_items (bucket, key, value) VALUES (?, ?, ?)",
                (self.bucket, key, target),
            )
            return key

        key = self._write(_create)
        logger.debug("mapping created bucket=%s key=%s", self.bucket, key)
        return key

    def update(self, key: str, target: str) -> None:
        if not key:
            raise InvalidInputError("mapping key required")

        def _upsert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO bucket_items (bucket, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(bucket, key)
                DO UPDATE SET value=excluded.value
                """,
                (self.bucket, key, target),
            )

        self._write(_upsert)
        logger.debug("mapping updated bucket=%s key=%s", self.bucket, key)

    def get(self, key: str) -> Mapping | None:
        def _get(conn: sqlite3.Connection) -> tuple | None:
            return conn.execute(
                "SELECT value FROM bucket_items WHERE bucket = ? AND key = ?",
                (self.bucket, key),
            ).fetchone()

        row = self._read(_get)
        if not row or not row[0]:
            return None
        return Mapping(key=key, target=row[0])

    def list_mappings(self) -> list[Mapping]:
        def _list(conn: sqlite3.Connection) -> list[tuple]:
            return conn.execute(
                "SELECT key, value FROM bucket_items WHERE bucket = ? ORDER BY key DESC",
                (self.bucket,),
            ).fetchall()

        return [Mapping(key=row[0], target=row[1]) for row in self._read(_list)]

    def sequence_value(self) -> int:
        def _value(conn: sqlite3.Connection) -> tuple | None:
            return conn.execute(
                "SELECT value FROM bucket_sequences WHERE bucket = ?",
                (self.bucket,),
            ).fetchone()

        row = self._read(_value)
        return int(row[0]) if row else 0

    def close(self) -> None:
        with self._connections_lock:
            if self._closed:
                return
            self._closed = True
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as exc:  # pragma: no cover - operational guard
                logger.warning("sqlite connection close failed path=%s error=%s", self.db_path, exc)
        logger.info("sqlite store closed path=%s", self.db_path)

    def __enter__(self) -> SqliteMappingStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
