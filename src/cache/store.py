#!/usr/bin/env python3
"""
Partitioned Cache Store

Named partitions (static, dynamic, ...) each mapping a request identity to a
stored response snapshot.

Implements:
- open(partition) → creates the partition if missing
- match(partition, request) → ResponseSnapshot | None
- put(partition, request, response) → last writer wins per identity
- put_many(partition, entries) → all entries or none
- put(..., create=False) → write only into a partition that still exists
- delete_partition(partition) → bool
- partitions() → [names]
- get_stats() → {hits, misses, writes, evictions, ...}

Two backends share the same surface: MemoryCacheStore (tests, injection) and
SQLiteCacheStore (durable, survives restarts).
"""

import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .keys import make_cache_key, normalize_url
from .snapshot import RequestSpec, ResponseSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser("~/.radio-pwa/offline/cache.db")

Entry = Tuple[RequestSpec, ResponseSnapshot]


class CacheStore:
    """
    Common surface of the partitioned stores.

    Subclasses implement the _raw_* methods; stats and logging live here.
    """

    def __init__(self, clock: Callable[[], float] = None):
        self._clock = clock or time.time
        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "evictions": 0,
            "start_time": self._clock(),
        }

    # ── Backend hooks ────────────────────────────────────────────

    def _raw_partitions(self) -> List[str]:
        raise NotImplementedError

    def _raw_open(self, partition: str) -> None:
        raise NotImplementedError

    def _raw_match(self, partition: str, key: str) -> Optional[ResponseSnapshot]:
        raise NotImplementedError

    def _raw_put_many(
        self, partition: str, rows: List[Tuple[str, RequestSpec, ResponseSnapshot]], create: bool,
    ) -> bool:
        """Write rows in one step. Returns False, writing nothing, when the
        partition is missing and create is off."""
        raise NotImplementedError

    def _raw_delete(self, partition: str) -> int:
        """Drop a partition. Returns the number of entries removed, -1 if absent."""
        raise NotImplementedError

    def _raw_urls(self, partition: str) -> List[str]:
        raise NotImplementedError

    # ── Public API ───────────────────────────────────────────────

    def partitions(self) -> List[str]:
        return sorted(self._raw_partitions())

    def has_partition(self, partition: str) -> bool:
        return partition in self._raw_partitions()

    def open(self, partition: str) -> None:
        """Create the partition if it does not exist yet."""
        self._raw_open(partition)

    def match(self, partition: str, request: RequestSpec) -> Optional[ResponseSnapshot]:
        """Look up a request in one partition. Never creates the partition."""
        if not self.has_partition(partition):
            self.stats["misses"] += 1
            return None

        snapshot = self._raw_match(partition, make_cache_key(request.method, request.url))
        if snapshot is None:
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        return snapshot

    def put(self, partition: str, request: RequestSpec, response: ResponseSnapshot,
            create: bool = True) -> bool:
        return self.put_many(partition, [(request, response)], create=create) > 0

    def put_many(self, partition: str, entries: Iterable[Entry], create: bool = True) -> int:
        """
        Write all entries in one step. Creates the partition on first write
        unless create is False, in which case a missing partition is left
        missing and nothing is written.

        Returns the number of entries written.
        """
        now = self._clock()
        rows = [
            (make_cache_key(request.method, request.url), request, response.stamped(now))
            for request, response in entries
        ]
        if not self._raw_put_many(partition, rows, create):
            logger.debug(f"Partition {partition} is gone, dropped {len(rows)} entries")
            return 0
        self.stats["writes"] += len(rows)
        logger.debug(f"Stored {len(rows)} entries in {partition}")
        return len(rows)

    def delete_partition(self, partition: str) -> bool:
        removed = self._raw_delete(partition)
        if removed < 0:
            return False
        self.stats["evictions"] += removed
        logger.info(f"Deleted partition {partition} ({removed} entries)")
        return True

    def urls(self, partition: str) -> List[str]:
        """URLs stored in a partition, sorted."""
        return sorted(self._raw_urls(partition))

    def get_stats(self) -> Dict[str, object]:
        total = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0
        partitions = self.partitions()
        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "total_lookups": total,
            "writes": self.stats["writes"],
            "evictions": self.stats["evictions"],
            "partitions": partitions,
            "entries": sum(len(self._raw_urls(p)) for p in partitions),
            "uptime_seconds": int(self._clock() - self.stats["start_time"]),
        }

    def close(self) -> None:
        pass


class MemoryCacheStore(CacheStore):
    """Dictionary-backed store. Nothing survives the process."""

    def __init__(self, clock: Callable[[], float] = None):
        super().__init__(clock)
        self._partitions: Dict[str, Dict[str, Tuple[str, ResponseSnapshot]]] = {}
        self._lock = threading.Lock()

    def _raw_partitions(self) -> List[str]:
        with self._lock:
            return list(self._partitions)

    def _raw_open(self, partition: str) -> None:
        with self._lock:
            self._partitions.setdefault(partition, {})

    def _raw_match(self, partition: str, key: str) -> Optional[ResponseSnapshot]:
        with self._lock:
            hit = self._partitions.get(partition, {}).get(key)
        return hit[1] if hit else None

    def _raw_put_many(self, partition, rows, create) -> bool:
        with self._lock:
            if create:
                target = self._partitions.setdefault(partition, {})
            else:
                target = self._partitions.get(partition)
                if target is None:
                    return False
            for key, request, response in rows:
                target[key] = (normalize_url(request.url), response)
        return True

    def _raw_delete(self, partition: str) -> int:
        with self._lock:
            entries = self._partitions.pop(partition, None)
        return -1 if entries is None else len(entries)

    def _raw_urls(self, partition: str) -> List[str]:
        with self._lock:
            return [url for url, _ in self._partitions.get(partition, {}).values()]


SCHEMA = """
CREATE TABLE IF NOT EXISTS partitions (
    name TEXT PRIMARY KEY,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS entries (
    partition TEXT NOT NULL,
    cache_key TEXT NOT NULL,
    method TEXT NOT NULL,
    url TEXT NOT NULL,
    status INTEGER NOT NULL,
    reason TEXT DEFAULT '',
    headers TEXT DEFAULT '{}',
    body BLOB,
    stored_at REAL NOT NULL,
    PRIMARY KEY (partition, cache_key)
);

CREATE INDEX IF NOT EXISTS idx_entries_partition ON entries(partition);
"""


class SQLiteCacheStore(CacheStore):
    """
    SQLite-backed store.

    One connection shared by every fetch task; the lock serializes use of the
    connection, not cache semantics.
    """

    def __init__(self, db_path: str = None, clock: Callable[[], float] = None):
        super().__init__(clock)
        self.db_path = db_path or os.environ.get("OFFLINE_STORE_PATH", DEFAULT_DB_PATH)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(SCHEMA)
        self.conn.commit()

        logger.info(f"SQLiteCacheStore initialized at {self.db_path}")

    def _raw_partitions(self) -> List[str]:
        with self._lock:
            rows = self.conn.execute("SELECT name FROM partitions").fetchall()
        return [row["name"] for row in rows]

    def _raw_open(self, partition: str) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                (partition, self._clock()),
            )

    def _raw_match(self, partition: str, key: str) -> Optional[ResponseSnapshot]:
        with self._lock:
            row = self.conn.execute(
                """SELECT url, status, reason, headers, body, stored_at
                   FROM entries WHERE partition = ? AND cache_key = ?""",
                (partition, key),
            ).fetchone()
        return ResponseSnapshot.from_row(row) if row else None

    def _raw_put_many(self, partition, rows, create) -> bool:
        # `with self.conn` commits on success and rolls back on error
        with self._lock, self.conn:
            if create:
                self.conn.execute(
                    "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                    (partition, self._clock()),
                )
            elif not self.conn.execute(
                "SELECT 1 FROM partitions WHERE name = ?", (partition,)
            ).fetchone():
                return False
            self.conn.executemany(
                """INSERT OR REPLACE INTO entries
                   (partition, cache_key, method, url, status, reason, headers, body, stored_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        partition,
                        key,
                        request.method.upper(),
                        normalize_url(request.url),
                        response.status,
                        response.reason,
                        response.headers_json(),
                        sqlite3.Binary(response.body),
                        response.stored_at,
                    )
                    for key, request, response in rows
                ],
            )
        return True

    def _raw_delete(self, partition: str) -> int:
        with self._lock, self.conn:
            exists = self.conn.execute(
                "SELECT 1 FROM partitions WHERE name = ?", (partition,)
            ).fetchone()
            if not exists:
                return -1
            cursor = self.conn.execute("DELETE FROM entries WHERE partition = ?", (partition,))
            removed = cursor.rowcount
            self.conn.execute("DELETE FROM partitions WHERE name = ?", (partition,))
        return removed

    def _raw_urls(self, partition: str) -> List[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT url FROM entries WHERE partition = ?", (partition,)
            ).fetchall()
        return [row["url"] for row in rows]

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            logger.info("SQLiteCacheStore closed")
