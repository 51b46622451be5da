"""SQLite-backed key/value storage shared by every view of the action collection."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from treasury_actions.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

_MEMORY_PATH = ":memory:"


@dataclass(frozen=True)
class StorageEvent:
    """A change to one storage key, as observed by another view."""

    key: str
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageEvent], None]


@dataclass(eq=False)
class _Subscription:
    listener: StorageListener
    view_id: str | None


class SqliteStorage:
    """Key/value store in a single SQLite file.

    Views in the same process receive a ``StorageEvent`` for every write made
    by a different view. A write is never echoed back to the view that made
    it. Views in other processes see the data but not the events; they use
    ``MarkerPoller`` instead.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        if path != _MEMORY_PATH:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        self._subscriptions: list[_Subscription] = []
        if wal and path != _MEMORY_PATH:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    @property
    def path(self) -> str:
        return self._path

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return row["value"]

    def set_item(self, key: str, value: str, *, origin: str | None = None) -> None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, utc_now_iso()),
            )
            self._conn.commit()
            subscriptions = list(self._subscriptions)
        old_value = row["value"] if row is not None else None
        self._notify(subscriptions, StorageEvent(key, old_value, value), origin)

    def remove_item(self, key: str, *, origin: str | None = None) -> None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()
            subscriptions = list(self._subscriptions)
        self._notify(subscriptions, StorageEvent(key, row["value"], None), origin)

    def subscribe(
        self,
        listener: StorageListener,
        *,
        view_id: str | None = None,
    ) -> Callable[[], None]:
        """Register ``listener`` for writes made by views other than ``view_id``.

        Returns a callable that removes the subscription.
        """
        subscription = _Subscription(listener=listener, view_id=view_id)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._subscriptions.clear()
            self._closed = True

    @staticmethod
    def _notify(
        subscriptions: list[_Subscription],
        event: StorageEvent,
        origin: str | None,
    ) -> None:
        for subscription in subscriptions:
            if origin is not None and subscription.view_id == origin:
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception("Storage listener failed for key %s", event.key)
