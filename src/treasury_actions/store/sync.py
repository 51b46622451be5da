"""Cross-view reconciliation driven by the sync marker key."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from typing import Awaitable, Callable

from treasury_actions.errors import SyncError
from treasury_actions.store.state_store import StateStore
from treasury_actions.store.storage import StorageEvent

logger = logging.getLogger(__name__)


class SyncListener:
    """Reloads a view's store when another view changes the sync marker.

    Reconciliation is wholesale: the whole persisted collection replaces the
    in-memory one. Events for other keys and replays of an already observed
    marker value are ignored.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store
        self._last_marker: str | None = store.storage.get_item(store.sync_key)
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def last_marker(self) -> str | None:
        return self._last_marker

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._store.storage.subscribe(
            self.handle_event, view_id=self._store.view_id
        )

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None

    def handle_event(self, event: StorageEvent) -> bool:
        """Apply one storage event. Returns True if the store was reloaded."""
        if event.key != self._store.sync_key:
            return False
        if event.new_value is None or event.new_value == event.old_value:
            return False
        if event.new_value == self._last_marker:
            return False
        self._last_marker = event.new_value

        logger.info("Cross-view sync triggered (view %s)", self._store.view_id)
        try:
            return self._store.reload_from_storage()
        except SyncError as exc:
            logger.error("Cross-view sync skipped, keeping local state: %s", exc)
            return False


class MarkerPoller:
    """Feeds marker changes made by other processes into a ``SyncListener``."""

    def __init__(
        self,
        store: StateStore,
        listener: SyncListener,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._listener = listener
        self._interval_seconds = interval_seconds
        self._sleep = sleep
        self._last_seen: str | None = store.storage.get_item(store.sync_key)
        self._task: asyncio.Task[None] | None = None

    def poll_once(self) -> bool:
        try:
            current = self._store.storage.get_item(self._store.sync_key)
        except sqlite3.Error as exc:
            logger.warning("Sync marker poll failed: %s", exc)
            return False
        if current == self._last_seen:
            return False
        previous, self._last_seen = self._last_seen, current
        # Our own writes are already reflected in memory.
        if current is None or current == self._store.last_written_marker:
            return False
        return self._listener.handle_event(
            StorageEvent(key=self._store.sync_key, old_value=previous, new_value=current)
        )

    async def run(self) -> None:
        while True:
            try:
                self.poll_once()
            except Exception:
                logger.exception("Sync marker poll crashed; retrying")
            await self._sleep(self._interval_seconds)

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
