"""Authoritative in-memory action collection for one view, persisted on every change."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

from treasury_actions.domain.models import ActionStatus, TreasuryAction, can_transition
from treasury_actions.errors import DuplicateActionError, SyncError
from treasury_actions.store.storage import SqliteStorage
from treasury_actions.utils.serialization import dumps
from treasury_actions.utils.time import epoch_ms, utc_now

logger = logging.getLogger(__name__)

STORAGE_KEY = "treasury-action-store"
SYNC_KEY = "treasury-sync"
DOCUMENT_VERSION = 0

_TIMESTAMP_FIELDS: dict[ActionStatus, str] = {
    ActionStatus.APPROVED: "approved_at",
    ActionStatus.SUBMITTED: "submitted_at",
    ActionStatus.FAILED: "failed_at",
}

ChangeListener = Callable[[str | None], None]


def format_log_entry(message: str, timestamp: datetime | None = None) -> str:
    moment = (timestamp or utc_now()).isoformat(timespec="milliseconds")
    return f"[{moment.replace('+00:00', 'Z')}] {message}"


def new_marker_value() -> str:
    return f"{epoch_ms()}-{uuid.uuid4().hex[:8]}"


class StateStore:
    """Mapping from action id to ``TreasuryAction`` for a single view.

    All mutations go through ``insert``, ``update_status``, ``append_log`` and
    ``merge_evidence``. Each accepted mutation writes the whole collection to
    storage and then writes the sync marker with a fresh value so that other
    views reload. Records are immutable; updates replace them.
    """

    def __init__(
        self,
        storage: SqliteStorage,
        *,
        storage_key: str = STORAGE_KEY,
        sync_key: str = SYNC_KEY,
        view_id: str | None = None,
        hydrate: bool = True,
    ) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._sync_key = sync_key
        self._view_id = view_id or uuid.uuid4().hex
        # Insertion order, oldest first.
        self._actions: dict[str, TreasuryAction] = {}
        self._lock = threading.RLock()
        self._listeners: list[ChangeListener] = []
        self._last_written_marker: str | None = None
        if hydrate:
            try:
                self.reload_from_storage()
            except SyncError as exc:
                logger.warning("Starting with an empty action store: %s", exc)

    @property
    def view_id(self) -> str:
        return self._view_id

    @property
    def storage(self) -> SqliteStorage:
        return self._storage

    @property
    def sync_key(self) -> str:
        return self._sync_key

    @property
    def last_written_marker(self) -> str | None:
        return self._last_written_marker

    def insert(self, action: TreasuryAction) -> None:
        with self._lock:
            if action.id in self._actions:
                raise DuplicateActionError(action.id)
            self._actions[action.id] = action
            self._commit(action.id)

    def update_status(self, action_id: str, status: ActionStatus, timestamp: datetime) -> bool:
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                logger.warning("Status update for unknown action %s ignored", action_id)
                return False
            if not can_transition(action.status, status):
                logger.warning(
                    "Rejected status transition %s -> %s for action %s",
                    action.status.value,
                    status.value,
                    action_id,
                )
                return False
            updates: dict[str, object] = {"status": status}
            timestamp_field = _TIMESTAMP_FIELDS.get(status)
            if timestamp_field and getattr(action, timestamp_field) is None:
                updates[timestamp_field] = timestamp
            self._actions[action_id] = replace(action, **updates)
            self._commit(action_id)
            return True

    def append_log(self, action_id: str, message: str) -> bool:
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                logger.warning("Log entry for unknown action %s ignored", action_id)
                return False
            entry = format_log_entry(message)
            self._actions[action_id] = replace(action, api_log=(*action.api_log, entry))
            self._commit(action_id)
            return True

    def merge_evidence(self, action_id: str, partial: Mapping[str, str | None]) -> bool:
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                logger.warning("Evidence update for unknown action %s ignored", action_id)
                return False
            evidence = action.runtime_evidence.merged(partial)
            if evidence is action.runtime_evidence:
                return False
            self._actions[action_id] = replace(action, runtime_evidence=evidence)
            self._commit(action_id)
            return True

    def get(self, action_id: str) -> TreasuryAction | None:
        with self._lock:
            return self._actions.get(action_id)

    def list_all(self) -> list[TreasuryAction]:
        """Return every action, newest first."""
        with self._lock:
            return list(reversed(self._actions.values()))

    def context_for(self, action_id: str) -> StoreProcessingContext:
        return StoreProcessingContext(store=self, action_id=action_id)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` with the changed action id (``None`` after a reload)."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def to_document(self) -> dict[str, object]:
        with self._lock:
            return {
                "state": {"actions": [action.to_dict() for action in self.list_all()]},
                "version": DOCUMENT_VERSION,
            }

    def reload_from_storage(self) -> bool:
        """Replace the in-memory collection with the persisted one.

        Returns ``False`` when nothing is persisted yet. Raises ``SyncError``
        when the document cannot be read; the current state is kept.
        """
        try:
            raw = self._storage.get_item(self._storage_key)
        except sqlite3.Error as exc:
            raise SyncError(f"Failed to read persisted actions: {exc}") from exc
        if raw is None:
            return False
        try:
            document = json.loads(raw)
            entries = document["state"]["actions"]
            if not isinstance(entries, list):
                raise TypeError("state.actions must be a list")
            actions = [TreasuryAction.from_dict(entry) for entry in entries]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise SyncError(f"Persisted action store is corrupt: {exc}") from exc

        with self._lock:
            self._actions = {action.id: action for action in reversed(actions)}
            self._notify(None)
        return True

    def _commit(self, action_id: str) -> None:
        self._storage.set_item(
            self._storage_key,
            dumps(self.to_document()),
            origin=self._view_id,
        )
        self._last_written_marker = new_marker_value()
        self._storage.set_item(self._sync_key, self._last_written_marker, origin=self._view_id)
        self._notify(action_id)

    def _notify(self, action_id: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(action_id)
            except Exception:
                logger.exception("Action store listener failed")


@dataclass
class StoreProcessingContext:
    """``ProcessingContext`` that applies engine side effects to one stored action."""

    store: StateStore
    action_id: str

    def log_append(self, message: str) -> None:
        self.store.append_log(self.action_id, message)

    def status_change(self, status: ActionStatus, timestamp: datetime) -> None:
        self.store.update_status(self.action_id, status, timestamp)

    def evidence_merge(self, evidence: Mapping[str, str]) -> None:
        self.store.merge_evidence(self.action_id, evidence)
