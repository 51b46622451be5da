"""Durable, observable action store and cross-view synchronization."""

from treasury_actions.store.state_store import (
    STORAGE_KEY,
    SYNC_KEY,
    StateStore,
    StoreProcessingContext,
)
from treasury_actions.store.storage import SqliteStorage, StorageEvent
from treasury_actions.store.sync import MarkerPoller, SyncListener

__all__ = [
    "STORAGE_KEY",
    "SYNC_KEY",
    "MarkerPoller",
    "SqliteStorage",
    "StateStore",
    "StorageEvent",
    "StoreProcessingContext",
    "SyncListener",
]
