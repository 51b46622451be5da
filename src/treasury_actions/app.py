"""Application context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from treasury_actions.config import Settings, load_settings
from treasury_actions.engine.service import LifecycleService, SignalMode, resolve_signal_mode
from treasury_actions.engine.signals import SimulatedApprovalSource, WalletSignalBridge
from treasury_actions.payments.client import PaymentsClient
from treasury_actions.policy.loader import load_action_table
from treasury_actions.policy.table import ActionConfigTable
from treasury_actions.store.state_store import StateStore
from treasury_actions.store.storage import SqliteStorage
from treasury_actions.store.sync import MarkerPoller, SyncListener

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application-wide dependency container.

    One context is one view: it owns a ``StateStore`` over the shared SQLite
    storage and keeps it reconciled with other views through the sync
    listener and marker poller.
    """

    settings: Settings
    table: ActionConfigTable
    storage: SqliteStorage
    store: StateStore
    sync_listener: SyncListener
    marker_poller: MarkerPoller
    payments: PaymentsClient
    bridge: WalletSignalBridge
    service: LifecycleService

    @property
    def signal_mode(self) -> SignalMode:
        return self.service.mode


def build_app_context(settings: Settings) -> AppContext:
    table = load_action_table(settings.action_table.path)
    storage = SqliteStorage(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
    store = StateStore(
        storage,
        storage_key=settings.storage.storage_key,
        sync_key=settings.storage.sync_key,
    )
    sync_listener = SyncListener(store)
    marker_poller = MarkerPoller(store, sync_listener, settings.storage.sync_poll_seconds)

    payments = PaymentsClient(
        api_key=settings.payments.api_key,
        base_url=settings.payments.base_url,
        timeout_seconds=settings.payments.timeout_seconds,
    )
    bridge = WalletSignalBridge(payments if payments.configured else None)
    simulator = SimulatedApprovalSource(
        settings.signals.approval_delay_seconds,
        settings.signals.completion_delay_seconds,
    )
    mode = resolve_signal_mode(settings.signals.mode, payments.configured)
    logger.info(
        "Treasury actions ready: %d action types, signal mode %s, storage %s",
        len(table),
        mode.value,
        storage.path,
    )

    return AppContext(
        settings=settings,
        table=table,
        storage=storage,
        store=store,
        sync_listener=sync_listener,
        marker_poller=marker_poller,
        payments=payments,
        bridge=bridge,
        service=LifecycleService(
            store,
            table,
            mode=mode,
            simulator=simulator,
            bridge=bridge,
        ),
    )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the application context.

    Returns a cached singleton instance of AppContext with all
    dependencies initialized.
    """
    return build_app_context(load_settings())
