from __future__ import annotations

import asyncio
import json
import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from treasury_actions.domain.models import ActionPayload, ActionStatus
from treasury_actions.engine import lifecycle
from treasury_actions.engine.factory import create_action
from treasury_actions.errors import SyncError
from treasury_actions.policy.table import ActionConfigTable
from treasury_actions.store.state_store import STORAGE_KEY, SYNC_KEY, StateStore
from treasury_actions.store.storage import SqliteStorage, StorageEvent
from treasury_actions.store.sync import MarkerPoller, SyncListener


@pytest.fixture
def second_view(storage: SqliteStorage) -> StateStore:
    return StateStore(storage, view_id="view-2")


def test_two_views_converge_after_marker_change(
    store: StateStore,
    second_view: StateStore,
    payload: ActionPayload,
    table: ActionConfigTable,
) -> None:
    listener = SyncListener(second_view)
    listener.start()

    action = create_action(payload, table)
    store.insert(action)
    ctx = store.context_for(action.id)
    lifecycle.begin_approval(action, ctx)
    lifecycle.complete_approval(ctx, "PAY-1")
    lifecycle.complete_submission(ctx, "TX-1")

    mirrored = second_view.get(action.id)
    assert mirrored is not None
    assert mirrored.status is ActionStatus.SUBMITTED
    assert mirrored.runtime_evidence == store.get(action.id).runtime_evidence
    assert mirrored == store.get(action.id)
    listener.stop()


def test_view_does_not_reload_on_its_own_writes(
    store: StateStore, payload: ActionPayload, table: ActionConfigTable
) -> None:
    listener = SyncListener(store)
    listener.start()

    with patch.object(store, "reload_from_storage") as reload:
        store.insert(create_action(payload, table))

    reload.assert_not_called()
    listener.stop()


def test_stopped_listener_ignores_changes(
    store: StateStore,
    second_view: StateStore,
    payload: ActionPayload,
    table: ActionConfigTable,
) -> None:
    listener = SyncListener(second_view)
    listener.start()
    listener.stop()

    store.insert(create_action(payload, table))

    assert second_view.list_all() == []


def test_handle_event_filters_unrelated_and_replayed_events(second_view: StateStore) -> None:
    listener = SyncListener(second_view)

    with patch.object(second_view, "reload_from_storage", return_value=True) as reload:
        assert listener.handle_event(StorageEvent(STORAGE_KEY, None, "x")) is False
        assert listener.handle_event(StorageEvent(SYNC_KEY, "m1", "m1")) is False
        assert listener.handle_event(StorageEvent(SYNC_KEY, "m1", None)) is False
        assert listener.handle_event(StorageEvent(SYNC_KEY, None, "m2")) is True
        assert listener.handle_event(StorageEvent(SYNC_KEY, "m1", "m2")) is False

    reload.assert_called_once()
    assert listener.last_marker == "m2"


def test_handle_event_keeps_state_on_corrupt_storage(
    store: StateStore,
    second_view: StateStore,
    storage: SqliteStorage,
    payload: ActionPayload,
    table: ActionConfigTable,
) -> None:
    store.insert(create_action(payload, table))
    second_view.reload_from_storage()
    before = second_view.list_all()
    storage.set_item(STORAGE_KEY, "garbage")

    listener = SyncListener(second_view)
    assert listener.handle_event(StorageEvent(SYNC_KEY, None, "fresh-marker")) is False
    assert second_view.list_all() == before


def test_reload_notifies_local_subscribers(
    store: StateStore,
    second_view: StateStore,
    payload: ActionPayload,
    table: ActionConfigTable,
) -> None:
    local = MagicMock()
    second_view.subscribe(local)
    listener = SyncListener(second_view)
    listener.start()

    store.insert(create_action(payload, table))

    local.assert_called_with(None)
    listener.stop()


def test_poller_picks_up_writes_from_another_process(
    storage_path: str, payload: ActionPayload, table: ActionConfigTable
) -> None:
    writer_storage = SqliteStorage(storage_path, wal=False)
    reader_storage = SqliteStorage(storage_path, wal=False)
    writer = StateStore(writer_storage, view_id="writer")
    reader = StateStore(reader_storage, view_id="reader")
    poller = MarkerPoller(reader, SyncListener(reader), interval_seconds=1.0)

    assert poller.poll_once() is False
    action = create_action(payload, table)
    writer.insert(action)

    assert reader.get(action.id) is None
    assert poller.poll_once() is True
    assert reader.get(action.id) == action
    assert poller.poll_once() is False

    writer_storage.close()
    reader_storage.close()


def test_poller_skips_own_marker(
    store: StateStore, payload: ActionPayload, table: ActionConfigTable
) -> None:
    poller = MarkerPoller(store, SyncListener(store), interval_seconds=1.0)
    store.insert(create_action(payload, table))

    with patch.object(store, "reload_from_storage") as reload:
        assert poller.poll_once() is False
    reload.assert_not_called()


def test_poller_survives_storage_errors(store: StateStore) -> None:
    poller = MarkerPoller(store, SyncListener(store), interval_seconds=1.0)
    with patch.object(store.storage, "get_item", side_effect=sqlite3.OperationalError("locked")):
        assert poller.poll_once() is False


@pytest.mark.asyncio
async def test_poller_start_and_stop(store: StateStore) -> None:
    poller = MarkerPoller(store, SyncListener(store), interval_seconds=0.01)

    task = poller.start()
    assert poller.start() is task
    await asyncio.sleep(0.03)
    await poller.stop()

    assert task.cancelled()
    await poller.stop()


def test_malformed_evidence_in_storage_is_a_sync_error(
    store: StateStore,
    second_view: StateStore,
    storage: SqliteStorage,
    payload: ActionPayload,
    table: ActionConfigTable,
) -> None:
    store.insert(create_action(payload, table))
    second_view.reload_from_storage()
    before = second_view.list_all()
    document = json.loads(storage.get_item(STORAGE_KEY))
    document["state"]["actions"][0]["runtimeEvidence"] = ["junk"]
    storage.set_item(STORAGE_KEY, json.dumps(document))

    with pytest.raises(SyncError):
        second_view.reload_from_storage()

    listener = SyncListener(second_view)
    assert listener.handle_event(StorageEvent(SYNC_KEY, None, "fresh-marker")) is False
    assert second_view.list_all() == before
    assert StateStore(storage, view_id="view-3").list_all() == []


@pytest.mark.asyncio
async def test_poller_keeps_running_after_poll_crash(store: StateStore) -> None:
    sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])
    poller = MarkerPoller(store, SyncListener(store), interval_seconds=1.0, sleep=sleep)

    with patch.object(poller, "poll_once", side_effect=[RuntimeError("boom"), False]) as poll:
        with pytest.raises(asyncio.CancelledError):
            await poller.run()

    assert poll.call_count == 2
