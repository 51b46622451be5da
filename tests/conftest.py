from __future__ import annotations

import asyncio
import contextlib
import os
from pathlib import Path
from typing import Iterator

import pytest

from treasury_actions.domain.models import ActionPayload, ActionType
from treasury_actions.policy.table import ActionConfigTable, default_action_table
from treasury_actions.store.state_store import StateStore
from treasury_actions.store.storage import SqliteStorage


def pytest_sessionstart(session: pytest.Session) -> None:
    # Keep unit test runs away from the live payment service.
    os.environ.setdefault("TREASURY_SIGNAL_MODE", "testnet")
    os.environ.setdefault("TESTNET_APPROVAL_DELAY_SECONDS", "0")
    os.environ.setdefault("TESTNET_COMPLETION_DELAY_SECONDS", "0")


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


@pytest.fixture
def storage_path(tmp_path: Path) -> str:
    return str(tmp_path / "treasury.sqlite")


@pytest.fixture
def storage(storage_path: str) -> Iterator[SqliteStorage]:
    backend = SqliteStorage(storage_path, wal=False)
    yield backend
    backend.close()


@pytest.fixture
def store(storage: SqliteStorage) -> StateStore:
    return StateStore(storage, view_id="view-1")


@pytest.fixture
def table() -> ActionConfigTable:
    return default_action_table()


@pytest.fixture
def payload() -> ActionPayload:
    return ActionPayload(
        type=ActionType.BUDGET_TRANSFER.value,
        amount=50,
        note="Q1",
        user_id="alice",
    )
