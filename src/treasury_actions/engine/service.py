"""Submission entry point tying validation, the store and signal sources together."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from treasury_actions.domain.models import ActionPayload, TreasuryAction
from treasury_actions.engine import lifecycle
from treasury_actions.engine.factory import ValidationResult, create_action, validate_payload
from treasury_actions.engine.signals import (
    ActionSignalHandler,
    SimulatedApprovalSource,
    WalletSignalBridge,
)
from treasury_actions.policy.table import ActionConfigTable
from treasury_actions.store.state_store import StateStore

logger = logging.getLogger(__name__)

WALLET_UNAVAILABLE_MESSAGE = "⚠ Wallet integration not available - action created but not signed"


class SignalMode(str, Enum):
    AUTO = "auto"
    TESTNET = "testnet"
    LIVE = "live"
    NONE = "none"


def resolve_signal_mode(mode: SignalMode | str, api_key_configured: bool) -> SignalMode:
    """Pick the concrete signal source. ``auto`` prefers the live wallet when a key is set."""
    mode = SignalMode(mode)
    if mode is SignalMode.AUTO:
        return SignalMode.LIVE if api_key_configured else SignalMode.TESTNET
    return mode


class LifecycleService:
    def __init__(
        self,
        store: StateStore,
        table: ActionConfigTable,
        *,
        mode: SignalMode,
        simulator: SimulatedApprovalSource,
        bridge: WalletSignalBridge,
    ) -> None:
        if mode is SignalMode.AUTO:
            raise ValueError("Signal mode must be resolved before constructing the service")
        self.store = store
        self.table = table
        self.mode = mode
        self.simulator = simulator
        self.bridge = bridge
        self._tasks: set[asyncio.Task[None]] = set()

    def validate(self, payload: ActionPayload | Mapping[str, Any]) -> ValidationResult:
        if not isinstance(payload, ActionPayload):
            payload = ActionPayload.from_mapping(payload)
        return validate_payload(payload, self.table)

    async def submit(self, payload: ActionPayload | Mapping[str, Any]) -> TreasuryAction:
        """Create an action and start its approval flow.

        Returns the record as stored right after the approval request was
        initiated. Raises ``ActionValidationError`` without touching the store
        when the payload is invalid.
        """
        if not isinstance(payload, ActionPayload):
            payload = ActionPayload.from_mapping(payload)
        self.validate(payload).raise_for_error()

        action = create_action(payload, self.table)
        self.store.insert(action)
        logger.info(
            "Created action %s (%s, %s) in %s mode",
            action.id,
            action.reference_id,
            action.type.value,
            self.mode.value,
        )

        ctx = self.store.context_for(action.id)
        ctx.log_append(f"Action created by {payload.user_id or 'user'}")
        lifecycle.begin_approval(action, ctx)

        if self.mode is SignalMode.TESTNET:
            self._schedule(self.simulator.run(ActionSignalHandler(action.id, ctx)))
        elif self.mode is SignalMode.LIVE:
            self.bridge.register(ActionSignalHandler(action.id, ctx))
        else:
            ctx.log_append(WALLET_UNAVAILABLE_MESSAGE)

        return self.store.get(action.id) or action

    def _schedule(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled simulator run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
