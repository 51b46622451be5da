"""External approval signal sources.

A signal source reports what happened to an action outside this service:
the wallet signed it, the signature reached the chain, or the user
cancelled. ``ActionSignalHandler`` turns those reports into lifecycle
operations. Two sources exist, and exactly one drives any given action:

* ``SimulatedApprovalSource`` synthesizes identifiers after fixed delays,
  for deployments without a payment backend.
* ``WalletSignalBridge`` relays events from the live wallet integration.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Protocol

from treasury_actions.domain.ids import generate_testnet_payment_id, generate_testnet_tx_id
from treasury_actions.engine import lifecycle
from treasury_actions.engine.lifecycle import ProcessingContext
from treasury_actions.errors import ConfigurationError, LifecycleError, UpstreamError
from treasury_actions.payments.client import PaymentsClient

logger = logging.getLogger(__name__)


class ApprovalSignalHandler(Protocol):
    def on_ready_for_approval(self, payment_ref: str) -> None: ...

    def on_ready_for_completion(self, payment_ref: str, tx_ref: str) -> None: ...

    def on_cancelled(self) -> None: ...

    def on_error(self, reason: str) -> None: ...


class _Phase(str, Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    FINISHED = "finished"


class ActionSignalHandler:
    """Applies signals for one action, in order, exactly once each.

    A cancellation or error reported by the signal source is kept on
    ``failure`` after the action has been failed.
    """

    def __init__(self, action_id: str, context: ProcessingContext) -> None:
        self.action_id = action_id
        self.context = context
        self.failure: LifecycleError | None = None
        self._phase = _Phase.AWAITING_APPROVAL

    @property
    def awaiting_approval(self) -> bool:
        return self._phase is _Phase.AWAITING_APPROVAL

    @property
    def approved(self) -> bool:
        return self._phase is _Phase.APPROVED

    @property
    def finished(self) -> bool:
        return self._phase is _Phase.FINISHED

    def on_ready_for_approval(self, payment_ref: str) -> None:
        if self._phase is not _Phase.AWAITING_APPROVAL:
            logger.warning("Ignoring repeated approval signal for action %s", self.action_id)
            return
        lifecycle.complete_approval(self.context, payment_ref)
        self._phase = _Phase.APPROVED

    def on_ready_for_completion(self, payment_ref: str, tx_ref: str) -> None:
        if self._phase is _Phase.FINISHED:
            logger.warning("Ignoring completion signal for finished action %s", self.action_id)
            return
        if self._phase is _Phase.AWAITING_APPROVAL:
            self._fail(f"Completion signalled before approval (payment {payment_ref})")
            return
        lifecycle.complete_submission(self.context, tx_ref)
        self._phase = _Phase.FINISHED

    def on_cancelled(self) -> None:
        if self._phase is _Phase.FINISHED:
            logger.warning("Ignoring cancellation for finished action %s", self.action_id)
            return
        self._fail("Signature cancelled")

    def on_error(self, reason: str) -> None:
        if self._phase is _Phase.FINISHED:
            logger.warning(
                "Ignoring error for finished action %s: %s", self.action_id, reason
            )
            return
        self._fail(reason)

    def _fail(self, reason: str) -> None:
        self.failure = LifecycleError(reason)
        logger.info("Action %s failed: %s", self.action_id, reason)
        lifecycle.fail(self.context, reason)
        self._phase = _Phase.FINISHED


class SimulatedApprovalSource:
    """Testnet stand-in for a wallet. Runs to completion; it cannot be cancelled."""

    def __init__(
        self,
        approval_delay_seconds: float,
        completion_delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._approval_delay_seconds = approval_delay_seconds
        self._completion_delay_seconds = completion_delay_seconds
        self._sleep = sleep

    async def run(self, handler: ActionSignalHandler) -> None:
        handler.context.log_append("⚙ Testnet mode: Simulating wallet approval flow...")
        handler.context.log_append("ℹ Note: Full payment backend not required in Testnet")
        try:
            await self._sleep(self._approval_delay_seconds)
            payment_id = generate_testnet_payment_id()
            handler.on_ready_for_approval(payment_id)

            await self._sleep(self._completion_delay_seconds)
            handler.on_ready_for_completion(payment_id, generate_testnet_tx_id())
        except Exception as exc:
            logger.exception("Testnet simulation failed for action %s", handler.action_id)
            handler.on_error(f"Testnet simulation error: {exc}")


class WalletEvent(str, Enum):
    READY_FOR_APPROVAL = "ready_for_approval"
    READY_FOR_COMPLETION = "ready_for_completion"
    CANCELLED = "cancelled"
    ERROR = "error"


class WalletSignalBridge:
    """Relays live wallet events to the handler registered for each action.

    When a payments client is attached, approval and completion are first
    forwarded to the payment service; an upstream failure fails the action.
    """

    def __init__(self, payments: PaymentsClient | None = None) -> None:
        self._payments = payments
        self._handlers: dict[str, ActionSignalHandler] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def register(self, handler: ActionSignalHandler) -> None:
        self._handlers[handler.action_id] = handler
        self._locks[handler.action_id] = asyncio.Lock()
        handler.context.log_append("Requesting wallet signature (approval only)...")

    def is_registered(self, action_id: str) -> bool:
        return action_id in self._handlers

    async def dispatch(
        self,
        action_id: str,
        event: WalletEvent,
        *,
        payment_id: str | None = None,
        txid: str | None = None,
        reason: str | None = None,
    ) -> ActionSignalHandler:
        """Deliver one wallet event.

        Raises ``KeyError`` when no handler is registered for ``action_id`` and
        ``ValueError`` when the identifiers an event needs are missing or not
        strings. Approval and completion reach the payment service only when
        the action is in the matching phase; out-of-order events go straight
        to the handler.
        """
        handler = self._handlers[action_id]
        fields = (("Payment ID", payment_id), ("Transaction ID", txid), ("Reason", reason))
        for label, value in fields:
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{label} must be a string")
        if event in (WalletEvent.READY_FOR_APPROVAL, WalletEvent.READY_FOR_COMPLETION):
            if not payment_id:
                raise ValueError("Payment ID required")
        if event is WalletEvent.READY_FOR_COMPLETION and not txid:
            raise ValueError("Payment ID and transaction ID required")

        async with self._locks[action_id]:
            if event is WalletEvent.READY_FOR_APPROVAL:
                if not handler.awaiting_approval or await self._forward(
                    handler, "approve", payment_id, None
                ):
                    handler.on_ready_for_approval(payment_id)
            elif event is WalletEvent.READY_FOR_COMPLETION:
                if not handler.approved or await self._forward(
                    handler, "complete", payment_id, txid
                ):
                    handler.on_ready_for_completion(payment_id, txid)
            elif event is WalletEvent.CANCELLED:
                handler.on_cancelled()
            else:
                handler.on_error(reason or "Wallet error")

        if handler.finished:
            self._handlers.pop(action_id, None)
            self._locks.pop(action_id, None)
        return handler

    async def _forward(
        self,
        handler: ActionSignalHandler,
        operation: str,
        payment_id: str,
        txid: str | None,
    ) -> bool:
        if self._payments is None:
            return True
        try:
            if operation == "approve":
                await self._payments.approve(payment_id)
            else:
                await self._payments.complete(payment_id, txid or "")
        except (ConfigurationError, UpstreamError) as exc:
            handler.on_error(str(exc))
            return False
        return True
