"""Unified lifecycle engine.

Every action type runs through the same status flow::

    Created -> Approved -> Submitted
    Created | Approved -> Failed

The engine never reads or writes storage. Each operation reports its side
effects through a ``ProcessingContext`` supplied by the caller, normally a
``StoreProcessingContext`` bound to one action in a ``StateStore``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Protocol

from treasury_actions.domain.ids import generate_release_id
from treasury_actions.domain.models import ActionStatus, TreasuryAction
from treasury_actions.utils.time import utc_now


class ProcessingContext(Protocol):
    def log_append(self, message: str) -> None: ...

    def status_change(self, status: ActionStatus, timestamp: datetime) -> None: ...

    def evidence_merge(self, evidence: Mapping[str, str]) -> None: ...


def _flag(value: bool) -> str:
    return "✓" if value else "✗"


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def begin_approval(action: TreasuryAction, ctx: ProcessingContext) -> None:
    """Record that an approval request was initiated. Status is left unchanged."""
    manifest = action.manifest
    ctx.log_append(f"Initiating approval for {action.reference_id}")
    ctx.log_append(
        f"Type: {action.type.value} | Operational Amount: "
        f"{format_amount(action.amount)} π (non-binding data only)"
    )
    ctx.log_append(f"Freeze ID: {action.runtime_evidence.freeze_id}")
    ctx.log_append(
        f"Hooks (UI) - Limits: {_flag(manifest.limit_check)} | "
        f"Approvals: {_flag(manifest.approval_required)} | "
        f"Reporting: {_flag(manifest.reporting_enabled)}"
    )


def complete_approval(
    ctx: ProcessingContext,
    payment_ref: str,
    release_id: str | None = None,
) -> str:
    """Record approval evidence and move the action to Approved.

    Must run at most once per action. Returns the release id that was recorded.
    """
    release_id = release_id or generate_release_id()
    ctx.log_append(f"✓ Wallet signature received ({payment_ref})")
    ctx.log_append(f"✓ Release ID generated: {release_id}")
    ctx.evidence_merge({"release_id": release_id, "wallet_signature": payment_ref})
    ctx.status_change(ActionStatus.APPROVED, utc_now())
    return release_id


def complete_submission(ctx: ProcessingContext, tx_id: str) -> None:
    ctx.log_append(f"✓ Signature on-chain (TX: {tx_id})")
    ctx.evidence_merge({"blockchain_tx_id": tx_id})
    ctx.status_change(ActionStatus.SUBMITTED, utc_now())
    ctx.log_append("✓ Submitted to institutional review queue")


def fail(ctx: ProcessingContext, reason: str) -> None:
    ctx.log_append(f"✗ Error: {reason}")
    ctx.status_change(ActionStatus.FAILED, utc_now())
