"""Payload validation and construction of new treasury actions."""

from __future__ import annotations

import math
from dataclasses import dataclass

from treasury_actions.domain.ids import (
    generate_action_id,
    generate_freeze_id,
    generate_reference_id,
)
from treasury_actions.domain.models import (
    ActionManifest,
    ActionPayload,
    ActionStatus,
    RuntimeEvidence,
    TreasuryAction,
)
from treasury_actions.errors import ActionValidationError, ValidationReason
from treasury_actions.policy.table import ActionConfigTable
from treasury_actions.utils.time import utc_now

TYPE_REQUIRED_MESSAGE = "Action type is required"
INVALID_TYPE_MESSAGE = "Invalid action type"
INVALID_AMOUNT_MESSAGE = "Valid operational amount is required"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None
    reason: ValidationReason | None = None

    def raise_for_error(self) -> None:
        if not self.valid:
            raise ActionValidationError(self.error or "Invalid input", self.reason)


_OK = ValidationResult(valid=True)


def _is_positive_amount(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def validate_payload(payload: ActionPayload, table: ActionConfigTable) -> ValidationResult:
    """Check a payload against the configuration table. The first failing rule wins."""
    if not payload.type:
        return ValidationResult(False, TYPE_REQUIRED_MESSAGE, ValidationReason.INVALID_TYPE)
    if payload.type not in table:
        return ValidationResult(False, INVALID_TYPE_MESSAGE, ValidationReason.INVALID_TYPE)
    if not _is_positive_amount(payload.amount):
        return ValidationResult(False, INVALID_AMOUNT_MESSAGE, ValidationReason.INVALID_AMOUNT)
    return _OK


def create_action(payload: ActionPayload, table: ActionConfigTable) -> TreasuryAction:
    """Build the initial record for a validated payload.

    Does not register the action anywhere; the caller inserts it into a store.
    Raises ``ActionValidationError`` if the payload does not validate.
    """
    validate_payload(payload, table).raise_for_error()
    config = table.lookup(payload.type)

    return TreasuryAction(
        id=generate_action_id(),
        reference_id=generate_reference_id(),
        type=config.type,
        amount=float(payload.amount),
        note=payload.note,
        status=ActionStatus.CREATED,
        created_at=utc_now(),
        runtime_evidence=RuntimeEvidence(freeze_id=generate_freeze_id()),
        manifest=ActionManifest(
            limit_check=True,
            approval_required=config.requires_approval,
            reporting_enabled=True,
        ),
    )
