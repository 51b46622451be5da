"""Domain objects for treasury actions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from treasury_actions.utils.time import parse_iso


class ActionType(str, Enum):
    RESERVE_ALLOCATION = "Reserve Allocation"
    BUDGET_TRANSFER = "Budget Transfer"
    OPERATIONAL_EXPENSE = "Operational Expense"
    EMERGENCY_FUND = "Emergency Fund"
    STRATEGIC_RESERVE = "Strategic Reserve"

    @classmethod
    def parse(cls, value: object) -> ActionType | None:
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return None


class ActionStatus(str, Enum):
    CREATED = "Created"
    APPROVED = "Approved"
    SUBMITTED = "Submitted"
    FAILED = "Failed"


STATUS_FLOW: tuple[ActionStatus, ...] = (
    ActionStatus.CREATED,
    ActionStatus.APPROVED,
    ActionStatus.SUBMITTED,
    ActionStatus.FAILED,
)

TERMINAL_STATUSES = frozenset({ActionStatus.SUBMITTED, ActionStatus.FAILED})

_ALLOWED_TRANSITIONS: dict[ActionStatus, frozenset[ActionStatus]] = {
    ActionStatus.CREATED: frozenset({ActionStatus.APPROVED, ActionStatus.FAILED}),
    ActionStatus.APPROVED: frozenset({ActionStatus.SUBMITTED, ActionStatus.FAILED}),
    ActionStatus.SUBMITTED: frozenset(),
    ActionStatus.FAILED: frozenset(),
}


def can_transition(current: ActionStatus, target: ActionStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


# Python attribute name -> persisted (camelCase) name
_EVIDENCE_KEYS: dict[str, str] = {
    "freeze_id": "freezeId",
    "release_id": "releaseId",
    "wallet_signature": "walletSignature",
    "blockchain_tx_id": "blockchainTxId",
}


@dataclass(frozen=True)
class RuntimeEvidence:
    """Identifiers reported by external systems. Each field is written at most once."""

    freeze_id: str | None = None
    release_id: str | None = None
    wallet_signature: str | None = None
    blockchain_tx_id: str | None = None

    def merged(self, partial: Mapping[str, str | None]) -> RuntimeEvidence:
        """Return a copy with unset fields filled from ``partial``.

        Empty values are skipped and fields that already hold a value are kept.
        Raises ``ValueError`` for keys that are not evidence fields.
        """
        updates: dict[str, str] = {}
        for key, value in partial.items():
            if key not in _EVIDENCE_KEYS:
                raise ValueError(f"Unknown evidence field: {key}")
            if not value or getattr(self, key):
                continue
            updates[key] = value
        if not updates:
            return self
        return replace(self, **updates)

    def to_dict(self) -> dict[str, str]:
        return {
            persisted: getattr(self, attr)
            for attr, persisted in _EVIDENCE_KEYS.items()
            if getattr(self, attr) is not None
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RuntimeEvidence:
        if not isinstance(data, Mapping):
            raise TypeError("runtimeEvidence must be an object")
        return cls(**{attr: data.get(persisted) for attr, persisted in _EVIDENCE_KEYS.items()})


@dataclass(frozen=True)
class ActionManifest:
    """Display-only policy snapshot taken at creation time."""

    limit_check: bool
    approval_required: bool
    reporting_enabled: bool

    def to_dict(self) -> dict[str, bool]:
        return {
            "limitCheck": self.limit_check,
            "approvalRequired": self.approval_required,
            "reportingEnabled": self.reporting_enabled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ActionManifest:
        if not isinstance(data, Mapping):
            raise TypeError("manifest must be an object")
        return cls(
            limit_check=bool(data["limitCheck"]),
            approval_required=bool(data["approvalRequired"]),
            reporting_enabled=bool(data["reportingEnabled"]),
        )


@dataclass(frozen=True)
class ActionPayload:
    """User-supplied request to create an action. Values are unvalidated."""

    type: Any
    amount: Any
    note: str = ""
    user_id: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ActionPayload:
        note = data.get("note") or ""
        return cls(
            type=data.get("type"),
            amount=data.get("amount"),
            note=note.strip() if isinstance(note, str) else str(note),
            user_id=str(data.get("userId") or data.get("user_id") or ""),
        )


@dataclass(frozen=True)
class TreasuryAction:
    id: str
    reference_id: str
    type: ActionType
    amount: float
    note: str
    status: ActionStatus
    created_at: datetime
    runtime_evidence: RuntimeEvidence
    manifest: ActionManifest
    api_log: tuple[str, ...] = field(default_factory=tuple)
    approved_at: datetime | None = None
    submitted_at: datetime | None = None
    failed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "referenceId": self.reference_id,
            "type": self.type.value,
            "amount": self.amount,
            "note": self.note,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "apiLog": list(self.api_log),
            "runtimeEvidence": self.runtime_evidence.to_dict(),
            "manifest": self.manifest.to_dict(),
        }
        for key, value in (
            ("approvedAt", self.approved_at),
            ("submittedAt", self.submitted_at),
            ("failedAt", self.failed_at),
        ):
            if value is not None:
                data[key] = value.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TreasuryAction:
        """Rebuild an action from its persisted form.

        Raises ``KeyError``, ``ValueError`` or ``TypeError`` on malformed input.
        """
        if not isinstance(data, Mapping):
            raise TypeError("action entry must be an object")
        action_type = ActionType.parse(data["type"])
        if action_type is None:
            raise ValueError(f"Unknown action type: {data['type']!r}")
        api_log = data.get("apiLog") or []
        if not isinstance(api_log, list):
            raise TypeError("apiLog must be a list")
        return cls(
            id=str(data["id"]),
            reference_id=str(data["referenceId"]),
            type=action_type,
            amount=float(data["amount"]),
            note=str(data.get("note") or ""),
            status=ActionStatus(data["status"]),
            created_at=parse_iso(data["createdAt"]),
            runtime_evidence=RuntimeEvidence.from_dict(data.get("runtimeEvidence") or {}),
            manifest=ActionManifest.from_dict(data["manifest"]),
            api_log=tuple(str(entry) for entry in api_log),
            approved_at=_optional_time(data.get("approvedAt")),
            submitted_at=_optional_time(data.get("submittedAt")),
            failed_at=_optional_time(data.get("failedAt")),
        )


def _optional_time(value: Any) -> datetime | None:
    if value is None:
        return None
    return parse_iso(value)
