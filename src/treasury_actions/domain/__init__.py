"""Treasury action domain model."""

from treasury_actions.domain.models import (
    STATUS_FLOW,
    TERMINAL_STATUSES,
    ActionManifest,
    ActionPayload,
    ActionStatus,
    ActionType,
    RuntimeEvidence,
    TreasuryAction,
    can_transition,
)

__all__ = [
    "STATUS_FLOW",
    "TERMINAL_STATUSES",
    "ActionManifest",
    "ActionPayload",
    "ActionStatus",
    "ActionType",
    "RuntimeEvidence",
    "TreasuryAction",
    "can_transition",
]
