"""Static lookup table from action type to its configuration."""

from __future__ import annotations

from collections.abc import Iterable

from treasury_actions.domain.models import ActionType
from treasury_actions.errors import ActionTypeNotFoundError
from treasury_actions.policy.models import ActionConfiguration

DEFAULT_ACTION_CONFIGS: tuple[ActionConfiguration, ...] = (
    ActionConfiguration(
        type=ActionType.RESERVE_ALLOCATION,
        requires_approval=True,
        description="Operational data entry for reserve allocation tracking",
        category="Reserve Management",
    ),
    ActionConfiguration(
        type=ActionType.BUDGET_TRANSFER,
        requires_approval=True,
        description="Operational data entry for budget transfer tracking",
        category="Budget Operations",
    ),
    ActionConfiguration(
        type=ActionType.OPERATIONAL_EXPENSE,
        requires_approval=True,
        description="Operational data entry for expense tracking",
        category="Daily Operations",
    ),
    ActionConfiguration(
        type=ActionType.EMERGENCY_FUND,
        requires_approval=True,
        description="Operational data entry for emergency fund tracking",
        category="Emergency Response",
    ),
    ActionConfiguration(
        type=ActionType.STRATEGIC_RESERVE,
        requires_approval=True,
        description="Operational data entry for strategic reserve tracking",
        category="Strategic Planning",
    ),
)


class ActionConfigTable:
    """Read-only mapping, fixed once constructed."""

    def __init__(self, entries: Iterable[ActionConfiguration]) -> None:
        self._entries: dict[ActionType, ActionConfiguration] = {}
        for entry in entries:
            if entry.type in self._entries:
                raise ValueError(f"Duplicate action type: {entry.type.value}")
            self._entries[entry.type] = entry

    def find(self, action_type: object) -> ActionConfiguration | None:
        parsed = ActionType.parse(action_type)
        if parsed is None:
            return None
        return self._entries.get(parsed)

    def lookup(self, action_type: object) -> ActionConfiguration:
        config = self.find(action_type)
        if config is None:
            raise ActionTypeNotFoundError(action_type)
        return config

    def list_all(self) -> list[ActionConfiguration]:
        return list(self._entries.values())

    def __contains__(self, action_type: object) -> bool:
        return self.find(action_type) is not None

    def __len__(self) -> int:
        return len(self._entries)


def default_action_table() -> ActionConfigTable:
    return ActionConfigTable(DEFAULT_ACTION_CONFIGS)
