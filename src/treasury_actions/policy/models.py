"""Action configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from treasury_actions.domain.models import ActionType


class ActionConfiguration(BaseModel):
    """Approval policy and descriptive metadata for one action type."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: ActionType
    requires_approval: bool = Field(default=True, alias="requiresApproval")
    description: str = Field(default="")
    category: str = Field(default="")

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "requiresApproval": self.requires_approval,
            "description": self.description,
            "category": self.category,
        }


class ActionTableConfig(BaseModel):
    version: int = Field(default=1)
    actions: list[ActionConfiguration] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _ensure_list(cls, v: Any) -> list:
        if v is None:
            return []
        return v

    @field_validator("actions")
    @classmethod
    def _reject_duplicates(cls, v: list[ActionConfiguration]) -> list[ActionConfiguration]:
        seen: set[ActionType] = set()
        for entry in v:
            if entry.type in seen:
                raise ValueError(f"Duplicate action type: {entry.type.value}")
            seen.add(entry.type)
        return v

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "ActionTableConfig":
        return cls.model_validate(data)
