"""Loader for the optional action_types.yaml override."""

from __future__ import annotations

from pathlib import Path

import yaml

from treasury_actions.policy.models import ActionTableConfig
from treasury_actions.policy.table import ActionConfigTable, default_action_table


def load_action_table(path: str | None) -> ActionConfigTable:
    if path is None:
        return default_action_table()
    table_path = Path(path)
    if not table_path.exists():
        raise FileNotFoundError(f"Action types file not found: {table_path}")
    with table_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    config = ActionTableConfig.from_yaml(data)
    return ActionConfigTable(config.actions)
