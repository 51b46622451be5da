from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from treasury_actions.domain.models import ActionType
from treasury_actions.errors import ActionTypeNotFoundError, ActionValidationError
from treasury_actions.policy.loader import load_action_table
from treasury_actions.policy.models import ActionConfiguration, ActionTableConfig
from treasury_actions.policy.table import ActionConfigTable, default_action_table


def test_default_table_covers_every_action_type() -> None:
    table = default_action_table()

    assert len(table) == len(ActionType)
    for action_type in ActionType:
        assert action_type.value in table
        assert table.lookup(action_type).requires_approval is True


def test_lookup_unknown_type_raises_validation_error() -> None:
    table = default_action_table()

    with pytest.raises(ActionTypeNotFoundError) as exc_info:
        table.lookup("Payroll")

    assert isinstance(exc_info.value, ActionValidationError)
    assert "Payroll" in str(exc_info.value)
    assert table.find("Payroll") is None


def test_table_rejects_duplicate_entries() -> None:
    entry = ActionConfiguration(type=ActionType.EMERGENCY_FUND)
    with pytest.raises(ValueError, match="Duplicate action type"):
        ActionConfigTable([entry, entry])


def test_configuration_to_dict() -> None:
    config = default_action_table().lookup("Budget Transfer")
    assert config.to_dict() == {
        "type": "Budget Transfer",
        "requiresApproval": True,
        "description": "Operational data entry for budget transfer tracking",
        "category": "Budget Operations",
    }


def test_configuration_accepts_alias() -> None:
    config = ActionConfiguration.model_validate(
        {"type": "Strategic Reserve", "requiresApproval": False}
    )
    assert config.requires_approval is False


def test_table_config_rejects_duplicates() -> None:
    with pytest.raises(ValidationError):
        ActionTableConfig.from_yaml(
            {"actions": [{"type": "Emergency Fund"}, {"type": "Emergency Fund"}]}
        )


def test_load_action_table_defaults_without_path() -> None:
    assert len(load_action_table(None)) == len(ActionType)


def test_load_action_table_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "action_types.yaml"
    path.write_text(
        "version: 1\n"
        "actions:\n"
        "  - type: Emergency Fund\n"
        "    requiresApproval: false\n"
        "    category: Emergency Response\n"
        "  - type: Budget Transfer\n",
        encoding="utf-8",
    )

    table = load_action_table(str(path))

    assert len(table) == 2
    assert table.lookup("Emergency Fund").requires_approval is False
    assert table.lookup("Budget Transfer").requires_approval is True
    assert "Reserve Allocation" not in table


def test_load_action_table_empty_file_yields_empty_table(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert len(load_action_table(str(path))) == 0


def test_load_action_table_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_action_table(str(tmp_path / "missing.yaml"))


def test_load_action_table_unknown_type(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("actions:\n  - type: Payroll\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_action_table(str(path))
