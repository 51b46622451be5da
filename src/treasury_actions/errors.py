"""Error taxonomy for the treasury action service."""

from __future__ import annotations

from enum import Enum
from typing import Any


class TreasuryError(Exception):
    """Base class for all treasury action errors."""


class ValidationReason(str, Enum):
    INVALID_TYPE = "InvalidType"
    INVALID_AMOUNT = "InvalidAmount"


class ActionValidationError(TreasuryError):
    """Raised when an action payload fails validation. No state is mutated."""

    def __init__(self, message: str, reason: ValidationReason | None = None) -> None:
        self.reason = reason
        super().__init__(message)


class ActionTypeNotFoundError(ActionValidationError):
    """Raised when an action type has no entry in the configuration table."""

    def __init__(self, action_type: object) -> None:
        self.action_type = action_type
        super().__init__(f"Invalid action type: {action_type}", ValidationReason.INVALID_TYPE)


class ConfigurationError(TreasuryError):
    """Raised when a required server-side setting (such as the API key) is absent."""


class UpstreamError(TreasuryError):
    """Raised when the payment service answers with a non-success response."""

    def __init__(self, message: str, status_code: int, body: Any = None) -> None:
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(f"{message} (status {status_code})")


class InvalidTokenError(UpstreamError):
    """Raised when the payment service rejects a user authentication token."""

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__("Invalid authentication token", status_code, body)


class LifecycleError(TreasuryError):
    """An external signal reported cancellation or failure for an action."""


class SyncError(TreasuryError):
    """Persisted storage was unreadable or corrupt during reconciliation."""


class DuplicateActionError(TreasuryError):
    """Raised when inserting an action whose id is already in the store."""

    def __init__(self, action_id: str) -> None:
        self.action_id = action_id
        super().__init__(f"Action already exists: {action_id}")
