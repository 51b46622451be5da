"""Identifier generators for actions and evidence."""

from __future__ import annotations

import secrets
import string
import uuid
from datetime import datetime

from treasury_actions.utils.time import epoch_ms, utc_now

_BASE36_UPPER = string.digits + string.ascii_uppercase


def _random_token(length: int) -> str:
    return "".join(secrets.choice(_BASE36_UPPER) for _ in range(length))


def generate_action_id() -> str:
    return str(uuid.uuid4())


def generate_reference_id(today: datetime | None = None) -> str:
    """Return ``TRX-TREASURY-YYYYMMDD-NNNN``.

    The four-digit suffix is random and not checked against existing actions,
    so two actions created on the same day can share a reference id.
    """
    day = (today or utc_now()).strftime("%Y%m%d")
    suffix = 1000 + secrets.randbelow(9000)
    return f"TRX-TREASURY-{day}-{suffix}"


def generate_freeze_id() -> str:
    return f"FREEZE-{epoch_ms()}-{_random_token(9)}"


def generate_release_id() -> str:
    return f"RELEASE-{epoch_ms()}-{_random_token(9)}"


def generate_testnet_payment_id() -> str:
    return f"TESTNET-PAY-{epoch_ms()}-{_random_token(9)}"


def generate_testnet_tx_id() -> str:
    return f"TESTNET-TX-{epoch_ms()}-{_random_token(13)}"
