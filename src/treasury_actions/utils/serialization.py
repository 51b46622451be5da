"""JSON serialization utilities."""

from __future__ import annotations

import datetime
import decimal
import json
from enum import Enum


def json_default(obj: object) -> object:
    """JSON serializer for the non-native values that appear in action documents."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(payload: object) -> str:
    """Compact JSON, keeping non-ASCII text (log markers, currency signs) as is."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=json_default)
