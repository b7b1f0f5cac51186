"""
Payload normalisation utilities.

Record payloads are stored as JSON.  Callers hand in Decimals, dates and
UUIDs; this module turns them into their JSON-safe string forms once, at
the store boundary, so what is read back equals what was stored.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Keep the caller's scale: "1500.00" stays "1500.00"
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def normalize_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a JSON-safe deep copy of ``payload``.

    Raises:
        TypeError: If ``payload`` is not a mapping or holds an
            unsupported value.
    """
    if not isinstance(payload, Mapping):
        raise TypeError(f"Payload must be a mapping, got {type(payload).__name__}")
    return json.loads(json.dumps(dict(payload), default=_json_serializer))


def to_decimal(value: Any) -> Decimal | None:
    """Read a number or numeric string as Decimal; None for anything else.

    Booleans are not amounts, and neither are NaN or infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return parsed if parsed.is_finite() else None
