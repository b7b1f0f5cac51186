"""Utility modules for the registrar kernel."""

from registrar_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
)
from registrar_kernel.utils.payload import normalize_payload, to_decimal

__all__ = [
    "generate_idempotency_key",
    "normalize_payload",
    "parse_idempotency_key",
    "to_decimal",
]
