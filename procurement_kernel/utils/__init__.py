"""Utility modules for the procurement kernel."""

from procurement_kernel.utils.hashing import canonicalize_json, hash_payload, hash_signature
from procurement_kernel.utils.idempotency import (
    generate_idempotency_key,
    payment_idempotency_key,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "hash_signature",
    "generate_idempotency_key",
    "payment_idempotency_key",
]
