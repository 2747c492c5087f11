"""
SHA-256 helpers for signature digests and configuration checksums.

Both must come out identical on every process and database backend, so
payloads are hashed through one canonical JSON form.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _canonical_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        # "1.50" and "1.5" are the same amount
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Cannot canonicalize value of type {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Compact JSON with sorted keys; raises TypeError on unknown types."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def _sha256_hex(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256_hex(canonicalize_json(payload).encode("utf-8"))


def hash_signature(signature: str | bytes) -> str:
    """
    Digest of a submitted signature (typically a base64 image data URL).

    Contracts store only this digest, never the signature image.
    """
    raw = signature.encode("utf-8") if isinstance(signature, str) else signature
    return _sha256_hex(raw)
