"""
Idempotency keys for externally delivered events.

A payment gateway delivers at least once.  Each delivery is reduced to a
key of the form ``<producer>:<event_type>:<reference>`` and stored under
a unique constraint, so a redelivered reference is recognised after a
restart as well as within one process.
"""

from uuid import UUID

_SEPARATOR = ":"

PAYMENT_PRODUCER = "payment"


def generate_idempotency_key(producer: str, event_type: str, event_id: UUID | str) -> str:
    """
    >>> generate_idempotency_key("payment", "escrow.credit", "ORDER-1")
    'payment:escrow.credit:ORDER-1'
    """
    return _SEPARATOR.join((producer, event_type, str(event_id)))


def payment_idempotency_key(event_type: str, payment_reference: str) -> str:
    return generate_idempotency_key(PAYMENT_PRODUCER, event_type, payment_reference)


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key back into (producer, event_type, event_id).

    Gateway references may contain colons, so only the first two
    separators count.

    Raises:
        ValueError: If the key does not have three parts.
    """
    producer, sep1, rest = key.partition(_SEPARATOR)
    event_type, sep2, event_id = rest.partition(_SEPARATOR)
    if not (sep1 and sep2):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return producer, event_type, event_id
