"""
Identifier generation

Event IDs are time-ordered UUIDv7 values so the event log sorts naturally.
Exchange command IDs are derived from (requester, nonce): the same signed
intent always maps to the same idempotency key in the event store.
"""

import hashlib
import secrets
import time
import uuid


def generate_id() -> str:
    """
    Generate a UUIDv7 string (48-bit millisecond timestamp, version 7,
    RFC 4122 variant, 74 random bits).

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    value = (timestamp_ms << 80) | (0x7 << 76) | (rand_a << 64) | (0b10 << 62) | rand_b
    return str(uuid.UUID(int=value))


def exchange_command_id(requester: str, nonce: bytes) -> str:
    """
    Deterministic command ID for an exchange intent

    Args:
        requester: Checksummed requester address
        nonce: 32-byte intent nonce

    Returns:
        "exchange-" followed by the first 32 hex chars of sha256(requester || nonce)
    """
    digest = hashlib.sha256(requester.lower().encode() + nonce).hexdigest()
    return f"exchange-{digest[:32]}"
