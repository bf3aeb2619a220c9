"""
Kernel - Event log, clock, errors and operational plumbing

The kernel holds everything the exchange needs that is not exchange logic:
the append-only event store, time providers, identifiers, typed errors,
logging, metrics and settings.

Fun fact: a bank's general ledger and an Ethereum block share one rule -
entries are never edited, only followed by newer entries. The event store
applies the same rule to consumed nonces and cap updates.
"""

from voting_power_exchange.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    InvariantViolation,
    StreamVersionConflict,
    VPXError,
)
from voting_power_exchange.kernel.events import Event
from voting_power_exchange.kernel.ids import exchange_command_id, generate_id
from voting_power_exchange.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    "exchange_command_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    # Errors
    "VPXError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
    "InvariantViolation",
]
