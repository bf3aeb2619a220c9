"""
Base Event model for the exchange audit log

Every settled exchange and every cap change is recorded as an immutable
event. Replaying the log rebuilds the replay guard (consumed nonces) and the
cap policy, so both survive restarts without a separate state table.
"""

from datetime import datetime
from typing import TypeVar

from pydantic import BaseModel, Field

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class Event(BaseModel):
    """
    Base event class - all exchange events are stored in this envelope

    stream_id + version give optimistic locking per holder; command_id
    makes appends idempotent per signed intent.
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Aggregate identifier: 'holder:<address>' or 'voting-power-cap'",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate: 'holder' or 'cap_policy'",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'NonceConsumed', 'VotingPowerReceived', ...",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="Address of the operator or manager that submitted the command",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (JSON-serializable; uint256 values as strings)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "holder:0x2c7536E3605D9C16a7a3D7b1898e529396a65c23",
                    "stream_type": "holder",
                    "event_type": "VotingPowerReceived",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf",
                    "command_id": "exchange-5b0f3c1a9d7e4e2f8a6b1c0d9e8f7a6b",
                    "payload": {
                        "requester": "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23",
                        "burn_amount": "25000000000000000000",
                        "granted_power": "1000000000000000000",
                    },
                    "version": 2,
                }
            ]
        },
    }

    def payload_as(self, model: type[PayloadT]) -> PayloadT:
        """Decode the payload into its typed event model"""
        return model.model_validate(self.payload)


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory function for creating events with named parameters"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
