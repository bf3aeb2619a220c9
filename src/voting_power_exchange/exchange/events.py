"""
Exchange Module Events - immutable facts recorded in the event log

uint256 quantities are serialized as decimal strings: JSON numbers lose
precision above 2**53 in most consumers, and 18-decimal amounts pass that
after roughly 0.009 tokens.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

Uint256 = Annotated[
    int,
    Field(ge=0, le=2**256 - 1),
    PlainSerializer(str, return_type=str, when_used="json"),
]

HOLDER_STREAM_TYPE = "holder"
CAP_STREAM_TYPE = "cap_policy"
CAP_STREAM_ID = "voting-power-cap"


def holder_stream_id(requester: str) -> str:
    """Stream holding one requester's nonce and settlement events"""
    return f"holder:{requester}"


class NonceConsumed(BaseModel):
    """
    A (requester, nonce) pair was spent

    Recorded in the same unit of work as the settlement it authorised,
    so a rolled-back exchange never leaves a consumed nonce behind.
    """

    requester: str
    nonce: str  # 0x-prefixed 32-byte hex
    expiration: Uint256
    digest: str
    consumed_at: datetime


class VotingPowerReceived(BaseModel):
    """
    A holder burned utility tokens and received voting power

    requested_amount may exceed burn_amount on a partial fill: only the
    exact curve cost of reaching the cap is burned.
    """

    requester: str
    operator: str | None
    requested_amount: Uint256
    burn_amount: Uint256
    granted_power: Uint256
    partial_fill: bool
    previous_burned_amount: Uint256
    previous_voting_power: Uint256
    cap: Uint256
    received_at: datetime


class VotingPowerCapSet(BaseModel):
    """The per-holder voting power cap was raised"""

    previous_cap: Uint256
    new_cap: Uint256
    set_at: datetime
    set_by: str | None


EXCHANGE_EVENT_TYPES = {
    "NonceConsumed": NonceConsumed,
    "VotingPowerReceived": VotingPowerReceived,
    "VotingPowerCapSet": VotingPowerCapSet,
}
