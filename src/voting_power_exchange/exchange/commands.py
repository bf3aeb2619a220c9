"""
Exchange Module Commands - intentions submitted by privileged operators

Exchange carries a requester's signed intent, submitted by an exchanger.
SetVotingPowerCap raises the per-holder cap, submitted by a manager.
"""

from pydantic import BaseModel, Field

from voting_power_exchange.exchange.curve import UINT256_MAX
from voting_power_exchange.exchange.models import ExchangeIntent


class Exchange(BaseModel):
    """
    Burn utility tokens for voting power on behalf of a signed intent

    The operator funds the burn from their pre-approved utility balance;
    the economic cost lands on the requester's curve position.
    """

    intent: ExchangeIntent


class SetVotingPowerCap(BaseModel):
    """
    Raise the voting power cap

    Requirements:
    - new_cap strictly greater than the current cap
    """

    new_cap: int = Field(..., ge=0, le=UINT256_MAX)
