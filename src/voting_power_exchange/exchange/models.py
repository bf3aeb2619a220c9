"""
Exchange Domain Models - signed intents, quotes and receipts

Key concepts:
- ExchangeIntent: what the requester signed off-line (transient, used once)
- ExchangeQuote: what the curve and cap turn a request into (full or partial fill)
- ExchangeReceipt: what the facade returns after settlement
"""

from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator

from voting_power_exchange.exchange.addresses import (
    normalize_address,
    to_bytes,
    to_bytes32,
)
from voting_power_exchange.exchange.curve import (
    UINT256_MAX,
    incremental_burned_amount,
    incremental_voting_power,
)
from voting_power_exchange.kernel.errors import VotingPowerIsHigherThanCap
from voting_power_exchange.kernel.events import Event


class ExchangeIntent(BaseModel):
    """
    A requester's signed request to burn utility tokens for voting power

    The (requester, nonce) pair can be consumed at most once, ever.

    Attributes:
        requester: Address that signed the intent and receives voting power
        amount: Utility units the requester agrees to burn (18 decimals)
        nonce: 32-byte one-time token chosen by the requester
        expiration: Unix timestamp after which the intent is void
        signature: EIP-712 signature (65-byte ECDSA or a smart-account blob)
    """

    requester: str
    amount: int = Field(ge=0, le=UINT256_MAX)
    nonce: bytes
    expiration: int = Field(ge=0, le=UINT256_MAX)
    signature: bytes = b""

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "requester": "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23",
                    "amount": 25000000000000000000,
                    "nonce": "0x" + "ab" * 32,
                    "expiration": 1736940600,
                    "signature": "0x" + "00" * 65,
                }
            ]
        },
    }

    @field_validator("requester", mode="before")
    @classmethod
    def _checksum_requester(cls, value: Any) -> str:
        return normalize_address(value)

    @field_validator("nonce", mode="before")
    @classmethod
    def _nonce_bytes32(cls, value: Any) -> bytes:
        return to_bytes32(value)

    @field_validator("signature", mode="before")
    @classmethod
    def _signature_bytes(cls, value: Any) -> bytes:
        return to_bytes(value)

    @field_serializer("nonce", "signature")
    def _hex(self, value: bytes) -> str:
        return "0x" + value.hex()

    def with_signature(self, signature: bytes | str) -> "ExchangeIntent":
        """Copy of this intent carrying the given signature"""
        return ExchangeIntent(
            requester=self.requester,
            amount=self.amount,
            nonce=self.nonce,
            expiration=self.expiration,
            signature=signature,
        )


class ExchangeQuote(BaseModel):
    """
    Outcome of pricing a request against the curve and the cap

    burn_amount equals requested_amount on a full fill. On a partial fill
    granted_power is exactly the remaining headroom and burn_amount is the
    exact curve cost of that headroom.
    """

    requested_amount: int
    burn_amount: int
    granted_power: int
    partial_fill: bool
    current_burned_amount: int
    current_voting_power: int
    cap: int

    model_config = {"frozen": True}

    def headroom(self) -> int:
        """Voting power still available below the cap before this exchange"""
        return self.cap - self.current_voting_power


def quote_exchange(
    amount: int,
    current_burned_amount: int,
    current_voting_power: int,
    cap: int,
) -> ExchangeQuote:
    """
    Price an exchange: grant from the curve, clamp to the cap, recompute cost

    Args:
        amount: Requested utility burn
        current_burned_amount: Holder's cumulative burn so far
        current_voting_power: Holder's governance balance
        cap: Per-holder voting power cap

    Raises:
        VotingPowerIsHigherThanCap: If the holder has no headroom left
    """
    if current_voting_power >= cap:
        raise VotingPowerIsHigherThanCap(current_voting_power, cap)

    granted_power = incremental_voting_power(amount, current_burned_amount)
    burn_amount = amount
    partial_fill = False

    if current_voting_power + granted_power > cap:
        granted_power = cap - current_voting_power
        burn_amount = incremental_burned_amount(granted_power, current_voting_power)
        partial_fill = True

    return ExchangeQuote(
        requested_amount=amount,
        burn_amount=burn_amount,
        granted_power=granted_power,
        partial_fill=partial_fill,
        current_burned_amount=current_burned_amount,
        current_voting_power=current_voting_power,
        cap=cap,
    )


class ExchangeReceipt(BaseModel):
    """
    Result of a settled exchange

    Attributes:
        requester: Holder that received voting power
        operator: Exchanger that funded the burn
        quote: Pricing that was settled
        events: Events recorded for this exchange (NonceConsumed, VotingPowerReceived)
    """

    requester: str
    operator: str
    quote: ExchangeQuote
    events: list[Event]

    @property
    def burn_amount(self) -> int:
        return self.quote.burn_amount

    @property
    def granted_power(self) -> int:
        return self.quote.granted_power
