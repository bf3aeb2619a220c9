"""
Exchange Module Invariants - admission gates for signed intents

Pure functions, evaluated in a fixed order by the exchange handler. Each
raises a typed ExchangeRejected subclass; none of them touches state, so a
rejected request never consumes a nonce or moves a balance.

Gate order:
1. Requester is not the zero address
2. Amount reaches the minimum exchangeable amount
3. Nonce not yet consumed
4. Intent not expired
5. Holder below the voting power cap
6. Signature authored by the requester
"""

from voting_power_exchange.exchange.addresses import is_zero_address
from voting_power_exchange.exchange.curve import MINIMUM_EXCHANGE_AMOUNT
from voting_power_exchange.exchange.models import ExchangeIntent
from voting_power_exchange.exchange.signing import AuthorizationVerifier
from voting_power_exchange.kernel.errors import (
    AddressIsZero,
    AmountIsTooSmall,
    InvalidNonce,
    LevelIsLowerThanExisting,
    SignatureExpired,
    VotingPowerIsHigherThanCap,
)


def validate_requester_not_zero(intent: ExchangeIntent) -> None:
    """
    Raises:
        AddressIsZero: If the requester is 0x000...0
    """
    if is_zero_address(intent.requester):
        raise AddressIsZero("requester")


def validate_minimum_amount(
    intent: ExchangeIntent, minimum: int = MINIMUM_EXCHANGE_AMOUNT
) -> None:
    """
    Reject burns too small for the curve's fixed-point precision

    Raises:
        AmountIsTooSmall: If amount < minimum
    """
    if intent.amount < minimum:
        raise AmountIsTooSmall(intent.amount, minimum)


def validate_nonce_unused(intent: ExchangeIntent, is_consumed: bool) -> None:
    """
    Args:
        intent: Intent being admitted
        is_consumed: ReplayGuard lookup for (requester, nonce)

    Raises:
        InvalidNonce: If the pair was already consumed
    """
    if is_consumed:
        raise InvalidNonce(intent.requester, intent.nonce)


def validate_not_expired(intent: ExchangeIntent, now: int) -> None:
    """
    An intent expiring exactly now is still valid; one second later it is not

    Raises:
        SignatureExpired: If expiration < now
    """
    if AuthorizationVerifier.is_expired(intent, now):
        raise SignatureExpired(intent.expiration, now)


def validate_below_cap(current_voting_power: int, cap: int) -> None:
    """
    A holder at or above the cap cannot receive even a partial grant

    Raises:
        VotingPowerIsHigherThanCap: If current_voting_power >= cap
    """
    if current_voting_power >= cap:
        raise VotingPowerIsHigherThanCap(current_voting_power, cap)


def validate_signature(intent: ExchangeIntent, verifier: AuthorizationVerifier) -> bytes:
    """
    Returns:
        The verified EIP-712 digest

    Raises:
        InvalidSignature: If the requester did not sign this intent
    """
    return verifier.require_valid(intent)


def validate_cap_increase(new_cap: int, current_cap: int) -> None:
    """
    The cap only ever rises; setting the same value again is also rejected

    Raises:
        LevelIsLowerThanExisting: If new_cap <= current_cap
    """
    if new_cap <= current_cap:
        raise LevelIsLowerThanExisting(new_cap, current_cap)
