"""
Test Helper Functions - Builders for signed intents

Keeps tests readable: a test states the amount and nonce it cares about
and the builder fills in expiration, domain and signature.
"""

from eth_account.signers.local import LocalAccount
from eth_keys import keys

from voting_power_exchange.exchange.models import ExchangeIntent
from voting_power_exchange.exchange.signing import ExchangeDomain, encode_exchange

TOKEN = 10**18

# 2025-01-15 12:00:00 UTC, matching the test_time fixture
NOW = 1736942400
ONE_HOUR_LATER = NOW + 3600

OPERATOR = "0x" + "0e" * 20
MANAGER = "0x" + "4a" * 20
ADMIN = "0x" + "ad" * 20
UTILITY_TOKEN = "0x" + "01" * 20
GOVERNANCE_TOKEN = "0x" + "02" * 20
SMART_ACCOUNT = "0x" + "5a" * 20


def make_nonce(n: int) -> bytes:
    """32-byte nonce from a small integer"""
    return n.to_bytes(32, "big")


def sign_intent(
    account: LocalAccount,
    domain: ExchangeDomain,
    amount: int,
    nonce: bytes | int = 1,
    expiration: int = ONE_HOUR_LATER,
    requester: str | None = None,
) -> ExchangeIntent:
    """
    Builder for an ExchangeIntent signed by account

    Args:
        account: Signing key
        domain: EIP-712 domain the signature is bound to
        amount: Utility burn in base units
        nonce: 32 bytes, or a small integer expanded by make_nonce
        expiration: Unix timestamp (default: one hour after NOW)
        requester: Claimed requester (defaults to the signer's address)

    Example:
        >>> intent = sign_intent(alice, domain, 25 * TOKEN, nonce=7)
    """
    if isinstance(nonce, int):
        nonce = make_nonce(nonce)
    unsigned = ExchangeIntent(
        requester=requester or account.address,
        amount=amount,
        nonce=nonce,
        expiration=expiration,
    )
    signed = account.sign_message(encode_exchange(unsigned, domain))
    return unsigned.with_signature(bytes(signed.signature))


def sign_digest(account: LocalAccount, digest: bytes) -> bytes:
    """Raw 65-byte (r, s, v) signature of a 32-byte digest, v in {0, 1}"""
    return keys.PrivateKey(account.key).sign_msg_hash(digest).to_bytes()
