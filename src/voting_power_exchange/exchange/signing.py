"""
Exchange Authorization - EIP-712 digests and signature verification

An intent is authorised when its EIP-712 digest was signed by the
requester. The domain (name, version, chain id, verifying contract) pins
the signature to one exchange deployment.

Two verification strategies share the SignatureVerifier protocol:
- EOASignatureVerifier: ECDSA public-key recovery (plain key pairs)
- ContractSignatureVerifier: ERC-1271 delegation to a programmable account

AuthorizationVerifier picks one per requester: registered smart accounts
are asked, everyone else must produce an ECDSA signature.
"""

from typing import Any, Protocol

from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak
from pydantic import BaseModel, Field, field_validator

from voting_power_exchange.exchange.addresses import normalize_address
from voting_power_exchange.exchange.models import ExchangeIntent
from voting_power_exchange.kernel.errors import InvalidSignature
from voting_power_exchange.kernel.logging import get_logger

logger = get_logger(__name__)

EXCHANGE_TYPE = "Exchange(address sender,uint256 amount,bytes32 nonce,uint256 expiration)"
EXCHANGE_TYPEHASH = keccak(text=EXCHANGE_TYPE)

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_HALF_N = SECP256K1_N // 2

_EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

_EXCHANGE_FIELDS = [
    {"name": "sender", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
    {"name": "expiration", "type": "uint256"},
]


class ExchangeDomain(BaseModel):
    """EIP-712 domain of one exchange deployment"""

    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    chain_id: int = Field(ge=1)
    verifying_contract: str

    model_config = {"frozen": True}

    @field_validator("verifying_contract", mode="before")
    @classmethod
    def _checksum(cls, value: Any) -> str:
        return normalize_address(value)

    def as_typed_data(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def build_exchange_typed_data(intent: ExchangeIntent, domain: ExchangeDomain) -> dict[str, Any]:
    """
    Full EIP-712 structure for an intent (the signature field is not signed)

    Wallets and eth_account.Account.sign_typed_data accept this dict as is.
    """
    return {
        "types": {
            "EIP712Domain": _EIP712_DOMAIN_FIELDS,
            "Exchange": _EXCHANGE_FIELDS,
        },
        "primaryType": "Exchange",
        "domain": domain.as_typed_data(),
        "message": {
            "sender": intent.requester,
            "amount": intent.amount,
            "nonce": intent.nonce,
            "expiration": intent.expiration,
        },
    }


def encode_exchange(intent: ExchangeIntent, domain: ExchangeDomain) -> SignableMessage:
    """EIP-191 version 0x01 signable message for an intent"""
    return encode_typed_data(full_message=build_exchange_typed_data(intent, domain))


def signable_digest(message: SignableMessage) -> bytes:
    """keccak256(0x19 || version || header || body)"""
    return keccak(b"\x19" + message.version + message.header + message.body)


def exchange_digest(intent: ExchangeIntent, domain: ExchangeDomain) -> bytes:
    """keccak256(0x1901 || domainSeparator || hashStruct(Exchange))"""
    return signable_digest(encode_exchange(intent, domain))


def split_signature(signature: bytes) -> tuple[int, int, int] | None:
    """
    Split a 65-byte (r, s, v) or 64-byte EIP-2098 (r, vs) signature

    Returns:
        (v, r, s) with v normalised to 0/1, or None when malformed or
        malleable (s in the upper half of the curve order)
    """
    if len(signature) == 65:
        r = int.from_bytes(signature[0:32], "big")
        s = int.from_bytes(signature[32:64], "big")
        v = signature[64]
        if v >= 27:
            v -= 27
    elif len(signature) == 64:
        r = int.from_bytes(signature[0:32], "big")
        vs = int.from_bytes(signature[32:64], "big")
        s = vs & ((1 << 255) - 1)
        v = vs >> 255
    else:
        return None

    if v not in (0, 1) or not 0 < r < SECP256K1_N or not 0 < s <= _HALF_N:
        return None
    return v, r, s


def recover_signer(digest: bytes, signature: bytes) -> str | None:
    """
    Recover the checksummed address that signed digest

    Returns:
        Signer address, or None if the signature is malformed
    """
    parts = split_signature(signature)
    if parts is None:
        return None
    try:
        public_key = keys.Signature(vrs=parts).recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError):
        return None
    return public_key.to_checksum_address()


class SignatureVerifier(Protocol):
    """Capability: decide whether signer authorised digest"""

    def verify(self, signer: str, digest: bytes, signature: bytes) -> bool:
        ...


class SmartAccount(Protocol):
    """A programmable account implementing ERC-1271 isValidSignature"""

    address: str

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        """Return ERC1271_MAGIC_VALUE when signature is valid for digest"""
        ...


class EOASignatureVerifier:
    """Direct verification: the recovered ECDSA signer must equal signer"""

    def verify(self, signer: str, digest: bytes, signature: bytes) -> bool:
        recovered = recover_signer(digest, signature)
        return recovered is not None and recovered == normalize_address(signer)


class SmartAccountRegistry:
    """
    Known programmable accounts, keyed by checksummed address

    Stands in for "this address has code" on a chain: registered
    addresses validate signatures through their own logic.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, SmartAccount] = {}

    def register(self, account: SmartAccount) -> None:
        self._accounts[normalize_address(account.address)] = account

    def get(self, address: str) -> SmartAccount | None:
        return self._accounts.get(normalize_address(address))

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.get(address) is not None

    def __len__(self) -> int:
        return len(self._accounts)


class ContractSignatureVerifier:
    """Delegated verification through ERC-1271 isValidSignature"""

    def __init__(self, registry: SmartAccountRegistry) -> None:
        self.registry = registry

    def verify(self, signer: str, digest: bytes, signature: bytes) -> bool:
        account = self.registry.get(signer)
        if account is None:
            return False
        try:
            result = account.is_valid_signature(digest, signature)
        except Exception as e:
            # A reverting isValidSignature means "not valid", as on-chain
            logger.warning(
                "Smart account signature check raised",
                account=account.address,
                error=type(e).__name__,
            )
            return False
        return result == ERC1271_MAGIC_VALUE


class OwnedSmartAccount:
    """
    Reference ERC-1271 account controlled by a single owner key

    Valid when the signature is the owner's ECDSA signature of the digest.
    """

    def __init__(self, address: str, owner: str) -> None:
        self.address = normalize_address(address)
        self.owner = normalize_address(owner)

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        if recover_signer(digest, signature) == self.owner:
            return ERC1271_MAGIC_VALUE
        return b"\xff\xff\xff\xff"


class AuthorizationVerifier:
    """
    Verifies that an ExchangeIntent was authored by its requester

    Expiration is checked separately (is_expired) so the engine can reject
    stale intents before spending effort on signature recovery.
    """

    def __init__(
        self,
        domain: ExchangeDomain,
        smart_accounts: SmartAccountRegistry | None = None,
    ) -> None:
        self.domain = domain
        self.smart_accounts = smart_accounts or SmartAccountRegistry()
        self._direct = EOASignatureVerifier()
        self._delegated = ContractSignatureVerifier(self.smart_accounts)

    def domain_separator(self) -> bytes:
        return encode_exchange(
            ExchangeIntent(
                requester=self.domain.verifying_contract,
                amount=0,
                nonce=bytes(32),
                expiration=0,
            ),
            self.domain,
        ).header

    def digest(self, intent: ExchangeIntent) -> bytes:
        return exchange_digest(intent, self.domain)

    def verifier_for(self, requester: str) -> SignatureVerifier:
        if requester in self.smart_accounts:
            return self._delegated
        return self._direct

    def verify(self, intent: ExchangeIntent) -> bool:
        return self.verifier_for(intent.requester).verify(
            intent.requester, self.digest(intent), intent.signature
        )

    def require_valid(self, intent: ExchangeIntent) -> bytes:
        """
        Verify the intent's signature

        Returns:
            The digest that was verified

        Raises:
            InvalidSignature: Carrying the digest and the offending signature
        """
        digest = self.digest(intent)
        verifier = self.verifier_for(intent.requester)
        if not verifier.verify(intent.requester, digest, intent.signature):
            raise InvalidSignature(digest, intent.signature)
        return digest

    @staticmethod
    def is_expired(intent: ExchangeIntent, now: int) -> bool:
        return intent.expiration < now
