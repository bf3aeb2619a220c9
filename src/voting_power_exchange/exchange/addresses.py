"""
Address and fixed-width byte helpers shared by models, signing and ledgers
"""

from eth_utils import decode_hex, is_address, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(value: str) -> str:
    """
    Validate an address and return its EIP-55 checksum form

    Raises:
        ValueError: If value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)


def is_zero_address(value: str) -> bool:
    return int(value, 16) == 0


def to_bytes(value: bytes | str) -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return decode_hex(value)
        except ValueError as e:
            raise ValueError(f"Invalid hex string: {value!r}") from e
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def to_bytes32(value: bytes | str) -> bytes:
    """Like to_bytes, but the result must be exactly 32 bytes"""
    raw = to_bytes(value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw
