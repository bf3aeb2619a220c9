"""
Fixed-Point Bonding Curve - cumulative burn <-> voting power

All arithmetic is unsigned integer arithmetic on an 18-decimal fixed-point
scale, bounded to the uint256 range so results match a 256-bit
implementation bit for bit. No floating point anywhere.

Forward curve (x = cumulative utility burned, v = voting power, both in
whole tokens):

    v = (2 * sqrt(306.25 + 30x) - 5) / 30 - 1

Inverse (exact polynomial):

    x = (15v^2 + 35v) / 2

The forward curve is concave, so each additional token burned buys less
voting power than the one before it: splitting a burn across many fresh
accounts is what the cap and the curve together make expensive.

Truncation floor: isqrt() only steps by one unit once 30x grows by about
2 * 17.5e9, so burns below ~1.2e9 base units (1.2e-9 tokens) yield zero
voting power. Downstream accounting depends on this exact truncation.
"""

from voting_power_exchange.kernel.errors import CurveOverflow, CurveUnderflow

PRECISION = 10**18
PRECISION_FIX = 10**9
MINIMUM_EXCHANGE_AMOUNT = 10**18
UINT256_MAX = 2**256 - 1

# 306.25 * PRECISION
_CURVE_OFFSET = 30625 * 10**16


def _check_uint256(operation: str, value: int) -> int:
    if value < 0:
        raise ValueError(f"{operation}: negative input {value}")
    if value > UINT256_MAX:
        raise CurveOverflow(operation, value)
    return value


def _checked_sub(operation: str, lhs: int, rhs: int) -> int:
    if rhs > lhs:
        raise CurveUnderflow(operation, lhs, rhs)
    return lhs - rhs


def isqrt(n: int) -> int:
    """
    Integer square root: the largest r with r * r <= n

    Newton's iteration starting above the root; it decreases
    monotonically and stops at floor(sqrt(n)).
    """
    if n < 0:
        raise ValueError(f"isqrt of negative number {n}")
    if n < 2:
        return n
    x = 1 << ((n.bit_length() + 1) // 2)
    while True:
        y = (x + n // x) // 2
        if y >= x:
            return x
        x = y


def voting_power_from_burned(burned_amount: int) -> int:
    """
    Voting power held after burning burned_amount utility units in total

    Args:
        burned_amount: Cumulative utility burned (18 decimals)

    Returns:
        Voting power (18 decimals), truncated toward zero
    """
    _check_uint256("voting_power_from_burned", burned_amount)
    inner = _check_uint256("voting_power_from_burned", _CURVE_OFFSET + 30 * burned_amount)
    # sqrt(a * 1e18) == sqrt(a) * 1e9; PRECISION_FIX restores the other 1e9
    scaled_root = _check_uint256(
        "voting_power_from_burned", isqrt(inner) * 2 * PRECISION_FIX
    )
    numerator = _checked_sub("voting_power_from_burned", scaled_root, 5 * PRECISION)
    return _checked_sub("voting_power_from_burned", numerator // 30, PRECISION)


def burned_from_voting_power(voting_power: int) -> int:
    """
    Cumulative utility burn required to hold voting_power

    Args:
        voting_power: Voting power (18 decimals)

    Returns:
        Cumulative burn (18 decimals)
    """
    _check_uint256("burned_from_voting_power", voting_power)
    square = _check_uint256("burned_from_voting_power", 15 * voting_power * voting_power)
    total = _check_uint256(
        "burned_from_voting_power", square // PRECISION + 35 * voting_power
    )
    return total // 2


def incremental_voting_power(delta_burned: int, current_burned: int) -> int:
    """
    Voting power gained by burning delta_burned on top of current_burned

    Args:
        delta_burned: Additional burn (18 decimals)
        current_burned: Holder's true cumulative burn so far

    Raises:
        CurveUnderflow: Never for consistent inputs; signals a caller bug
    """
    _check_uint256("incremental_voting_power", delta_burned)
    _check_uint256("incremental_voting_power", current_burned)
    after = voting_power_from_burned(
        _check_uint256("incremental_voting_power", current_burned + delta_burned)
    )
    before = voting_power_from_burned(current_burned)
    return _checked_sub("incremental_voting_power", after, before)


def incremental_burned_amount(delta_voting_power: int, current_voting_power: int) -> int:
    """
    Exact burn cost of raising voting power by delta_voting_power

    Used for partial fills: the cost of exactly reaching the cap.

    Args:
        delta_voting_power: Voting power to add (18 decimals)
        current_voting_power: Holder's true voting power so far
    """
    _check_uint256("incremental_burned_amount", delta_voting_power)
    _check_uint256("incremental_burned_amount", current_voting_power)
    after = burned_from_voting_power(
        _check_uint256(
            "incremental_burned_amount", current_voting_power + delta_voting_power
        )
    )
    before = burned_from_voting_power(current_voting_power)
    return _checked_sub("incremental_burned_amount", after, before)
