"""
Tests for the fixed-point bonding curve

Exact values come straight from the closed forms:
    burned(v) = (15v^2 + 35v) / 2        (whole tokens)
    power(x)  = (2 * sqrt(306.25 + 30x) - 5) / 30 - 1

so burned(1) = 25, burned(99) = 75,240 and burned(100) = 76,750.
"""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from voting_power_exchange.exchange import curve
from voting_power_exchange.exchange.curve import (
    MINIMUM_EXCHANGE_AMOUNT,
    PRECISION,
    PRECISION_FIX,
    UINT256_MAX,
    burned_from_voting_power,
    incremental_burned_amount,
    incremental_voting_power,
    isqrt,
    voting_power_from_burned,
)
from voting_power_exchange.kernel.errors import CurveOverflow, CurveUnderflow

TOKEN = PRECISION

# One isqrt step moves the forward curve by 2 * PRECISION_FIX / 30 units
SQRT_STEP = 2 * PRECISION_FIX // 30 + 1

burns = st.integers(min_value=0, max_value=10**40)
powers = st.integers(min_value=0, max_value=10**30)


def test_constants() -> None:
    assert PRECISION == 10**18
    assert PRECISION_FIX == 10**9
    assert MINIMUM_EXCHANGE_AMOUNT == 10**18
    assert UINT256_MAX == 2**256 - 1


# =============================================================================
# Exact values
# =============================================================================


def test_zero_burn_gives_zero_power() -> None:
    assert voting_power_from_burned(0) == 0


def test_first_voting_power_costs_25_tokens() -> None:
    assert burned_from_voting_power(1 * TOKEN) == 25 * TOKEN
    assert voting_power_from_burned(25 * TOKEN) == 1 * TOKEN
    assert incremental_voting_power(25 * TOKEN, 0) == 1 * TOKEN


def test_hundred_voting_power_round_trip() -> None:
    assert burned_from_voting_power(100 * TOKEN) == 76_750 * TOKEN
    assert voting_power_from_burned(76_750 * TOKEN) == 100 * TOKEN


def test_cost_of_last_unit_below_hundred() -> None:
    """Reaching a cap of 100 from 99 costs burned(100) - burned(99)"""
    assert burned_from_voting_power(99 * TOKEN) == 75_240 * TOKEN
    assert incremental_burned_amount(1 * TOKEN, 99 * TOKEN) == 1_510 * TOKEN


def test_precision_floor() -> None:
    """Burns below ~1.17e9 base units truncate to zero voting power"""
    assert voting_power_from_burned(1) == 0
    assert voting_power_from_burned(10**9) == 0
    assert voting_power_from_burned(1_166_666_666) == 0
    assert voting_power_from_burned(1_166_666_667) > 0


def test_burn_below_minimum_still_priced() -> None:
    """The curve itself has no minimum; the exchange gate enforces it"""
    assert voting_power_from_burned(MINIMUM_EXCHANGE_AMOUNT // 2) > 0


# =============================================================================
# Properties
# =============================================================================


@given(a=burns, b=burns)
def test_forward_curve_is_monotone(a: int, b: int) -> None:
    low, high = sorted((a, b))
    assert voting_power_from_burned(low) <= voting_power_from_burned(high)


@given(a=powers, b=powers)
def test_inverse_curve_is_monotone(a: int, b: int) -> None:
    low, high = sorted((a, b))
    assert burned_from_voting_power(low) <= burned_from_voting_power(high)


@given(x=burns)
def test_approximate_inverse(x: int) -> None:
    """
    burned(power(x)) never overshoots x, and undershoots by at most the
    cost of one square-root truncation step
    """
    v = voting_power_from_burned(x)
    b = burned_from_voting_power(v)
    assert b <= x
    assert x - b <= incremental_burned_amount(SQRT_STEP + 1, v) + 2


@given(v=powers)
def test_forward_recovers_power_from_exact_cost(v: int) -> None:
    recovered = voting_power_from_burned(burned_from_voting_power(v))
    assert v - SQRT_STEP <= recovered <= v


@settings(max_examples=200)
@given(
    delta=st.integers(min_value=MINIMUM_EXCHANGE_AMOUNT, max_value=10**24),
    c1=st.integers(min_value=0, max_value=10**26),
    c2=st.integers(min_value=0, max_value=10**26),
)
def test_diminishing_returns(delta: int, c1: int, c2: int) -> None:
    """A later burn of the same size buys no more power, up to truncation"""
    low, high = sorted((c1, c2))
    assert incremental_voting_power(delta, high) <= incremental_voting_power(delta, low) + 2 * SQRT_STEP + 2


@given(delta=st.integers(min_value=0, max_value=10**24), current=powers)
def test_incremental_burn_matches_inverse_difference(delta: int, current: int) -> None:
    expected = burned_from_voting_power(current + delta) - burned_from_voting_power(current)
    assert incremental_burned_amount(delta, current) == expected


def test_diminishing_returns_is_visible_at_token_scale() -> None:
    first = incremental_voting_power(100 * TOKEN, 0)
    later = incremental_voting_power(100 * TOKEN, 50_000 * TOKEN)
    assert later < first


# =============================================================================
# Integer square root
# =============================================================================


@given(n=st.integers(min_value=0, max_value=2**256))
def test_isqrt_matches_floor_sqrt(n: int) -> None:
    r = isqrt(n)
    assert r * r <= n < (r + 1) * (r + 1)
    assert r == math.isqrt(n)


def test_isqrt_small_values() -> None:
    assert [isqrt(n) for n in range(10)] == [0, 1, 1, 1, 2, 2, 2, 2, 2, 3]


def test_isqrt_rejects_negative() -> None:
    with pytest.raises(ValueError):
        isqrt(-1)


# =============================================================================
# Bounds
# =============================================================================


def test_forward_curve_rejects_negative_input() -> None:
    with pytest.raises(ValueError):
        voting_power_from_burned(-1)


def test_forward_curve_overflow() -> None:
    with pytest.raises(CurveOverflow) as exc_info:
        voting_power_from_burned(UINT256_MAX)
    assert exc_info.value.operation == "voting_power_from_burned"


def test_inverse_curve_overflow() -> None:
    """15 * v^2 must fit in 256 bits"""
    with pytest.raises(CurveOverflow):
        burned_from_voting_power(2**128)


def test_incremental_overflow_on_sum() -> None:
    with pytest.raises(CurveOverflow):
        incremental_voting_power(UINT256_MAX, 1)


def test_incremental_rejects_values_above_uint256() -> None:
    with pytest.raises(CurveOverflow):
        incremental_burned_amount(UINT256_MAX + 1, 0)


def test_checked_subtraction_fails_loudly() -> None:
    with pytest.raises(CurveUnderflow) as exc_info:
        curve._checked_sub("incremental_voting_power", 1, 2)
    assert exc_info.value.lhs == 1
    assert exc_info.value.rhs == 2
