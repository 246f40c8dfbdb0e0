"""
Liquidity <-> token amount conversion for a price range.

Integer port of LiquidityAmounts: liquidity is always rounded down so that
the resulting position never costs more than the amounts offered, and token
amounts are rounded down exactly as the pool rounds them on withdrawal.
"""

from __future__ import annotations

from typing import Tuple

from .safe_math import Q96, mul_div
from .sqrt_price_math import get_amount0_delta, get_amount1_delta


def _sorted(sqrt_ratio_a: int, sqrt_ratio_b: int) -> Tuple[int, int]:
    if sqrt_ratio_a > sqrt_ratio_b:
        return sqrt_ratio_b, sqrt_ratio_a
    return sqrt_ratio_a, sqrt_ratio_b


def get_liquidity_for_amount0(sqrt_ratio_a: int, sqrt_ratio_b: int, amount0: int) -> int:
    """Liquidity bought by ``amount0`` between two prices."""
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    intermediate = mul_div(sqrt_ratio_a, sqrt_ratio_b, Q96)
    return mul_div(amount0, intermediate, sqrt_ratio_b - sqrt_ratio_a)


def get_liquidity_for_amount1(sqrt_ratio_a: int, sqrt_ratio_b: int, amount1: int) -> int:
    """Liquidity bought by ``amount1`` between two prices."""
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    return mul_div(amount1, Q96, sqrt_ratio_b - sqrt_ratio_a)


def get_liquidity_for_amounts(
    sqrt_ratio_x96: int,
    sqrt_ratio_a: int,
    sqrt_ratio_b: int,
    amount0: int,
    amount1: int,
) -> int:
    """
    Maximum liquidity the given amounts can fund at the current price.

    Args:
        sqrt_ratio_x96: Current pool sqrt price
        sqrt_ratio_a: Sqrt price at one range boundary
        sqrt_ratio_b: Sqrt price at the other range boundary
        amount0: Token0 available
        amount1: Token1 available

    Returns:
        Liquidity, rounded down
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)

    if sqrt_ratio_x96 <= sqrt_ratio_a:
        return get_liquidity_for_amount0(sqrt_ratio_a, sqrt_ratio_b, amount0)
    if sqrt_ratio_x96 < sqrt_ratio_b:
        liquidity0 = get_liquidity_for_amount0(sqrt_ratio_x96, sqrt_ratio_b, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_ratio_a, sqrt_ratio_x96, amount1)
        return min(liquidity0, liquidity1)
    return get_liquidity_for_amount1(sqrt_ratio_a, sqrt_ratio_b, amount1)


def get_amounts_for_liquidity(
    sqrt_ratio_x96: int,
    sqrt_ratio_a: int,
    sqrt_ratio_b: int,
    liquidity: int,
) -> Tuple[int, int]:
    """Token amounts ``liquidity`` is worth at the current price, rounded down."""
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)

    if sqrt_ratio_x96 <= sqrt_ratio_a:
        return get_amount0_delta(sqrt_ratio_a, sqrt_ratio_b, liquidity, False), 0
    if sqrt_ratio_x96 < sqrt_ratio_b:
        return (
            get_amount0_delta(sqrt_ratio_x96, sqrt_ratio_b, liquidity, False),
            get_amount1_delta(sqrt_ratio_a, sqrt_ratio_x96, liquidity, False),
        )
    return 0, get_amount1_delta(sqrt_ratio_a, sqrt_ratio_b, liquidity, False)
