"""
Token deltas and price movement for concentrated liquidity.

Integer ports of SqrtPriceMath/SwapMath. Amount deltas round up when the
pool is owed tokens and down when it pays them out.
"""

from __future__ import annotations

from typing import Tuple

from ..exceptions import PoolError
from .safe_math import FEE_DENOMINATOR, Q96, div_round_up, mul_div


def get_amount0_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Token0 amount between two sqrt prices for ``liquidity``."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    if sqrt_price_a <= 0:
        raise PoolError("Sqrt price must be positive")

    numerator1 = liquidity << 96
    numerator2 = sqrt_price_b - sqrt_price_a

    if round_up:
        return div_round_up(
            mul_div(numerator1, numerator2, sqrt_price_b, round_up=True),
            sqrt_price_a,
        )
    return mul_div(numerator1, numerator2, sqrt_price_b) // sqrt_price_a


def get_amount1_delta(
    sqrt_price_a: int,
    sqrt_price_b: int,
    liquidity: int,
    round_up: bool,
) -> int:
    """Token1 amount between two sqrt prices for ``liquidity``."""
    if sqrt_price_a > sqrt_price_b:
        sqrt_price_a, sqrt_price_b = sqrt_price_b, sqrt_price_a
    return mul_div(liquidity, sqrt_price_b - sqrt_price_a, Q96, round_up=round_up)


def _next_sqrt_price_from_amount0(
    sqrt_price: int, liquidity: int, amount: int, add: bool
) -> int:
    if amount == 0:
        return sqrt_price
    numerator1 = liquidity << 96
    product = amount * sqrt_price
    if add:
        return mul_div(numerator1, sqrt_price, numerator1 + product, round_up=True)
    if numerator1 <= product:
        raise PoolError("Insufficient token0 liquidity")
    return mul_div(numerator1, sqrt_price, numerator1 - product, round_up=True)


def _next_sqrt_price_from_amount1(
    sqrt_price: int, liquidity: int, amount: int, add: bool
) -> int:
    if add:
        return sqrt_price + (amount << 96) // liquidity
    quotient = div_round_up(amount << 96, liquidity)
    if sqrt_price <= quotient:
        raise PoolError("Insufficient token1 liquidity")
    return sqrt_price - quotient


def get_next_sqrt_price_from_input(
    sqrt_price: int, liquidity: int, amount_in: int, zero_for_one: bool
) -> int:
    """Price after adding ``amount_in`` of the input token."""
    if sqrt_price <= 0 or liquidity <= 0:
        raise PoolError("Price and liquidity must be positive")
    if zero_for_one:
        return _next_sqrt_price_from_amount0(sqrt_price, liquidity, amount_in, True)
    return _next_sqrt_price_from_amount1(sqrt_price, liquidity, amount_in, True)


def get_next_sqrt_price_from_output(
    sqrt_price: int, liquidity: int, amount_out: int, zero_for_one: bool
) -> int:
    """Price after removing ``amount_out`` of the output token."""
    if sqrt_price <= 0 or liquidity <= 0:
        raise PoolError("Price and liquidity must be positive")
    if zero_for_one:
        return _next_sqrt_price_from_amount1(sqrt_price, liquidity, amount_out, False)
    return _next_sqrt_price_from_amount0(sqrt_price, liquidity, amount_out, False)


def compute_swap_step(
    sqrt_price_current: int,
    sqrt_price_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> Tuple[int, int, int, int]:
    """
    Compute a single swap step within one initialized-tick interval.

    Args:
        sqrt_price_current: Price at the start of the step
        sqrt_price_target: Price the step may not pass
        liquidity: Active liquidity for the step
        amount_remaining: Positive for exact input, negative for exact output
        fee_pips: Pool fee in hundredths of a basis point

    Returns:
        (sqrt_price_next, amount_in, amount_out, fee_amount)
    """
    zero_for_one = sqrt_price_current >= sqrt_price_target
    exact_input = amount_remaining >= 0

    if exact_input:
        amount_remaining_less_fee = mul_div(
            amount_remaining, FEE_DENOMINATOR - fee_pips, FEE_DENOMINATOR
        )
        if zero_for_one:
            amount_in = get_amount0_delta(sqrt_price_target, sqrt_price_current, liquidity, True)
        else:
            amount_in = get_amount1_delta(sqrt_price_current, sqrt_price_target, liquidity, True)
        if amount_remaining_less_fee >= amount_in:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_input(
                sqrt_price_current, liquidity, amount_remaining_less_fee, zero_for_one
            )
    else:
        if zero_for_one:
            amount_out = get_amount1_delta(sqrt_price_target, sqrt_price_current, liquidity, False)
        else:
            amount_out = get_amount0_delta(sqrt_price_current, sqrt_price_target, liquidity, False)
        if -amount_remaining >= amount_out:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_output(
                sqrt_price_current, liquidity, -amount_remaining, zero_for_one
            )

    reached_target = sqrt_price_target == sqrt_price_next

    if zero_for_one:
        if not (reached_target and exact_input):
            amount_in = get_amount0_delta(sqrt_price_next, sqrt_price_current, liquidity, True)
        if not (reached_target and not exact_input):
            amount_out = get_amount1_delta(sqrt_price_next, sqrt_price_current, liquidity, False)
    else:
        if not (reached_target and exact_input):
            amount_in = get_amount1_delta(sqrt_price_current, sqrt_price_next, liquidity, True)
        if not (reached_target and not exact_input):
            amount_out = get_amount0_delta(sqrt_price_current, sqrt_price_next, liquidity, False)

    if not exact_input and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    if exact_input and sqrt_price_next != sqrt_price_target:
        # the remainder of the input is all fee
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div(amount_in, fee_pips, FEE_DENOMINATOR - fee_pips, round_up=True)

    return sqrt_price_next, amount_in, amount_out, fee_amount
