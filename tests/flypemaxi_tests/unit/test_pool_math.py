"""
Concentrated liquidity math tests.

Reference values are the Uniswap V3 TickMath boundaries; rounding direction
is checked where it protects the pool.
"""

import pytest

from flypemaxi.core.defi.liquidity_amounts import (
    get_amounts_for_liquidity,
    get_liquidity_for_amounts,
)
from flypemaxi.core.defi.safe_math import Q96, bps_of, div_round_up, mul_div
from flypemaxi.core.defi.sqrt_price_math import (
    compute_swap_step,
    get_amount0_delta,
    get_amount1_delta,
)
from flypemaxi.core.defi.tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    encode_price_sqrt,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)
from flypemaxi.core.exceptions import PoolError


class TestSafeMath:

    def test_mul_div_rounding(self):
        assert mul_div(7, 3, 2) == 10
        assert mul_div(7, 3, 2, round_up=True) == 11
        assert mul_div(6, 2, 3, round_up=True) == 4

    def test_mul_div_zero_denominator(self):
        with pytest.raises(ValueError):
            mul_div(1, 1, 0)

    def test_div_round_up(self):
        assert div_round_up(10, 3) == 4
        assert div_round_up(9, 3) == 3

    def test_bps_of_rounds_down(self):
        assert bps_of(10_000, 250) == 250
        assert bps_of(39, 250) == 0
        assert bps_of(40, 250) == 1


class TestTickMath:

    def test_tick_zero_is_price_one(self):
        assert get_sqrt_ratio_at_tick(0) == Q96

    def test_boundary_ratios(self):
        assert get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO
        assert get_sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    def test_out_of_range_tick(self):
        with pytest.raises(PoolError):
            get_sqrt_ratio_at_tick(MAX_TICK + 1)
        with pytest.raises(PoolError):
            get_sqrt_ratio_at_tick(MIN_TICK - 1)

    @pytest.mark.parametrize("tick", [MIN_TICK, -887220, -60, -1, 0, 1, 60, 200, 887220])
    def test_tick_round_trip(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick

    def test_tick_at_ratio_rounds_down(self):
        ratio = get_sqrt_ratio_at_tick(100)
        assert get_tick_at_sqrt_ratio(ratio - 1) == 99

    def test_ratio_out_of_range(self):
        with pytest.raises(PoolError):
            get_tick_at_sqrt_ratio(MAX_SQRT_RATIO)
        with pytest.raises(PoolError):
            get_tick_at_sqrt_ratio(MIN_SQRT_RATIO - 1)

    def test_ratios_increase_with_tick(self):
        ratios = [get_sqrt_ratio_at_tick(t) for t in range(-50, 51)]
        assert ratios == sorted(ratios)
        assert len(set(ratios)) == len(ratios)

    def test_encode_price_sqrt(self):
        assert encode_price_sqrt(1, 1) == Q96
        assert encode_price_sqrt(4, 1) == 2 * Q96
        assert encode_price_sqrt(1, 4) == Q96 // 2
        with pytest.raises(ValueError):
            encode_price_sqrt(0, 1)


class TestAmountDeltas:

    def test_round_up_never_below_round_down(self):
        lower = get_sqrt_ratio_at_tick(-600)
        upper = get_sqrt_ratio_at_tick(600)
        liquidity = 123_456_789_012_345
        assert get_amount0_delta(lower, upper, liquidity, True) >= get_amount0_delta(
            lower, upper, liquidity, False
        )
        assert get_amount1_delta(lower, upper, liquidity, True) >= get_amount1_delta(
            lower, upper, liquidity, False
        )

    def test_amounts_for_liquidity_by_price_position(self):
        lower = get_sqrt_ratio_at_tick(-600)
        upper = get_sqrt_ratio_at_tick(600)
        liquidity = 10**18

        below = get_amounts_for_liquidity(get_sqrt_ratio_at_tick(-1200), lower, upper, liquidity)
        inside = get_amounts_for_liquidity(Q96, lower, upper, liquidity)
        above = get_amounts_for_liquidity(get_sqrt_ratio_at_tick(1200), lower, upper, liquidity)

        assert below[0] > 0 and below[1] == 0
        assert inside[0] > 0 and inside[1] > 0
        assert above[0] == 0 and above[1] > 0

    def test_liquidity_never_costs_more_than_offered(self):
        lower = get_sqrt_ratio_at_tick(-887220)
        upper = get_sqrt_ratio_at_tick(887220)
        amount0, amount1 = 10**18, 3 * 10**18

        liquidity = get_liquidity_for_amounts(Q96, lower, upper, amount0, amount1)
        cost0 = get_amount0_delta(Q96, upper, liquidity, True)
        cost1 = get_amount1_delta(lower, Q96, liquidity, True)

        assert cost0 <= amount0
        assert cost1 <= amount1


class TestSwapStep:

    def test_exact_input_charges_fee(self):
        liquidity = 10**18
        target = get_sqrt_ratio_at_tick(-600)
        next_price, amount_in, amount_out, fee = compute_swap_step(
            Q96, target, liquidity, 10**15, 3000
        )
        assert target <= next_price < Q96
        assert amount_in + fee == 10**15
        assert fee > 0
        assert 0 < amount_out < amount_in

    def test_step_stops_at_target(self):
        liquidity = 10**12
        target = get_sqrt_ratio_at_tick(-10)
        next_price, amount_in, _, fee = compute_swap_step(Q96, target, liquidity, 10**18, 3000)
        assert next_price == target
        assert amount_in + fee < 10**18
