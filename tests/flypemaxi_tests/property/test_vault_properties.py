"""
Property-based tests for vault share accounting and the pool math under it.

Invariants checked with random inputs:
- quotes never ask for more than the offered maxima
- a mint pulls exactly the quoted amounts
- a burn never pays more than the burned shares' pro-rata claim
- fee cuts never exceed the harvested fees
- tick <-> sqrt price conversions round-trip

Uses Hypothesis for property-based testing with random inputs.
"""

import pytest
from hypothesis import HealthCheck, assume, given, settings, strategies as st

from flypemaxi.core.defi.liquidity_amounts import get_liquidity_for_amounts
from flypemaxi.core.defi.safe_math import mul_div
from flypemaxi.core.defi.sqrt_price_math import get_amount0_delta, get_amount1_delta
from flypemaxi.core.defi.tick_math import (
    MAX_TICK,
    MIN_TICK,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)
from flypemaxi.core.vault.fee_engine import compute_fee_split


ETHER = 10**18
USER0 = "0x" + "a0" * 20
USER1 = "0x" + "a1" * 20

FIXTURE_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

amount_max = st.integers(min_value=10**6, max_value=10**21)


@st.composite
def fee_split_inputs(draw):
    """Manager fee and a payout cap that fits beside it."""
    manager_fee_bps = draw(st.integers(min_value=0, max_value=1750))
    max_payout_bps = draw(st.integers(min_value=0, max_value=10_000 - 250 - manager_fee_bps))
    return manager_fee_bps, max_payout_bps


class TestShareProperties:
    """Share quotes, mints and burns on live vaults."""

    @given(amount0_max=amount_max, amount1_max=amount_max)
    @FIXTURE_SETTINGS
    def test_quote_within_maxima(self, funded_world, amount0_max, amount1_max):
        """Property: get_mint_amounts never exceeds either maximum."""
        shares, amount0, amount1 = funded_world.vault.get_mint_amounts(amount0_max, amount1_max)

        assert shares >= 0
        assert amount0 <= amount0_max
        assert amount1 <= amount1_max

    @given(amount0_max=amount_max, amount1_max=amount_max)
    @FIXTURE_SETTINGS
    def test_first_quote_within_maxima(self, world, amount0_max, amount1_max):
        """Property: the first depositor's quote also fits the maxima."""
        shares, amount0, amount1 = world.vault.get_mint_amounts(amount0_max, amount1_max)

        assert shares > 0
        assert amount0 <= amount0_max
        assert amount1 <= amount1_max

    @pytest.mark.slow
    @given(amount0_max=amount_max, amount1_max=amount_max)
    @FIXTURE_SETTINGS
    def test_mint_pulls_quoted_amounts(self, make_world, amount0_max, amount1_max):
        """Property: a mint takes exactly what get_mint_amounts quoted."""
        world = make_world()
        world.deposit(USER0, ETHER, ETHER)
        shares, amount0, amount1 = world.vault.get_mint_amounts(amount0_max, amount1_max)
        assume(shares > 0 and (amount0 > 0 or amount1 > 0))

        before0 = world.token0.balance_of(USER1)
        before1 = world.token1.balance_of(USER1)
        world.vault.mint(USER1, shares, USER1)

        assert before0 - world.token0.balance_of(USER1) == amount0
        assert before1 - world.token1.balance_of(USER1) == amount1
        assert world.vault.balance_of(USER1) == shares

    @pytest.mark.slow
    @given(fraction_bps=st.integers(min_value=1, max_value=10_000))
    @FIXTURE_SETTINGS
    def test_burn_never_overpays(self, make_world, fraction_bps):
        """Property: a burn pays at most the shares' pro-rata underlying (plus rounding)."""
        world = make_world()
        world.deposit(USER0, ETHER, ETHER)
        world.wash_trade(rounds=1)

        total_supply = world.vault.total_supply()
        burn_amount = max(1, mul_div(total_supply, fraction_bps, 10_000))
        underlying0, underlying1 = world.vault.get_underlying_balances()

        amount0, amount1, _ = world.vault.burn(USER0, burn_amount, USER0)

        assert amount0 <= mul_div(underlying0, burn_amount, total_supply) + 1
        assert amount1 <= mul_div(underlying1, burn_amount, total_supply) + 1
        assert world.vault.total_supply() == total_supply - burn_amount


class TestFeeSplitProperties:
    """Fee split conservation."""

    @given(
        fee0=st.integers(min_value=0, max_value=10**30),
        fee1=st.integers(min_value=0, max_value=10**30),
        cuts=fee_split_inputs(),
        requested=st.integers(min_value=0, max_value=10**30),
        payment_index=st.sampled_from([0, 1]),
    )
    @settings(max_examples=200)
    def test_cuts_never_exceed_fees(self, fee0, fee1, cuts, requested, payment_index):
        manager_fee_bps, max_payout_bps = cuts
        split = compute_fee_split(
            fee0, fee1, manager_fee_bps, max_payout_bps, requested, payment_index
        )

        assert split.reinvest0 >= 0
        assert split.reinvest1 >= 0
        payout = split.payout1 if payment_index else split.payout0
        fee_paid_in = fee1 if payment_index else fee0
        assert payout <= requested
        assert payout <= mul_div(fee_paid_in, max_payout_bps, 10_000)


class TestTickMathProperties:
    """Tick and sqrt price conversions."""

    @given(tick=st.integers(min_value=MIN_TICK, max_value=MAX_TICK - 1))
    @settings(max_examples=200)
    def test_tick_round_trip(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick

    @given(tick=st.integers(min_value=MIN_TICK, max_value=MAX_TICK - 1))
    @settings(max_examples=200)
    def test_ratio_strictly_increasing(self, tick):
        assert get_sqrt_ratio_at_tick(tick) < get_sqrt_ratio_at_tick(tick + 1)

    @given(
        lower=st.integers(min_value=-10_000, max_value=0),
        width=st.integers(min_value=1, max_value=20_000),
        price_tick=st.integers(min_value=-20_000, max_value=20_000),
        amount0=st.integers(min_value=0, max_value=10**24),
        amount1=st.integers(min_value=0, max_value=10**24),
    )
    @settings(max_examples=200)
    def test_liquidity_never_costs_more_than_offered(
        self, lower, width, price_tick, amount0, amount1
    ):
        """Property: liquidity quoted for amounts can be paid with those amounts."""
        sqrt_lower = get_sqrt_ratio_at_tick(lower)
        sqrt_upper = get_sqrt_ratio_at_tick(lower + width)
        sqrt_price = get_sqrt_ratio_at_tick(price_tick)

        liquidity = get_liquidity_for_amounts(sqrt_price, sqrt_lower, sqrt_upper, amount0, amount1)

        clamped = min(max(sqrt_price, sqrt_lower), sqrt_upper)
        assert get_amount0_delta(clamped, sqrt_upper, liquidity, True) <= amount0
        assert get_amount1_delta(sqrt_lower, clamped, liquidity, True) <= amount1
