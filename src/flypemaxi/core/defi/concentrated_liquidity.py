"""
Concentrated Liquidity Pool Implementation (Uniswap V3 Style).

The pool is the external venue vaults provide liquidity to:
- Price range positions keyed by (owner, tick_lower, tick_upper)
- Tick-based price representation in Q64.96 sqrt prices
- Per-position fee growth tracking with partial collection
- Mint and swap callbacks: the caller pays after the pool has acted

Security features:
- Tick spacing validation
- Position bounds checking
- Reentrancy protection
- Balance checks after every callback
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..chain import derive_address, normalize_address, transactional
from ..exceptions import PoolError
from .safe_math import Q128, mul_div
from .sqrt_price_math import compute_swap_step, get_amount0_delta, get_amount1_delta
from .tick_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
)

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


class FeeTier(Enum):
    """Available fee tiers with corresponding tick spacing."""
    LOWEST = (100, 1)      # 0.01% fee, 1 tick spacing
    LOW = (500, 10)        # 0.05% fee, 10 tick spacing
    MEDIUM = (3000, 60)    # 0.30% fee, 60 tick spacing
    HIGH = (10000, 200)    # 1.00% fee, 200 tick spacing

    def __init__(self, fee: int, tick_spacing: int):
        self.fee = fee  # hundredths of a basis point (1_000_000 = 100%)
        self.tick_spacing = tick_spacing

    @classmethod
    def from_fee(cls, fee: int) -> "FeeTier":
        for tier in cls:
            if tier.fee == fee:
                return tier
        raise PoolError(f"Fee {fee} is not enabled")


@dataclass
class TickInfo:
    """Information stored for each initialized tick."""
    liquidity_gross: int = 0  # Total liquidity referencing this tick
    liquidity_net: int = 0    # Net liquidity change when crossing left to right
    fee_growth_outside_0: int = 0
    fee_growth_outside_1: int = 0


@dataclass
class Position:
    """Liquidity owned by one address within one price range."""

    owner: str = ""
    tick_lower: int = 0
    tick_upper: int = 0
    liquidity: int = 0

    # Fee tracking
    fee_growth_inside_0_last: int = 0
    fee_growth_inside_1_last: int = 0
    tokens_owed_0: int = 0
    tokens_owed_1: int = 0


def position_key(owner: str, tick_lower: int, tick_upper: int) -> str:
    """Identifier of the position ``owner`` holds in [tick_lower, tick_upper)."""
    return f"{normalize_address(owner)}:{tick_lower}:{tick_upper}"


@dataclass
class ConcentratedLiquidityPool:
    """
    Uniswap V3-style concentrated liquidity pool.

    Price representation:
    - sqrt_price is sqrt(token1 / token0) in Q64.96
    - tick = floor(log_1.0001(price))
    """

    chain: "Chain" = field(repr=False, compare=False)
    token0: str = ""
    token1: str = ""
    fee: int = FeeTier.MEDIUM.fee
    tick_spacing: int = FeeTier.MEDIUM.tick_spacing
    factory: str = ""
    address: str = ""

    # Current state
    sqrt_price: int = 0
    tick: int = 0
    liquidity: int = 0  # Active liquidity

    # Fee tracking (Q128.128 per unit of liquidity)
    fee_growth_global_0: int = 0
    fee_growth_global_1: int = 0

    ticks: dict[int, TickInfo] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)

    # Reentrancy guard
    _locked: bool = False

    def __post_init__(self) -> None:
        self.token0 = normalize_address(self.token0)
        self.token1 = normalize_address(self.token1)
        if not self.address:
            self.address = derive_address("pool", self.token0, self.token1, self.fee)

    # ==================== Initialization ====================

    @transactional
    def initialize(self, sqrt_price_x96: int) -> None:
        """
        Set the starting price of the pool.

        Raises:
            PoolError: If already initialized or the price is out of range
        """
        if self.sqrt_price != 0:
            raise PoolError("Pool already initialized")
        self.tick = get_tick_at_sqrt_ratio(sqrt_price_x96)
        self.sqrt_price = sqrt_price_x96

        logger.info(
            "Pool initialized",
            extra={
                "event": "clp.initialize",
                "pool": self.address[:10],
                "sqrt_price": sqrt_price_x96,
                "tick": self.tick,
            }
        )

    # ==================== Position Management ====================

    @transactional
    def mint(
        self,
        caller: str,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
    ) -> tuple[int, int]:
        """
        Add liquidity to the recipient's position.

        The caller is called back through ``uniswap_v3_mint_callback`` and
        must transfer the owed amounts to the pool before it returns.

        Args:
            caller: Contract that pays for the liquidity
            recipient: Position owner
            tick_lower: Lower tick of range
            tick_upper: Upper tick of range
            amount: Liquidity amount

        Returns:
            (amount0, amount1) - tokens paid in
        """
        self._require_initialized()
        self._require_not_locked()
        if amount <= 0:
            raise PoolError("Liquidity amount must be positive")

        self._locked = True
        try:
            amount0, amount1 = self._modify_position(
                recipient, tick_lower, tick_upper, amount
            )

            balance0_before = self._balance(self.token0) if amount0 > 0 else 0
            balance1_before = self._balance(self.token1) if amount1 > 0 else 0
            self.chain.get(caller).uniswap_v3_mint_callback(self.address, amount0, amount1)
            if amount0 > 0 and self._balance(self.token0) < balance0_before + amount0:
                raise PoolError("Mint callback did not pay token0")
            if amount1 > 0 and self._balance(self.token1) < balance1_before + amount1:
                raise PoolError("Mint callback did not pay token1")
        finally:
            self._locked = False

        logger.info(
            "Liquidity minted",
            extra={
                "event": "clp.mint",
                "pool": self.address[:10],
                "owner": normalize_address(recipient)[:10],
                "range": f"[{tick_lower}, {tick_upper}]",
                "liquidity": amount,
            }
        )

        return amount0, amount1

    @transactional
    def burn(
        self,
        caller: str,
        tick_lower: int,
        tick_upper: int,
        amount: int,
    ) -> tuple[int, int]:
        """
        Remove liquidity from the caller's position.

        Burned principal and accrued fees are credited to the position's
        ``tokens_owed`` and leave the pool only through :meth:`collect`.
        A zero amount just accrues fees.

        Returns:
            (amount0, amount1) - principal released by the burn
        """
        self._require_initialized()
        self._require_not_locked()
        if amount < 0:
            raise PoolError("Liquidity amount cannot be negative")

        self._locked = True
        try:
            amount0, amount1 = self._modify_position(caller, tick_lower, tick_upper, -amount)
            amount0, amount1 = -amount0, -amount1

            if amount0 > 0 or amount1 > 0:
                position = self.positions[position_key(caller, tick_lower, tick_upper)]
                position.tokens_owed_0 += amount0
                position.tokens_owed_1 += amount1
        finally:
            self._locked = False

        logger.info(
            "Liquidity burned",
            extra={
                "event": "clp.burn",
                "pool": self.address[:10],
                "owner": normalize_address(caller)[:10],
                "liquidity": amount,
                "amount0": amount0,
                "amount1": amount1,
            }
        )

        return amount0, amount1

    @transactional
    def collect(
        self,
        caller: str,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int,
        amount1_requested: int,
    ) -> tuple[int, int]:
        """
        Transfer up to the requested owed tokens of the caller's position.

        Returns:
            (amount0, amount1) - tokens actually transferred
        """
        self._require_not_locked()
        position = self.positions.get(position_key(caller, tick_lower, tick_upper))
        if position is None:
            return 0, 0

        amount0 = min(amount0_requested, position.tokens_owed_0)
        amount1 = min(amount1_requested, position.tokens_owed_1)

        if amount0 > 0:
            position.tokens_owed_0 -= amount0
            self.chain.get(self.token0).transfer(self.address, recipient, amount0)
        if amount1 > 0:
            position.tokens_owed_1 -= amount1
            self.chain.get(self.token1).transfer(self.address, recipient, amount1)

        if position.liquidity == 0 and position.tokens_owed_0 == 0 and position.tokens_owed_1 == 0:
            del self.positions[position_key(caller, tick_lower, tick_upper)]

        return amount0, amount1

    # ==================== Swapping ====================

    @transactional
    def swap(
        self,
        caller: str,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit: int | None = None,
    ) -> tuple[int, int]:
        """
        Execute a swap through the pool.

        Output is sent to the recipient first, then the caller is called back
        through ``uniswap_v3_swap_callback`` to pay the input.

        Args:
            caller: Contract paying the input
            recipient: Receiver of the output
            zero_for_one: True for token0->token1, False for token1->token0
            amount_specified: Positive for exact input, negative for exact output
            sqrt_price_limit: Price the swap may not move past

        Returns:
            (amount0, amount1) - pool balance deltas (negative = paid out)
        """
        self._require_initialized()
        self._require_not_locked()

        if amount_specified == 0:
            raise PoolError("Amount must be non-zero")

        if sqrt_price_limit is None:
            sqrt_price_limit = MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1

        if zero_for_one:
            if sqrt_price_limit >= self.sqrt_price:
                raise PoolError("Price limit too high")
            if sqrt_price_limit <= MIN_SQRT_RATIO:
                raise PoolError("Price limit too low")
        else:
            if sqrt_price_limit <= self.sqrt_price:
                raise PoolError("Price limit too low")
            if sqrt_price_limit >= MAX_SQRT_RATIO:
                raise PoolError("Price limit too high")

        self._locked = True
        try:
            exact_input = amount_specified > 0
            amount_remaining = amount_specified
            amount_calculated = 0

            state_sqrt_price = self.sqrt_price
            state_tick = self.tick
            state_liquidity = self.liquidity
            fee_growth_global = (
                self.fee_growth_global_0 if zero_for_one else self.fee_growth_global_1
            )

            while amount_remaining != 0 and state_sqrt_price != sqrt_price_limit:
                step_start = state_sqrt_price
                next_tick = self._next_initialized_tick(state_tick, zero_for_one)
                sqrt_price_next = get_sqrt_ratio_at_tick(next_tick)

                if zero_for_one:
                    sqrt_price_target = max(sqrt_price_next, sqrt_price_limit)
                else:
                    sqrt_price_target = min(sqrt_price_next, sqrt_price_limit)

                state_sqrt_price, amount_in, amount_out, fee_amount = compute_swap_step(
                    state_sqrt_price,
                    sqrt_price_target,
                    state_liquidity,
                    amount_remaining,
                    self.fee,
                )

                if exact_input:
                    amount_remaining -= amount_in + fee_amount
                    amount_calculated -= amount_out
                else:
                    amount_remaining += amount_out
                    amount_calculated += amount_in + fee_amount

                if state_liquidity > 0:
                    fee_growth_global += mul_div(fee_amount, Q128, state_liquidity)

                if state_sqrt_price == sqrt_price_next:
                    liquidity_net = self._cross_tick(next_tick, zero_for_one, fee_growth_global)
                    if zero_for_one:
                        liquidity_net = -liquidity_net
                    state_liquidity += liquidity_net
                    state_tick = next_tick - 1 if zero_for_one else next_tick
                elif state_sqrt_price != step_start:
                    state_tick = get_tick_at_sqrt_ratio(state_sqrt_price)

            self.sqrt_price = state_sqrt_price
            self.tick = state_tick
            self.liquidity = state_liquidity
            if zero_for_one:
                self.fee_growth_global_0 = fee_growth_global
            else:
                self.fee_growth_global_1 = fee_growth_global

            if zero_for_one == exact_input:
                amount0 = amount_specified - amount_remaining
                amount1 = amount_calculated
            else:
                amount0 = amount_calculated
                amount1 = amount_specified - amount_remaining

            if zero_for_one:
                if amount1 < 0:
                    self.chain.get(self.token1).transfer(self.address, recipient, -amount1)
                balance_before = self._balance(self.token0)
                self.chain.get(caller).uniswap_v3_swap_callback(self.address, amount0, amount1)
                if self._balance(self.token0) < balance_before + amount0:
                    raise PoolError("Swap callback did not pay token0")
            else:
                if amount0 < 0:
                    self.chain.get(self.token0).transfer(self.address, recipient, -amount0)
                balance_before = self._balance(self.token1)
                self.chain.get(caller).uniswap_v3_swap_callback(self.address, amount0, amount1)
                if self._balance(self.token1) < balance_before + amount1:
                    raise PoolError("Swap callback did not pay token1")
        finally:
            self._locked = False

        logger.info(
            "Swap executed",
            extra={
                "event": "clp.swap",
                "pool": self.address[:10],
                "direction": "0->1" if zero_for_one else "1->0",
                "amount0": amount0,
                "amount1": amount1,
                "tick": self.tick,
            }
        )

        return amount0, amount1

    # ==================== View Functions ====================

    def slot0(self) -> tuple[int, int]:
        """Current (sqrt_price_x96, tick)."""
        return self.sqrt_price, self.tick

    def get_position(self, owner: str, tick_lower: int, tick_upper: int) -> Position | None:
        return self.positions.get(position_key(owner, tick_lower, tick_upper))

    def position_liquidity(self, owner: str, tick_lower: int, tick_upper: int) -> int:
        position = self.get_position(owner, tick_lower, tick_upper)
        return position.liquidity if position else 0

    def position_fees(self, owner: str, tick_lower: int, tick_upper: int) -> tuple[int, int]:
        """
        Preview fees owed to a position without modifying state.

        Includes fees already credited to ``tokens_owed`` and fees accrued
        since the position was last touched, both rounded down.
        """
        position = self.get_position(owner, tick_lower, tick_upper)
        if position is None:
            return 0, 0

        inside_0, inside_1 = self._get_fee_growth_inside(tick_lower, tick_upper)
        fees_0 = position.tokens_owed_0 + mul_div(
            inside_0 - position.fee_growth_inside_0_last, position.liquidity, Q128
        )
        fees_1 = position.tokens_owed_1 + mul_div(
            inside_1 - position.fee_growth_inside_1_last, position.liquidity, Q128
        )
        return fees_0, fees_1

    # ==================== Internal Math ====================

    def _modify_position(
        self,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        liquidity_delta: int,
    ) -> tuple[int, int]:
        """Apply a signed liquidity change; returns signed token deltas."""
        self._validate_ticks(tick_lower, tick_upper)
        self._update_position(owner, tick_lower, tick_upper, liquidity_delta)

        amount0 = amount1 = 0
        if liquidity_delta == 0:
            return amount0, amount1

        round_up = liquidity_delta > 0
        magnitude = abs(liquidity_delta)
        sign = 1 if round_up else -1
        sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
        sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)

        if self.tick < tick_lower:
            amount0 = get_amount0_delta(sqrt_lower, sqrt_upper, magnitude, round_up)
        elif self.tick < tick_upper:
            amount0 = get_amount0_delta(self.sqrt_price, sqrt_upper, magnitude, round_up)
            amount1 = get_amount1_delta(sqrt_lower, self.sqrt_price, magnitude, round_up)
            self.liquidity += liquidity_delta
        else:
            amount1 = get_amount1_delta(sqrt_lower, sqrt_upper, magnitude, round_up)

        return sign * amount0, sign * amount1

    def _update_position(
        self,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        liquidity_delta: int,
    ) -> Position:
        key = position_key(owner, tick_lower, tick_upper)
        position = self.positions.get(key)
        if position is None:
            if liquidity_delta <= 0:
                raise PoolError("No position to modify")
            position = Position(
                owner=normalize_address(owner),
                tick_lower=tick_lower,
                tick_upper=tick_upper,
            )
            self.positions[key] = position
        elif liquidity_delta == 0 and position.liquidity == 0:
            raise PoolError("Cannot poke an empty position")
        if liquidity_delta < 0 and -liquidity_delta > position.liquidity:
            raise PoolError("Burn amount exceeds position liquidity")

        flipped_lower = flipped_upper = False
        if liquidity_delta != 0:
            flipped_lower = self._update_tick(tick_lower, liquidity_delta, upper=False)
            flipped_upper = self._update_tick(tick_upper, liquidity_delta, upper=True)

        inside_0, inside_1 = self._get_fee_growth_inside(tick_lower, tick_upper)
        position.tokens_owed_0 += mul_div(
            inside_0 - position.fee_growth_inside_0_last, position.liquidity, Q128
        )
        position.tokens_owed_1 += mul_div(
            inside_1 - position.fee_growth_inside_1_last, position.liquidity, Q128
        )
        position.fee_growth_inside_0_last = inside_0
        position.fee_growth_inside_1_last = inside_1
        position.liquidity += liquidity_delta

        # cleared ticks are only deleted after fee growth inside was read
        if liquidity_delta < 0:
            if flipped_lower:
                del self.ticks[tick_lower]
            if flipped_upper:
                del self.ticks[tick_upper]

        return position

    def _validate_ticks(self, tick_lower: int, tick_upper: int) -> None:
        """Validate tick range."""
        if tick_lower >= tick_upper:
            raise PoolError("tick_lower must be less than tick_upper")

        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise PoolError("Ticks out of range")

        if tick_lower % self.tick_spacing != 0 or tick_upper % self.tick_spacing != 0:
            raise PoolError(f"Ticks must be multiples of {self.tick_spacing}")

    def _update_tick(self, tick: int, liquidity_delta: int, upper: bool) -> bool:
        """Update tick liquidity; returns True if the tick flipped state."""
        info = self.ticks.setdefault(tick, TickInfo())
        gross_before = info.liquidity_gross
        gross_after = gross_before + liquidity_delta

        if gross_before == 0 and tick <= self.tick:
            # all growth before initialization is assumed to be below the tick
            info.fee_growth_outside_0 = self.fee_growth_global_0
            info.fee_growth_outside_1 = self.fee_growth_global_1

        info.liquidity_gross = gross_after
        if upper:
            info.liquidity_net -= liquidity_delta
        else:
            info.liquidity_net += liquidity_delta

        return (gross_after == 0) != (gross_before == 0)

    def _cross_tick(self, tick: int, zero_for_one: bool, fee_growth_global: int) -> int:
        """Flip fee growth outside of ``tick``; returns its liquidity_net."""
        info = self.ticks.get(tick)
        if info is None:
            return 0

        if zero_for_one:
            info.fee_growth_outside_0 = fee_growth_global - info.fee_growth_outside_0
            info.fee_growth_outside_1 = self.fee_growth_global_1 - info.fee_growth_outside_1
        else:
            info.fee_growth_outside_0 = self.fee_growth_global_0 - info.fee_growth_outside_0
            info.fee_growth_outside_1 = fee_growth_global - info.fee_growth_outside_1
        return info.liquidity_net

    def _next_initialized_tick(self, tick: int, lte: bool) -> int:
        """Nearest initialized tick at or below (lte) or strictly above ``tick``."""
        initialized = sorted(self.ticks)
        if lte:
            index = bisect.bisect_right(initialized, tick)
            return initialized[index - 1] if index > 0 else MIN_TICK
        index = bisect.bisect_right(initialized, tick)
        return initialized[index] if index < len(initialized) else MAX_TICK

    def _get_fee_growth_inside(self, tick_lower: int, tick_upper: int) -> tuple[int, int]:
        """Calculate fee growth inside a tick range for both tokens."""
        lower_info = self.ticks.get(tick_lower, TickInfo())
        upper_info = self.ticks.get(tick_upper, TickInfo())

        result = []
        for global_growth, outside_lower, outside_upper in (
            (self.fee_growth_global_0, lower_info.fee_growth_outside_0, upper_info.fee_growth_outside_0),
            (self.fee_growth_global_1, lower_info.fee_growth_outside_1, upper_info.fee_growth_outside_1),
        ):
            if self.tick >= tick_lower:
                below = outside_lower
            else:
                below = global_growth - outside_lower

            if self.tick < tick_upper:
                above = outside_upper
            else:
                above = global_growth - outside_upper

            result.append(global_growth - below - above)

        return result[0], result[1]

    # ==================== Helpers ====================

    def _balance(self, token: str) -> int:
        return self.chain.get(token).balance_of(self.address)

    def _require_initialized(self) -> None:
        if self.sqrt_price == 0:
            raise PoolError("Pool is not initialized")

    def _require_not_locked(self) -> None:
        if self._locked:
            raise PoolError("Pool is locked")


@dataclass
class ConcentratedLiquidityFactory:
    """Factory for deploying concentrated liquidity pools."""

    chain: "Chain" = field(repr=False, compare=False)
    owner: str = ""
    address: str = ""

    # fee -> tick spacing
    fee_amount_tick_spacing: dict[int, int] = field(
        default_factory=lambda: {tier.fee: tier.tick_spacing for tier in FeeTier}
    )

    # pair key -> fee -> pool address
    pool_by_pair: dict[str, dict[int, str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.owner = normalize_address(self.owner)
        if not self.address:
            self.address = self.chain.next_address("ConcentratedLiquidityFactory", self.owner)

    @staticmethod
    def _pair_key(token_a: str, token_b: str) -> tuple[str, str, str]:
        token0, token1 = sorted((normalize_address(token_a), normalize_address(token_b)))
        return token0, token1, f"{token0}:{token1}"

    @transactional
    def create_pool(
        self,
        caller: str,
        token_a: str,
        token_b: str,
        fee: int,
        initial_sqrt_price: int | None = None,
    ) -> ConcentratedLiquidityPool:
        """
        Create a new concentrated liquidity pool.

        Args:
            caller: Pool creator
            token_a: One token of the pair
            token_b: The other token
            fee: Fee in hundredths of a basis point (must be enabled)
            initial_sqrt_price: Optional starting price (token1/token0, Q64.96)

        Returns:
            Created pool
        """
        if normalize_address(token_a) == normalize_address(token_b):
            raise PoolError("Identical tokens")

        tick_spacing = self.fee_amount_tick_spacing.get(fee)
        if tick_spacing is None:
            raise PoolError(f"Fee {fee} is not enabled")

        token0, token1, pair_key = self._pair_key(token_a, token_b)
        if fee in self.pool_by_pair.get(pair_key, {}):
            raise PoolError(f"Pool already exists for {pair_key} at {fee} fee")

        pool = ConcentratedLiquidityPool(
            chain=self.chain,
            token0=token0,
            token1=token1,
            fee=fee,
            tick_spacing=tick_spacing,
            factory=self.address,
        )
        self.chain.register(pool)
        self.pool_by_pair.setdefault(pair_key, {})[fee] = pool.address

        if initial_sqrt_price is not None:
            pool.initialize(initial_sqrt_price)

        logger.info(
            "Concentrated liquidity pool created",
            extra={
                "event": "factory.pool_created",
                "pool": pool.address[:10],
                "pair": pair_key,
                "fee": fee,
                "creator": normalize_address(caller)[:10],
            }
        )

        return pool

    def get_pool(
        self,
        token_a: str,
        token_b: str,
        fee: int,
    ) -> ConcentratedLiquidityPool | None:
        """Get pool by token pair and fee."""
        _, _, pair_key = self._pair_key(token_a, token_b)
        pool_address = self.pool_by_pair.get(pair_key, {}).get(fee)
        if not pool_address:
            return None
        return self.chain.get(pool_address)
