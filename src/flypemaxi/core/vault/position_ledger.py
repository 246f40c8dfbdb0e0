"""
Position ledger for FLYPE-MAXI vaults.

Tracks the vault's single concentrated liquidity position and its idle
token balances, and moves liquidity in and out of the pool. The pool pays
the vault through its mint and swap callbacks, which are only honoured when
the pool itself calls them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Tuple

from ..chain import NULL_ADDRESS, normalize_address
from ..contracts.proxy import view
from ..defi.concentrated_liquidity import position_key
from ..defi.liquidity_amounts import get_amounts_for_liquidity, get_liquidity_for_amounts
from ..defi.safe_math import MAX_UINT128, bps_of
from ..defi.tick_math import MAX_TICK, MIN_TICK, get_sqrt_ratio_at_tick
from ..exceptions import AccessDenied, InvalidRange
from .fee_engine import admin_fee_cut

if TYPE_CHECKING:
    from ..chain import Chain
    from ..contracts.erc20 import ERC20Token
    from ..defi.concentrated_liquidity import ConcentratedLiquidityPool

logger = logging.getLogger(__name__)


def validate_tick_range(lower_tick: int, upper_tick: int, tick_spacing: int) -> None:
    """
    Check a position range against the pool's tick grid.

    Raises:
        InvalidRange: If the range is empty, off-grid or out of bounds
    """
    if lower_tick >= upper_tick:
        raise InvalidRange(
            f"Lower tick {lower_tick} must be below upper tick {upper_tick}",
            details={"lower_tick": lower_tick, "upper_tick": upper_tick},
        )
    if lower_tick < MIN_TICK or upper_tick > MAX_TICK:
        raise InvalidRange(
            f"Range [{lower_tick}, {upper_tick}] exceeds [{MIN_TICK}, {MAX_TICK}]",
            details={"lower_tick": lower_tick, "upper_tick": upper_tick},
        )
    if lower_tick % tick_spacing != 0 or upper_tick % tick_spacing != 0:
        raise InvalidRange(
            f"Ticks must be multiples of {tick_spacing}",
            details={
                "lower_tick": lower_tick,
                "upper_tick": upper_tick,
                "tick_spacing": tick_spacing,
            },
        )


class PositionLedger:
    """Vault mixin owning the pool position and idle balances."""

    chain: "Chain"

    # ==================== Lookups ====================

    def _pool(self, vault: Any) -> "ConcentratedLiquidityPool":
        return self.chain.get(vault.storage.pool)

    def _token(self, address: str) -> "ERC20Token":
        return self.chain.get(address)

    def _range_ratios(self, vault: Any) -> Tuple[int, int]:
        storage = vault.storage
        return (
            get_sqrt_ratio_at_tick(storage.lower_tick),
            get_sqrt_ratio_at_tick(storage.upper_tick),
        )

    # ==================== View Functions ====================

    @view
    def pool(self, vault: Any) -> str:
        return vault.storage.pool

    @view
    def token0(self, vault: Any) -> str:
        return vault.storage.token0

    @view
    def token1(self, vault: Any) -> str:
        return vault.storage.token1

    @view
    def lower_tick(self, vault: Any) -> int:
        return vault.storage.lower_tick

    @view
    def upper_tick(self, vault: Any) -> int:
        return vault.storage.upper_tick

    @view
    def get_position_id(self, vault: Any) -> str:
        """Key of the vault's position in the pool."""
        storage = vault.storage
        return position_key(vault.address, storage.lower_tick, storage.upper_tick)

    @view
    def position_liquidity(self, vault: Any) -> int:
        storage = vault.storage
        return self._pool(vault).position_liquidity(
            vault.address, storage.lower_tick, storage.upper_tick
        )

    @view
    def uncollected_fees(self, vault: Any) -> Tuple[int, int]:
        """Fees owed to the position, before the protocol and manager cuts."""
        storage = vault.storage
        return self._pool(vault).position_fees(
            vault.address, storage.lower_tick, storage.upper_tick
        )

    @view
    def idle_balances(self, vault: Any) -> Tuple[int, int]:
        """Token balances held outside the position, net of fee reserves."""
        storage = vault.storage
        balance0 = self._token(storage.token0).balance_of(vault.address)
        balance1 = self._token(storage.token1).balance_of(vault.address)
        return (
            balance0 - storage.manager_balance0 - storage.protocol_balance0,
            balance1 - storage.manager_balance1 - storage.protocol_balance1,
        )

    @view
    def get_underlying_balances(self, vault: Any) -> Tuple[int, int]:
        """
        Holders' claim on both tokens at the current pool price.

        Sums the position's principal, its uncollected fees net of the
        protocol and manager cuts, and the idle balances. Amounts are
        rounded down.

        Returns:
            (amount0, amount1)
        """
        amount0, amount1 = self._position_amounts(
            vault, self._pool(vault).sqrt_price, self.position_liquidity(vault)
        )
        fee0, fee1 = self.uncollected_fees(vault)
        net0, net1 = self._net_fees(vault, fee0, fee1)
        idle0, idle1 = self.idle_balances(vault)
        return amount0 + net0 + idle0, amount1 + net1 + idle1

    @view
    def get_underlying_balances_at_price(
        self, vault: Any, sqrt_price_x96: int
    ) -> Tuple[int, int]:
        """
        Principal plus idle balances valued at an arbitrary price.

        Uncollected fees are left out, so the result is a lower bound of the
        holders' claim at that price.
        """
        amount0, amount1 = self._position_amounts(
            vault, sqrt_price_x96, self.position_liquidity(vault)
        )
        idle0, idle1 = self.idle_balances(vault)
        return amount0 + idle0, amount1 + idle1

    # ==================== Liquidity Math ====================

    def _position_amounts(
        self, vault: Any, sqrt_price_x96: int, liquidity: int
    ) -> Tuple[int, int]:
        if liquidity == 0:
            return 0, 0
        sqrt_lower, sqrt_upper = self._range_ratios(vault)
        return get_amounts_for_liquidity(sqrt_price_x96, sqrt_lower, sqrt_upper, liquidity)

    def _liquidity_for_amounts(
        self, vault: Any, sqrt_price_x96: int, amount0: int, amount1: int
    ) -> int:
        sqrt_lower, sqrt_upper = self._range_ratios(vault)
        return get_liquidity_for_amounts(
            sqrt_price_x96, sqrt_lower, sqrt_upper, amount0, amount1
        )

    def _net_fees(self, vault: Any, fee0: int, fee1: int) -> Tuple[int, int]:
        """Fees left to holders after the protocol and manager cuts."""
        manager_fee_bps = vault.storage.manager_fee_bps
        protocol0, manager0 = admin_fee_cut(fee0, manager_fee_bps)
        protocol1, manager1 = admin_fee_cut(fee1, manager_fee_bps)
        return fee0 - protocol0 - manager0, fee1 - protocol1 - manager1

    # ==================== Pool Interactions ====================

    def _deposit(
        self,
        vault: Any,
        amount0: int,
        amount1: int,
        swap_threshold_price: int | None = None,
        swap_amount_bps: int = 0,
        zero_for_one: bool = False,
    ) -> int:
        """
        Add liquidity to the active range.

        After the first mint, ``swap_amount_bps`` of the leftover idle
        balance in the ``zero_for_one`` direction is swapped through the
        pool (bounded by ``swap_threshold_price``) and the proceeds are
        added as well. Whatever still does not fit stays idle.

        Returns:
            Liquidity added
        """
        storage = vault.storage
        pool = self._pool(vault)
        added = 0

        liquidity = self._liquidity_for_amounts(vault, pool.sqrt_price, amount0, amount1)
        if liquidity > 0:
            pool.mint(vault.address, vault.address, storage.lower_tick, storage.upper_tick, liquidity)
            added += liquidity

        if swap_amount_bps > 0:
            idle0, idle1 = self.idle_balances(vault)
            swap_amount = bps_of(idle0 if zero_for_one else idle1, swap_amount_bps)
            if swap_amount > 0:
                pool.swap(
                    vault.address,
                    vault.address,
                    zero_for_one,
                    swap_amount,
                    swap_threshold_price,
                )
                idle0, idle1 = self.idle_balances(vault)
                liquidity = self._liquidity_for_amounts(vault, pool.sqrt_price, idle0, idle1)
                if liquidity > 0:
                    pool.mint(
                        vault.address,
                        vault.address,
                        storage.lower_tick,
                        storage.upper_tick,
                        liquidity,
                    )
                    added += liquidity

        return added

    def _withdraw(self, vault: Any, liquidity: int) -> Tuple[int, int, int, int]:
        """
        Remove liquidity and collect everything the position is owed.

        A zero ``liquidity`` still accrues and collects pending fees.

        Returns:
            (burned0, burned1, fee0, fee1)
        """
        storage = vault.storage
        pool = self._pool(vault)
        burned0 = burned1 = 0

        if self.position_liquidity(vault) > 0:
            burned0, burned1 = pool.burn(
                vault.address, storage.lower_tick, storage.upper_tick, liquidity
            )

        collected0, collected1 = pool.collect(
            vault.address,
            vault.address,
            storage.lower_tick,
            storage.upper_tick,
            MAX_UINT128,
            MAX_UINT128,
        )
        return burned0, burned1, collected0 - burned0, collected1 - burned1

    # ==================== Pool Callbacks ====================

    def uniswap_v3_mint_callback(
        self, vault: Any, caller: str, amount0_owed: int, amount1_owed: int
    ) -> None:
        """Pay the pool for liquidity minted on the vault's behalf."""
        storage = self._require_pool_caller(vault, caller)
        if amount0_owed > 0:
            self._token(storage.token0).transfer(vault.address, storage.pool, amount0_owed)
        if amount1_owed > 0:
            self._token(storage.token1).transfer(vault.address, storage.pool, amount1_owed)

    def uniswap_v3_swap_callback(
        self, vault: Any, caller: str, amount0_delta: int, amount1_delta: int
    ) -> None:
        """Pay the input side of a swap the vault initiated."""
        storage = self._require_pool_caller(vault, caller)
        if amount0_delta > 0:
            self._token(storage.token0).transfer(vault.address, storage.pool, amount0_delta)
        elif amount1_delta > 0:
            self._token(storage.token1).transfer(vault.address, storage.pool, amount1_delta)

    def _require_pool_caller(self, vault: Any, caller: str) -> Any:
        storage = vault.storage
        if storage.pool == NULL_ADDRESS or normalize_address(caller) != storage.pool:
            logger.warning(
                "Rejected pool callback",
                extra={
                    "event": "vault.callback_rejected",
                    "vault": vault.address[:10],
                    "caller": normalize_address(caller)[:10],
                },
            )
            raise AccessDenied("Callback caller is not the vault's pool")
        return storage
