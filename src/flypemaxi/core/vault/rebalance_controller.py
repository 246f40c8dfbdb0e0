"""
Rebalance controller for FLYPE-MAXI vaults.

Two kinds of rebalance exist:
- ``rebalance``: the protocol rebalancer compounds harvested fees into the
  same range and is paid a capped fee for it
- ``executive_rebalance``: the manager moves the whole position to a new
  range

Both may swap part of the idle balance before redepositing. Swaps are
bounded by a threshold price that must sit within the manager's slippage
band, and rebalancer compounding is locked for a cooldown after every
parameter change.
"""

from __future__ import annotations

import logging
from typing import Any

from ..chain import normalize_address
from ..config import MAX_MANAGER_FEE_BPS, PROTOCOL_FEE_BPS
from ..contracts.access_control import Role, nonreentrant, requires_role
from ..contracts.proxy import view
from ..defi.safe_math import BPS_DENOMINATOR, mul_div
from ..exceptions import InvalidParameter, Locked, SlippageExceeded
from .fee_engine import compute_fee_split
from .position_ledger import validate_tick_range

logger = logging.getLogger(__name__)


class RebalanceController:
    """Vault mixin for manager parameters and rebalancing."""

    # ==================== Parameters ====================

    @requires_role(Role.MANAGER)
    def update_manager_params(
        self,
        vault: Any,
        caller: str,
        manager_fee_bps: int | None = None,
        manager_treasury: str | None = None,
        max_rebalance_payout_bps: int | None = None,
        slippage_bps: int | None = None,
        slippage_interval: int | None = None,
    ) -> bool:
        """
        Update manager-controlled parameters.

        ``None`` leaves a parameter unchanged. Any effective change restarts
        the rebalance cooldown.

        Args:
            caller: Must be the manager
            manager_fee_bps: Manager cut of harvested fees
            manager_treasury: Receiver of manager reserve withdrawals
            max_rebalance_payout_bps: Cap on the rebalancer payout
            slippage_bps: Width of the allowed swap band around the pool price
            slippage_interval: Cooldown in seconds

        Returns:
            True if any parameter changed
        """
        storage = vault.storage

        new_fee = storage.manager_fee_bps if manager_fee_bps is None else manager_fee_bps
        if not 0 <= new_fee <= MAX_MANAGER_FEE_BPS:
            raise InvalidParameter(
                f"Manager fee must be within [0, {MAX_MANAGER_FEE_BPS}] bps",
                details={"manager_fee_bps": new_fee},
            )

        new_payout = (
            storage.max_rebalance_payout_bps
            if max_rebalance_payout_bps is None
            else max_rebalance_payout_bps
        )
        payout_cap = BPS_DENOMINATOR - PROTOCOL_FEE_BPS - new_fee
        if not 0 <= new_payout <= payout_cap:
            raise InvalidParameter(
                f"Max rebalance payout must be within [0, {payout_cap}] bps",
                details={"max_rebalance_payout_bps": new_payout},
            )

        if slippage_bps is not None and not 0 <= slippage_bps <= BPS_DENOMINATOR:
            raise InvalidParameter(
                f"Slippage must be within [0, {BPS_DENOMINATOR}] bps",
                details={"slippage_bps": slippage_bps},
            )
        if slippage_interval is not None and slippage_interval < 0:
            raise InvalidParameter("Slippage interval cannot be negative")

        updates = {
            "manager_fee_bps": manager_fee_bps,
            "manager_treasury": (
                None if manager_treasury is None else normalize_address(manager_treasury)
            ),
            "max_rebalance_payout_bps": max_rebalance_payout_bps,
            "slippage_bps": slippage_bps,
            "slippage_interval": slippage_interval,
        }
        changed = {
            key: value
            for key, value in updates.items()
            if value is not None and getattr(storage, key) != value
        }
        if not changed:
            return False

        for key, value in changed.items():
            setattr(storage, key, value)
        storage.last_param_update_time = self.chain.now()

        self._emit(vault, "UpdateManagerParams", **changed)
        logger.info(
            "Manager params updated",
            extra={
                "event": "vault.params_updated",
                "vault": vault.address[:10],
                "changed": sorted(changed),
            },
        )
        return True

    # ==================== Cooldown ====================

    @view
    def unlock_time(self, vault: Any) -> int:
        storage = vault.storage
        return storage.last_param_update_time + storage.slippage_interval

    @view
    def is_locked(self, vault: Any) -> bool:
        return self.chain.now() < self.unlock_time(vault)

    @view
    def cooldown_remaining(self, vault: Any) -> int:
        return max(0, self.unlock_time(vault) - self.chain.now())

    # ==================== Rebalancing ====================

    @requires_role(Role.REBALANCER)
    @nonreentrant
    def rebalance(
        self,
        vault: Any,
        caller: str,
        swap_threshold_price: int,
        swap_amount_bps: int,
        zero_for_one: bool,
        fee_amount: int,
        payment_token: str,
    ) -> int:
        """
        Compound harvested fees into the active range.

        The rebalancer is paid ``fee_amount`` of ``payment_token``, capped at
        the vault's max payout share of that token's fees.

        Args:
            caller: Must be the rebalancer
            swap_threshold_price: Swap price limit (sqrt Q64.96)
            swap_amount_bps: Share of the leftover to swap before redepositing
            zero_for_one: Swap direction
            fee_amount: Payout requested by the rebalancer
            payment_token: Token the payout is taken in

        Returns:
            Liquidity redeposited

        Raises:
            Locked: During the cooldown after a parameter change
            SlippageExceeded: If the threshold is outside the slippage band
            NoFeesEarned: If the position has no fees to compound
        """
        storage = vault.storage
        payment_index = self._payment_index(vault, payment_token)
        self._validate_swap_bps(swap_amount_bps)
        if fee_amount < 0:
            raise InvalidParameter("Rebalance fee cannot be negative")

        now = self.chain.now()
        unlock_time = self.unlock_time(vault)
        if now < unlock_time:
            raise Locked(
                f"Rebalancing is locked for another {unlock_time - now}s",
                unlock_time=unlock_time,
            )

        if swap_amount_bps > 0:
            self._check_slippage(vault, swap_threshold_price, zero_for_one)

        fee0, fee1 = self._harvest_fees(vault)

        split = compute_fee_split(
            fee0,
            fee1,
            storage.manager_fee_bps,
            storage.max_rebalance_payout_bps,
            fee_amount,
            payment_index,
        )
        self._apply_fee_split(vault, split)

        self._withdraw(vault, self.position_liquidity(vault))
        if split.payout0 > 0:
            self._token(storage.token0).transfer(vault.address, caller, split.payout0)
        if split.payout1 > 0:
            self._token(storage.token1).transfer(vault.address, caller, split.payout1)

        idle0, idle1 = self.idle_balances(vault)
        liquidity = self._deposit(
            vault, idle0, idle1, swap_threshold_price, swap_amount_bps, zero_for_one
        )

        self._emit(
            vault,
            "Rebalance",
            fee0=fee0,
            fee1=fee1,
            payout0=split.payout0,
            payout1=split.payout1,
            liquidity=liquidity,
        )
        logger.info(
            "Vault rebalanced",
            extra={
                "event": "vault.rebalanced",
                "vault": vault.address[:10],
                "fee0": fee0,
                "fee1": fee1,
                "payout": split.payout0 or split.payout1,
                "liquidity": liquidity,
            },
        )
        return liquidity

    @requires_role(Role.MANAGER)
    @nonreentrant
    def executive_rebalance(
        self,
        vault: Any,
        caller: str,
        new_lower_tick: int,
        new_upper_tick: int,
        swap_threshold_price: int | None = None,
        swap_amount_bps: int = 0,
        zero_for_one: bool = False,
    ) -> int:
        """
        Move the vault's liquidity to a new range.

        With no shares outstanding only the range changes. Pending fees are
        harvested with the protocol and manager cuts before the move.

        Returns:
            Liquidity deposited in the new range

        Raises:
            InvalidRange: If the new range is not valid for the pool
            SlippageExceeded: If a swap is requested with a threshold outside the slippage band
        """
        storage = vault.storage
        validate_tick_range(new_lower_tick, new_upper_tick, self._pool(vault).tick_spacing)
        self._validate_swap_bps(swap_amount_bps)

        if swap_amount_bps > 0 and swap_threshold_price is not None:
            self._check_slippage(vault, swap_threshold_price, zero_for_one)

        old_range = (storage.lower_tick, storage.upper_tick)
        liquidity = 0

        if storage.shares.total_supply > 0:
            fee0, fee1 = self.uncollected_fees(vault)
            self._apply_admin_fees(vault, fee0, fee1)
            self._withdraw(vault, self.position_liquidity(vault))

            storage.lower_tick = new_lower_tick
            storage.upper_tick = new_upper_tick

            idle0, idle1 = self.idle_balances(vault)
            liquidity = self._deposit(
                vault, idle0, idle1, swap_threshold_price, swap_amount_bps, zero_for_one
            )
        else:
            storage.lower_tick = new_lower_tick
            storage.upper_tick = new_upper_tick

        self._emit(
            vault,
            "ExecutiveRebalance",
            old_lower_tick=old_range[0],
            old_upper_tick=old_range[1],
            lower_tick=new_lower_tick,
            upper_tick=new_upper_tick,
            liquidity=liquidity,
        )
        logger.info(
            "Vault range moved",
            extra={
                "event": "vault.executive_rebalance",
                "vault": vault.address[:10],
                "old_range": f"[{old_range[0]}, {old_range[1]}]",
                "new_range": f"[{new_lower_tick}, {new_upper_tick}]",
                "liquidity": liquidity,
            },
        )
        return liquidity

    # ==================== Helpers ====================

    def _check_slippage(self, vault: Any, swap_threshold_price: int, zero_for_one: bool) -> None:
        """
        Require the swap threshold to sit within the slippage band.

        Raises:
            SlippageExceeded: If the threshold lies beyond the band
        """
        sqrt_price, _ = self._pool(vault).slot0()
        max_slippage = mul_div(sqrt_price, vault.storage.slippage_bps, BPS_DENOMINATOR)
        if zero_for_one:
            ok = swap_threshold_price >= sqrt_price - max_slippage
        else:
            ok = swap_threshold_price <= sqrt_price + max_slippage
        if not ok:
            raise SlippageExceeded(
                "Swap threshold price is outside the slippage band",
                details={
                    "sqrt_price": sqrt_price,
                    "threshold": swap_threshold_price,
                    "slippage_bps": vault.storage.slippage_bps,
                },
            )

    def _payment_index(self, vault: Any, payment_token: str) -> int:
        token = normalize_address(payment_token)
        if token == vault.storage.token0:
            return 0
        if token == vault.storage.token1:
            return 1
        raise InvalidParameter(
            "Payment token must be one of the vault's tokens",
            details={"payment_token": token},
        )

    @staticmethod
    def _validate_swap_bps(swap_amount_bps: int) -> None:
        if not 0 <= swap_amount_bps <= BPS_DENOMINATOR:
            raise InvalidParameter(
                f"Swap amount must be within [0, {BPS_DENOMINATOR}] bps",
                details={"swap_amount_bps": swap_amount_bps},
            )
