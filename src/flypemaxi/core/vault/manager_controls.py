"""Manager controls: mint restriction, reserve withdrawals and ownership."""

from __future__ import annotations

import logging
from typing import Any, Tuple

from ..chain import NULL_ADDRESS, normalize_address
from ..contracts.access_control import Role, requires_role
from ..contracts.proxy import view
from ..exceptions import InvalidParameter

logger = logging.getLogger(__name__)


class ManagerControls:
    """Vault mixin for the manager's own surface."""

    protocol_treasury: str

    # ==================== View Functions ====================

    @view
    def manager(self, vault: Any) -> str:
        return vault.storage.manager

    @view
    def manager_treasury(self, vault: Any) -> str:
        return vault.storage.manager_treasury

    @view
    def restrict_mint(self, vault: Any) -> bool:
        return vault.storage.restrict_mint

    @view
    def max_rebalance_payout_bps(self, vault: Any) -> int:
        return vault.storage.max_rebalance_payout_bps

    @view
    def slippage_bps(self, vault: Any) -> int:
        return vault.storage.slippage_bps

    @view
    def slippage_interval(self, vault: Any) -> int:
        return vault.storage.slippage_interval

    # ==================== Mint Restriction ====================

    @requires_role(Role.MANAGER)
    def toggle_restrict_mint(self, vault: Any, caller: str) -> bool:
        """Flip whether only the manager may mint; returns the new setting."""
        storage = vault.storage
        storage.restrict_mint = not storage.restrict_mint
        self._emit(vault, "RestrictMint", restricted=storage.restrict_mint)
        return storage.restrict_mint

    # ==================== Reserve Withdrawals ====================

    def withdraw_manager_balance(self, vault: Any, caller: str) -> Tuple[int, int]:
        """
        Send the manager reserves to the manager treasury.

        Callable by anyone. Does nothing while the reserves are empty or no
        treasury is set.

        Returns:
            (amount0, amount1) sent
        """
        storage = vault.storage
        treasury = storage.manager_treasury
        if treasury == NULL_ADDRESS:
            logger.warning(
                "Manager balance withdrawal skipped: no treasury",
                extra={"event": "vault.manager_withdraw_skipped", "vault": vault.address[:10]},
            )
            return 0, 0

        amount0, amount1 = storage.manager_balance0, storage.manager_balance1
        storage.manager_balance0 = 0
        storage.manager_balance1 = 0
        self._pay_out(vault, treasury, amount0, amount1)

        if amount0 or amount1:
            self._emit(vault, "WithdrawManagerBalance", amount0=amount0, amount1=amount1)
        return amount0, amount1

    def withdraw_flype_maxi_balance(self, vault: Any, caller: str) -> Tuple[int, int]:
        """Send the protocol reserves to the protocol treasury (callable by anyone)."""
        storage = vault.storage
        treasury = normalize_address(self.protocol_treasury)
        if treasury == NULL_ADDRESS:
            logger.warning(
                "Protocol balance withdrawal skipped: no treasury",
                extra={"event": "vault.protocol_withdraw_skipped", "vault": vault.address[:10]},
            )
            return 0, 0

        amount0, amount1 = storage.protocol_balance0, storage.protocol_balance1
        storage.protocol_balance0 = 0
        storage.protocol_balance1 = 0
        self._pay_out(vault, treasury, amount0, amount1)

        if amount0 or amount1:
            self._emit(vault, "WithdrawProtocolBalance", amount0=amount0, amount1=amount1)
        return amount0, amount1

    def _pay_out(self, vault: Any, recipient: str, amount0: int, amount1: int) -> None:
        storage = vault.storage
        if amount0 > 0:
            self._token(storage.token0).transfer(vault.address, recipient, amount0)
        if amount1 > 0:
            self._token(storage.token1).transfer(vault.address, recipient, amount1)

    # ==================== Ownership ====================

    @requires_role(Role.MANAGER)
    def transfer_ownership(self, vault: Any, caller: str, new_manager: str) -> bool:
        """
        Hand the manager role to ``new_manager``.

        Raises:
            InvalidParameter: If ``new_manager`` is the null address
        """
        storage = vault.storage
        new_manager = normalize_address(new_manager)
        if new_manager == NULL_ADDRESS:
            raise InvalidParameter("New manager cannot be the null address")

        previous = storage.manager
        storage.manager = new_manager
        self._emit(vault, "OwnershipTransferred", previous_manager=previous, new_manager=new_manager)
        logger.info(
            "Vault ownership transferred",
            extra={
                "event": "vault.ownership_transferred",
                "vault": vault.address[:10],
                "previous": previous[:10],
                "new": new_manager[:10],
            },
        )
        return True

    @requires_role(Role.MANAGER)
    def renounce_ownership(self, vault: Any, caller: str) -> bool:
        """
        Give up the manager role for good.

        The manager fee stops and unwithdrawn manager reserves are released
        to the share holders.
        """
        storage = vault.storage
        previous = storage.manager
        released = (storage.manager_balance0, storage.manager_balance1)

        storage.manager = NULL_ADDRESS
        storage.manager_treasury = NULL_ADDRESS
        storage.manager_fee_bps = 0
        storage.manager_balance0 = 0
        storage.manager_balance1 = 0

        self._emit(vault, "OwnershipTransferred", previous_manager=previous, new_manager=NULL_ADDRESS)
        logger.info(
            "Vault ownership renounced",
            extra={
                "event": "vault.ownership_renounced",
                "vault": vault.address[:10],
                "released0": released[0],
                "released1": released[1],
            },
        )
        return True
