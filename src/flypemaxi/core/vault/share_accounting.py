"""
Share accounting for FLYPE-MAXI vaults.

Shares are an ERC20 minted against deposits and burned for a pro-rata claim
on the vault's principal, net fees and idle balances. Deposits are always
rounded in the vault's favour and withdrawals against the holder, so
existing holders are never diluted by rounding.
"""

from __future__ import annotations

import logging
from typing import Any, Tuple

from ..chain import NULL_ADDRESS, normalize_address
from ..contracts.access_control import Role, check_role, nonreentrant
from ..contracts.proxy import view
from ..defi.liquidity_amounts import get_amounts_for_liquidity
from ..defi.safe_math import mul_div
from ..exceptions import InsufficientShares, InvalidParameter

logger = logging.getLogger(__name__)


class ShareAccounting:
    """Vault mixin issuing and redeeming shares."""

    # ==================== Share Token ====================

    @view
    def name(self, vault: Any) -> str:
        return vault.storage.shares.name

    @view
    def symbol(self, vault: Any) -> str:
        return vault.storage.shares.symbol

    @view
    def decimals(self, vault: Any) -> int:
        return vault.storage.shares.decimals

    @view
    def total_supply(self, vault: Any) -> int:
        return vault.storage.shares.total_supply

    @view
    def balance_of(self, vault: Any, account: str) -> int:
        return vault.storage.shares.balance_of(account)

    @view
    def allowance(self, vault: Any, owner: str, spender: str) -> int:
        return vault.storage.shares.allowance(owner, spender)

    def transfer(self, vault: Any, caller: str, recipient: str, amount: int) -> bool:
        return vault.storage.shares.transfer(caller, recipient, amount)

    def approve(self, vault: Any, caller: str, spender: str, amount: int) -> bool:
        return vault.storage.shares.approve(caller, spender, amount)

    def transfer_from(
        self, vault: Any, caller: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        return vault.storage.shares.transfer_from(caller, from_addr, to_addr, amount)

    # ==================== Quotes ====================

    @view
    def get_mint_amounts(
        self, vault: Any, amount0_max: int, amount1_max: int
    ) -> Tuple[int, int, int]:
        """
        Largest share mint that fits within the given maxima.

        For an empty vault the share amount equals the liquidity the maxima
        can provide in the active range. Otherwise shares are priced from
        the current underlying balances, taking the tighter of the two
        token ratios.

        Args:
            amount0_max: Most token0 the depositor will pay
            amount1_max: Most token1 the depositor will pay

        Returns:
            (mint_amount, amount0, amount1); all zero if nothing can be minted
        """
        if amount0_max < 0 or amount1_max < 0:
            return 0, 0, 0

        total_supply = vault.storage.shares.total_supply
        sqrt_price = self._pool(vault).sqrt_price

        if total_supply == 0:
            mint_amount = self._liquidity_for_amounts(vault, sqrt_price, amount0_max, amount1_max)
            if mint_amount == 0:
                return 0, 0, 0
            amount0, amount1 = self._amounts_for_shares(vault, mint_amount)
            if amount0 == 0 and amount1 == 0:
                return 0, 0, 0
            return mint_amount, amount0, amount1

        current0, current1 = self.get_underlying_balances(vault)
        if current0 == 0 and current1 == 0:
            return 0, 0, 0

        candidates = []
        if current0 > 0:
            candidates.append(mul_div(amount0_max, total_supply, current0))
        if current1 > 0:
            candidates.append(mul_div(amount1_max, total_supply, current1))
        mint_amount = min(candidates)
        if mint_amount == 0:
            return 0, 0, 0

        amount0, amount1 = self._amounts_for_shares(vault, mint_amount)
        return mint_amount, amount0, amount1

    def _amounts_for_shares(self, vault: Any, mint_amount: int) -> Tuple[int, int]:
        """Tokens owed for ``mint_amount`` new shares, rounded up once supply exists."""
        total_supply = vault.storage.shares.total_supply
        if total_supply == 0:
            sqrt_lower, sqrt_upper = self._range_ratios(vault)
            return get_amounts_for_liquidity(
                self._pool(vault).sqrt_price, sqrt_lower, sqrt_upper, mint_amount
            )

        current0, current1 = self.get_underlying_balances(vault)
        return (
            mul_div(current0, mint_amount, total_supply, round_up=True),
            mul_div(current1, mint_amount, total_supply, round_up=True),
        )

    # ==================== Mint & Burn ====================

    @nonreentrant
    def mint(
        self, vault: Any, caller: str, mint_amount: int, receiver: str
    ) -> Tuple[int, int, int]:
        """
        Mint shares to ``receiver`` for tokens pulled from ``caller``.

        The caller must have approved the vault for both tokens. The
        deposit is added to the active range; whatever does not fit stays
        idle in the vault.

        Args:
            caller: Depositor paying the tokens
            mint_amount: Shares to mint
            receiver: Share recipient

        Returns:
            (amount0, amount1, liquidity_minted)

        Raises:
            AccessDenied: If minting is restricted and the caller is not the manager
            InvalidParameter: If the amount is zero, the receiver is null or
                the shares would be free
        """
        storage = vault.storage
        if storage.restrict_mint:
            check_role(Role.MANAGER, caller, {Role.MANAGER: storage.manager})
        if mint_amount <= 0:
            raise InvalidParameter("Mint amount must be positive")
        receiver = normalize_address(receiver)
        if receiver == NULL_ADDRESS:
            raise InvalidParameter("Receiver cannot be the null address")

        amount0, amount1 = self._amounts_for_shares(vault, mint_amount)
        if amount0 == 0 and amount1 == 0:
            raise InvalidParameter(
                "Mint amount too small",
                details={"mint_amount": mint_amount},
            )

        storage.shares.mint(vault.address, receiver, mint_amount)

        if amount0 > 0:
            self._token(storage.token0).transfer_from(vault.address, caller, vault.address, amount0)
        if amount1 > 0:
            self._token(storage.token1).transfer_from(vault.address, caller, vault.address, amount1)

        liquidity_minted = self._deposit(vault, amount0, amount1)

        self._emit(
            vault,
            "Minted",
            receiver=receiver,
            mint_amount=mint_amount,
            amount0_in=amount0,
            amount1_in=amount1,
            liquidity_minted=liquidity_minted,
        )
        logger.info(
            "Vault shares minted",
            extra={
                "event": "vault.minted",
                "vault": vault.address[:10],
                "receiver": receiver[:10],
                "shares": mint_amount,
                "amount0": amount0,
                "amount1": amount1,
            },
        )

        return amount0, amount1, liquidity_minted

    @nonreentrant
    def burn(
        self, vault: Any, caller: str, burn_amount: int, receiver: str
    ) -> Tuple[int, int, int]:
        """
        Burn the caller's shares and pay their pro-rata claim to ``receiver``.

        The claim covers the same share of the position principal, the
        uncollected fees net of the protocol and manager cuts, and the idle
        balances. Pending fees of the whole position are harvested and
        their cuts credited to the reserves.

        Returns:
            (amount0, amount1, liquidity_burned)

        Raises:
            InvalidParameter: If the amount is zero or the receiver is null
            InsufficientShares: If the caller holds fewer shares
        """
        storage = vault.storage
        if burn_amount <= 0:
            raise InvalidParameter("Burn amount must be positive")
        receiver = normalize_address(receiver)
        if receiver == NULL_ADDRESS:
            raise InvalidParameter("Receiver cannot be the null address")

        balance = storage.shares.balance_of(caller)
        if balance < burn_amount:
            raise InsufficientShares(
                f"Burn amount exceeds share balance ({burn_amount} > {balance})",
                details={"holder": normalize_address(caller), "balance": balance},
            )

        total_supply = storage.shares.total_supply
        liquidity_burned = mul_div(burn_amount, self.position_liquidity(vault), total_supply)
        principal0, principal1 = self._position_amounts(
            vault, self._pool(vault).sqrt_price, liquidity_burned
        )
        fee0, fee1 = self.uncollected_fees(vault)
        net0, net1 = self._net_fees(vault, fee0, fee1)
        idle0, idle1 = self.idle_balances(vault)

        amount0 = principal0 + mul_div(idle0 + net0, burn_amount, total_supply)
        amount1 = principal1 + mul_div(idle1 + net1, burn_amount, total_supply)

        storage.shares.burn(caller, burn_amount)
        self._apply_admin_fees(vault, fee0, fee1)

        self._withdraw(vault, liquidity_burned)
        if amount0 > 0:
            self._token(storage.token0).transfer(vault.address, receiver, amount0)
        if amount1 > 0:
            self._token(storage.token1).transfer(vault.address, receiver, amount1)

        self._emit(
            vault,
            "Burned",
            receiver=receiver,
            burn_amount=burn_amount,
            amount0_out=amount0,
            amount1_out=amount1,
            liquidity_burned=liquidity_burned,
        )
        logger.info(
            "Vault shares burned",
            extra={
                "event": "vault.burned",
                "vault": vault.address[:10],
                "receiver": receiver[:10],
                "shares": burn_amount,
                "amount0": amount0,
                "amount1": amount1,
            },
        )

        return amount0, amount1, liquidity_burned
