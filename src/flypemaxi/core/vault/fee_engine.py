"""
Fee engine for FLYPE-MAXI vaults.

Harvested pool fees are split between the protocol, the manager, the
rebalancer paying for a rebalance and the share holders. The protocol cut
is fixed; the manager cut is set per vault. Both cuts accrue to reserves
kept apart from the idle balances, so holders never own them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Tuple

from ..config import PROTOCOL_FEE_BPS
from ..contracts.proxy import view
from ..defi.safe_math import BPS_DENOMINATOR, bps_of
from ..exceptions import InvalidParameter, NoFeesEarned

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeSplit:
    """
    Division of one harvest.

    Attributes:
        fee0, fee1: Fees harvested from the position
        protocol0, protocol1: Protocol reserve credit
        manager0, manager1: Manager reserve credit
        payout0, payout1: Paid to the rebalancer (only in the payment token)
    """
    fee0: int
    fee1: int
    protocol0: int = 0
    protocol1: int = 0
    manager0: int = 0
    manager1: int = 0
    payout0: int = 0
    payout1: int = 0

    @property
    def reinvest0(self) -> int:
        return self.fee0 - self.protocol0 - self.manager0 - self.payout0

    @property
    def reinvest1(self) -> int:
        return self.fee1 - self.protocol1 - self.manager1 - self.payout1


def admin_fee_cut(fee: int, manager_fee_bps: int) -> Tuple[int, int]:
    """
    Protocol and manager cut of one token's fees.

    Each cut is rounded down on its own.

    Returns:
        (protocol_cut, manager_cut)
    """
    return bps_of(fee, PROTOCOL_FEE_BPS), bps_of(fee, manager_fee_bps)


def compute_fee_split(
    fee0: int,
    fee1: int,
    manager_fee_bps: int,
    max_payout_bps: int = 0,
    requested_payout: int = 0,
    payment_index: int | None = None,
) -> FeeSplit:
    """
    Split harvested fees.

    The rebalancer payout is taken from the payment token only and capped
    at ``max_payout_bps`` of that token's fees.

    Args:
        fee0: Token0 fees harvested
        fee1: Token1 fees harvested
        manager_fee_bps: Manager cut
        max_payout_bps: Cap on the payout, relative to the payment token's fees
        requested_payout: Payout asked for by the rebalancer
        payment_index: 0 or 1 for the payment token, None for no payout

    Returns:
        The split
    """
    if requested_payout < 0:
        raise InvalidParameter("Rebalance fee cannot be negative")
    if payment_index not in (None, 0, 1):
        raise InvalidParameter(f"Invalid payment token index: {payment_index}")
    if PROTOCOL_FEE_BPS + manager_fee_bps + max_payout_bps > BPS_DENOMINATOR:
        raise InvalidParameter("Fee cuts exceed 100%")

    protocol0, manager0 = admin_fee_cut(fee0, manager_fee_bps)
    protocol1, manager1 = admin_fee_cut(fee1, manager_fee_bps)

    payout0 = payout1 = 0
    if payment_index == 0:
        payout0 = min(requested_payout, bps_of(fee0, max_payout_bps))
    elif payment_index == 1:
        payout1 = min(requested_payout, bps_of(fee1, max_payout_bps))

    return FeeSplit(
        fee0=fee0,
        fee1=fee1,
        protocol0=protocol0,
        protocol1=protocol1,
        manager0=manager0,
        manager1=manager1,
        payout0=payout0,
        payout1=payout1,
    )


class FeeEngine:
    """Vault mixin crediting fee reserves."""

    PROTOCOL_FEE_BPS = PROTOCOL_FEE_BPS

    # ==================== View Functions ====================

    @view
    def flype_maxi_fee_bps(self, vault: Any) -> int:
        return self.PROTOCOL_FEE_BPS

    @view
    def manager_fee_bps(self, vault: Any) -> int:
        return vault.storage.manager_fee_bps

    @view
    def manager_balances(self, vault: Any) -> Tuple[int, int]:
        storage = vault.storage
        return storage.manager_balance0, storage.manager_balance1

    @view
    def protocol_balances(self, vault: Any) -> Tuple[int, int]:
        storage = vault.storage
        return storage.protocol_balance0, storage.protocol_balance1

    # ==================== Reserve Accounting ====================

    def _harvest_fees(self, vault: Any) -> Tuple[int, int]:
        """
        Uncollected fees of the position, ready to be split.

        Raises:
            NoFeesEarned: If the position has earned nothing
        """
        fee0, fee1 = self.uncollected_fees(vault)
        if fee0 == 0 and fee1 == 0:
            raise NoFeesEarned("Position has no fees to compound")
        return fee0, fee1

    def _apply_fee_split(self, vault: Any, split: FeeSplit) -> None:
        """Credit the protocol and manager reserves of a split."""
        storage = vault.storage
        storage.protocol_balance0 += split.protocol0
        storage.protocol_balance1 += split.protocol1
        storage.manager_balance0 += split.manager0
        storage.manager_balance1 += split.manager1

        logger.debug(
            "Fees harvested",
            extra={
                "event": "vault.fees_harvested",
                "vault": vault.address[:10],
                "fee0": split.fee0,
                "fee1": split.fee1,
                "payout0": split.payout0,
                "payout1": split.payout1,
            },
        )

    def _apply_admin_fees(self, vault: Any, fee0: int, fee1: int) -> FeeSplit:
        """Credit the reserves for a harvest with no rebalancer payout."""
        split = compute_fee_split(fee0, fee1, vault.storage.manager_fee_bps)
        self._apply_fee_split(vault, split)
        return split
