"""Persisted state of one vault, owned by its proxy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from ..chain import NULL_ADDRESS
from ..contracts.erc20 import ERC20Token


@dataclass
class VaultEvent:
    """An event emitted by a vault operation."""
    name: str
    data: Dict[str, Any]
    timestamp: int


@dataclass
class VaultStorage:
    """
    Vault state that survives implementation upgrades.

    Idle balances are not stored: they are the vault's token balances minus
    the manager and protocol reserves.
    """

    # Pool binding
    pool: str = NULL_ADDRESS
    token0: str = NULL_ADDRESS
    token1: str = NULL_ADDRESS

    # Active range
    lower_tick: int = 0
    upper_tick: int = 0

    # Share ledger (the vault's own ERC20)
    shares: ERC20Token | None = None

    # Fee reserves, disjoint from idle balances
    manager_balance0: int = 0
    manager_balance1: int = 0
    protocol_balance0: int = 0
    protocol_balance1: int = 0

    # Manager-controlled parameters
    manager_fee_bps: int = 0
    max_rebalance_payout_bps: int = 0
    slippage_bps: int = 0
    slippage_interval: int = 0
    last_param_update_time: int = 0

    # Roles
    manager: str = NULL_ADDRESS
    manager_treasury: str = NULL_ADDRESS
    restrict_mint: bool = False

    # Bookkeeping
    initialized: bool = False
    entered: bool = False
    events: list[VaultEvent] = field(default_factory=list)
