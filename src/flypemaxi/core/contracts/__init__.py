"""
FLYPE-MAXI contract primitives.

This module provides:
- ERC20: Fungible token ledger, also used for vault shares
- Proxy: Upgradeable vault proxy with versioned dispatch
- Access Control: Role guards and the reentrancy guard
"""

from .access_control import Role, check_role, nonreentrant, requires_role
from .erc20 import ERC20Token, TokenEvent
from .proxy import UpgradeCall, UpgradeHistory, VaultProxy, view

__all__ = [
    # ERC20
    "ERC20Token",
    "TokenEvent",
    # Proxy
    "VaultProxy",
    "UpgradeCall",
    "UpgradeHistory",
    "view",
    # Access Control
    "Role",
    "check_role",
    "requires_role",
    "nonreentrant",
]
