"""
FLYPE-MAXI - Managed Concentrated Liquidity Vaults

Pools deposits into a single concentrated liquidity position and issues
fungible shares against it.

Main Components:
- Vault: share accounting, fee splitting and rebalancing behind upgradeable proxies
- Factory: vault deployment, upgrade governance and immutability
- DeFi: Uniswap V3-style pool math and pools the vaults provide liquidity to
- Chain: in-process contract registry, clock and atomic calls
"""

__version__ = "0.1.0"
__author__ = "FLYPE-MAXI Development Team"

__all__ = []
