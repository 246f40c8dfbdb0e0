"""
FLYPE-MAXI vaults.

This module provides:
- FlypeMaxiVaultV1: vault implementation shared by every proxy
- FlypeMaxiFactoryV1: vault deployment and upgrade governance
- Fee split helpers
"""

from .factory import FlypeMaxiFactoryV1
from .fee_engine import FeeSplit, admin_fee_cut, compute_fee_split
from .storage import VaultEvent, VaultStorage
from .vault_v1 import FlypeMaxiVaultV1

__all__ = [
    "FlypeMaxiVaultV1",
    "FlypeMaxiFactoryV1",
    "VaultStorage",
    "VaultEvent",
    "FeeSplit",
    "compute_fee_split",
    "admin_fee_cut",
]
