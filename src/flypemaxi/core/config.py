"""
FLYPE-MAXI Configuration

Protocol constants, vault parameter defaults and the per-network address
book. Defaults can be overridden through environment variables; the network
is selected with FLYPE_NETWORK.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    HARDHAT = "hardhat"
    MAINNET = "mainnet"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    GOERLI = "goerli"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int(env_var: str, default: int, minimum: int = 0, maximum: int | None = None) -> int:
    """Read a bounded integer from the environment."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc
    if value < minimum or (maximum is not None and value > maximum):
        raise ConfigurationError(f"{env_var}={value} is outside [{minimum}, {maximum}]")
    return value


# Get network from environment variable
NETWORK = os.getenv("FLYPE_NETWORK", NetworkType.HARDHAT.value)

# ==================== Protocol Constants ====================

# Protocol share of harvested fees, fixed for every vault
PROTOCOL_FEE_BPS = 250

# Upper bound on the manager's share of harvested fees
MAX_MANAGER_FEE_BPS = 1750

BPS_DENOMINATOR = 10_000

SHARE_TOKEN_DECIMALS = 18
SHARE_TOKEN_NAME_PREFIX = "FLYPE-MAXI"
SHARE_TOKEN_SYMBOL_PREFIX = "FMXI"

# ==================== Vault Defaults ====================

DEFAULT_MAX_REBALANCE_PAYOUT_BPS = _get_int(
    "FLYPE_DEFAULT_MAX_PAYOUT_BPS", 200, maximum=BPS_DENOMINATOR - PROTOCOL_FEE_BPS
)
DEFAULT_SLIPPAGE_BPS = _get_int("FLYPE_DEFAULT_SLIPPAGE_BPS", 500, maximum=BPS_DENOMINATOR)
DEFAULT_SLIPPAGE_INTERVAL = _get_int("FLYPE_DEFAULT_SLIPPAGE_INTERVAL", 300)


# ==================== Network Address Book ====================

@dataclass(frozen=True)
class Addresses:
    """Well-known contract addresses for one network ("" = not deployed)."""
    rebalancer: str
    uniswap_v3_factory: str
    router: str
    vault_factory: str
    weth: str
    weth_vault: str
    fee_treasury: str


_UNISWAP_V3_FACTORY = "0x1F98431c8aD98523631AE4a59f267346ea31F984"

NETWORK_ADDRESSES: dict[str, Addresses] = {
    NetworkType.HARDHAT.value: Addresses(
        rebalancer="0xe33853656D5aa16e3FdaDEA5A297cd3ea5cC3Af9",
        uniswap_v3_factory=_UNISWAP_V3_FACTORY,
        router="0x23deAbFcF347B43400337C683bceCF3aF790a788",
        vault_factory="0xED1831F634F5433Ae786Fce06356071e96Fc4644",
        weth="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        weth_vault="0xAC6d13c13db0FABf95D1ab53Ec48Fc09D85BFc49",
        fee_treasury="0xe33853656D5aa16e3FdaDEA5A297cd3ea5cC3Af9",
    ),
    NetworkType.MAINNET.value: Addresses(
        rebalancer="0xc980c7bFe006C72381268F1ea5B08563E04DB25d",
        uniswap_v3_factory=_UNISWAP_V3_FACTORY,
        router="",
        vault_factory="",
        weth="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        weth_vault="",
        fee_treasury="0xc980c7bFe006C72381268F1ea5B08563E04DB25d",
    ),
    NetworkType.POLYGON.value: Addresses(
        rebalancer="0xd21b677cfAd474E29f0aF3003e5cA553305079dF",
        uniswap_v3_factory=_UNISWAP_V3_FACTORY,
        router="",
        vault_factory="0x2C640BEb9a4a624B2d2598280383240305550399",
        weth="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        weth_vault="",
        fee_treasury="0xd21b677cfAd474E29f0aF3003e5cA553305079dF",
    ),
    NetworkType.ARBITRUM.value: Addresses(
        rebalancer="0xe33853656D5aa16e3FdaDEA5A297cd3ea5cC3Af9",
        uniswap_v3_factory=_UNISWAP_V3_FACTORY,
        router="0x23deAbFcF347B43400337C683bceCF3aF790a788",
        vault_factory="0xED1831F634F5433Ae786Fce06356071e96Fc4644",
        weth="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        weth_vault="",
        fee_treasury="0xe33853656D5aa16e3FdaDEA5A297cd3ea5cC3Af9",
    ),
    NetworkType.GOERLI.value: Addresses(
        rebalancer="0xd5B4a83e8CF168Dc340AA04a9C0b8c5DAF6666cD",
        uniswap_v3_factory=_UNISWAP_V3_FACTORY,
        router="",
        vault_factory="",
        weth="0xB4FBF271143F4FBf7B91A5ded31805e42b2208d6",
        weth_vault="",
        fee_treasury="0xd5B4a83e8CF168Dc340AA04a9C0b8c5DAF6666cD",
    ),
}


def get_addresses(network: str | None = None) -> Addresses:
    """
    Address book for a network.

    Args:
        network: Network name; defaults to FLYPE_NETWORK

    Returns:
        The network's addresses

    Raises:
        ConfigurationError: If the network is unknown
    """
    name = (network or NETWORK).strip().lower()
    addresses = NETWORK_ADDRESSES.get(name)
    if addresses is None:
        raise ConfigurationError(f"No addresses for network: {name}")
    return addresses
