"""
FLYPE-MAXI DeFi primitives.

This module provides:
- Concentrated Liquidity: Uniswap V3-style pools and pool factory
- Tick Math: tick <-> sqrt price conversions
- Liquidity Amounts: liquidity <-> token amount conversions
- Sqrt Price Math: swap step and amount delta math
"""

from .concentrated_liquidity import (
    ConcentratedLiquidityFactory,
    ConcentratedLiquidityPool,
    FeeTier,
)
from .concentrated_liquidity import Position as CLPosition
from .liquidity_amounts import get_amounts_for_liquidity, get_liquidity_for_amounts
from .tick_math import encode_price_sqrt, get_sqrt_ratio_at_tick, get_tick_at_sqrt_ratio

__all__ = [
    # Concentrated Liquidity
    "ConcentratedLiquidityPool",
    "ConcentratedLiquidityFactory",
    "CLPosition",
    "FeeTier",
    # Math
    "encode_price_sqrt",
    "get_sqrt_ratio_at_tick",
    "get_tick_at_sqrt_ratio",
    "get_amounts_for_liquidity",
    "get_liquidity_for_amounts",
]
