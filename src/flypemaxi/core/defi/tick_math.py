"""
Tick <-> sqrt price conversion in Q64.96 format.

sqrt_price = sqrt(1.0001 ** tick) * 2**96, computed with the same
bit-decomposition and rounding as the on-chain TickMath library so that
results are exact integers.
"""

from __future__ import annotations

import math

from ..exceptions import PoolError

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# 1 / sqrt(1.0001) ** (2 ** i) in Q128.128, for i = 0..19
_RATIO_FACTORS = (
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    Convert a tick to its sqrt price in Q64.96 format.

    Args:
        tick: Tick index in [MIN_TICK, MAX_TICK]

    Returns:
        sqrt(1.0001 ** tick) * 2**96, rounded up

    Raises:
        PoolError: If the tick is out of bounds
    """
    abs_tick = abs(tick)
    if abs_tick > MAX_TICK:
        raise PoolError(f"Tick {tick} out of range")

    if abs_tick & 0x1:
        ratio = 0xFFFCB933BD6FAD37AA2D162D1A594001
    else:
        ratio = 0x100000000000000000000000000000000

    for bit, factor in _RATIO_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = (2**256 - 1) // ratio

    # Q128.128 -> Q64.96, rounding up
    return (ratio >> 32) + (0 if ratio % (1 << 32) == 0 else 1)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Greatest tick whose sqrt ratio is less than or equal to ``sqrt_price_x96``.

    Raises:
        PoolError: If the price is outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO)
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise PoolError("Sqrt price out of range")

    low, high = MIN_TICK, MAX_TICK
    while low < high:
        mid = (low + high + 1) // 2
        if get_sqrt_ratio_at_tick(mid) <= sqrt_price_x96:
            low = mid
        else:
            high = mid - 1

    return low


def encode_price_sqrt(reserve1: int, reserve0: int) -> int:
    """
    sqrt(reserve1 / reserve0) in Q64.96, rounded down.

    Used to pick the initial price of a pool from a reserve ratio.
    """
    if reserve0 <= 0 or reserve1 <= 0:
        raise ValueError("Reserves must be positive")
    return math.isqrt((reserve1 << 192) // reserve0)
