"""
Fixed-point helpers shared by the pool and the vault.

All amounts are integers in the token's smallest unit. Rounding direction is
always explicit: round up when charging a user, round down when paying one.
"""

from __future__ import annotations

Q96 = 2**96
Q128 = 2**128
MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1

# Denominator for vault-level fees and payout caps (basis points)
BPS_DENOMINATOR = 10_000

# Denominator for pool swap fees (hundredths of a basis point)
FEE_DENOMINATOR = 1_000_000


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with full precision and controlled rounding.

    Args:
        a: First multiplicand
        b: Second multiplicand
        denominator: Divisor
        round_up: If True, round up (for charging users)
                  If False, round down (for paying users)

    Returns:
        Result of (a * b) / denominator

    Raises:
        ValueError: If denominator is zero
    """
    if denominator == 0:
        raise ValueError("Division by zero")

    result = a * b

    if round_up:
        return -((-result) // denominator)
    return result // denominator


def div_round_up(a: int, b: int) -> int:
    """Integer division rounding toward positive infinity."""
    return mul_div(a, 1, b, round_up=True)


def bps_of(amount: int, bps: int) -> int:
    """Portion of ``amount`` worth ``bps`` basis points, rounded down."""
    return mul_div(amount, bps, BPS_DENOMINATOR)
