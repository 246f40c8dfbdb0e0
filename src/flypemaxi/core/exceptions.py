"""
Exception hierarchy for FLYPE-MAXI vaults.

Every failing vault, factory, proxy or pool call raises one of these typed
exceptions. A failing call never leaves partial state behind: the atomic
call wrapper in :mod:`flypemaxi.core.chain` restores the pre-call snapshot
before the exception propagates.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class FlypeMaxiError(Exception):
    """Base exception for all vault-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can succeed if retried later
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class AccessDenied(FlypeMaxiError):
    """Raised when the caller does not hold the role an operation requires."""
    pass


# ==================== Validation Errors ====================


class InvalidRange(FlypeMaxiError):
    """Raised for a tick range that is inverted, misaligned or out of bounds."""
    pass


class InvalidParameter(FlypeMaxiError):
    """Raised when an argument is outside its allowed domain.

    Examples: fee above its cap, zero share amount, unknown payment token.
    """
    pass


class PoolNotFound(FlypeMaxiError):
    """Raised when no pool exists for a (tokenA, tokenB, fee) triple."""
    pass


# ==================== Rebalance Errors ====================


class NoFeesEarned(FlypeMaxiError):
    """Raised when a rebalance finds no uncollected fees to harvest."""
    pass


class SlippageExceeded(FlypeMaxiError):
    """Raised when the pool price is too far from the caller's threshold."""
    pass


class Locked(FlypeMaxiError):
    """Raised while the post-parameter-update cooldown is active."""

    def __init__(
        self,
        message: str,
        unlock_time: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.unlock_time = unlock_time


# ==================== Governance Errors ====================


class ImmutableVault(FlypeMaxiError):
    """Raised when upgrading a vault whose proxy admin has been renounced."""
    pass


# ==================== Balance Errors ====================


class InsufficientBalance(FlypeMaxiError):
    """Raised when an account lacks the tokens an operation needs."""
    pass


class InsufficientShares(InsufficientBalance):
    """Raised when burning more vault shares than the caller holds."""
    pass


class InsufficientAllowance(InsufficientBalance):
    """Raised when a spender's allowance does not cover a transfer."""
    pass


# ==================== Execution Errors ====================


class ContractError(FlypeMaxiError):
    """Raised for generic call reverts that have no more specific type."""
    pass


class PoolError(ContractError):
    """Raised when the concentrated-liquidity pool rejects a call."""
    pass


class ReentrancyError(ContractError):
    """Raised when a guarded vault operation is entered recursively."""
    pass


class ImplementationNotFound(ContractError):
    """Raised when a proxy's implementation address resolves to nothing."""
    pass


class AlreadyInitialized(ContractError):
    """Raised when an initializer runs twice."""
    pass
