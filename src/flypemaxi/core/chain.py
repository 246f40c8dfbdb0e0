"""
In-process chain model shared by every contract.

The chain owns the contract registry (address -> contract object), the
logical block clock and address derivation. State-changing calls run inside
:meth:`Chain.atomic`, which snapshots every registered contract on entry of
the outermost call and restores the snapshot if the call raises, so a
reverted call leaves no partial state.
"""

from __future__ import annotations

import copy
import functools
import hashlib
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, TypeVar

from .exceptions import ContractError

logger = logging.getLogger(__name__)

NULL_ADDRESS = "0x" + "0" * 40

F = TypeVar("F", bound=Callable[..., Any])


def normalize_address(address: str | None) -> str:
    """Normalize an address to lowercase; ``None`` maps to the null address."""
    if not address:
        return NULL_ADDRESS
    return address.lower()


def is_null_address(address: str | None) -> bool:
    return normalize_address(address) == NULL_ADDRESS


def derive_address(*parts: Any) -> str:
    """Derive a deterministic 20-byte address from arbitrary parts."""
    seed = ":".join(str(p) for p in parts).encode()
    return f"0x{hashlib.sha3_256(seed).digest()[-20:].hex()}"


@dataclass
class Chain:
    """
    World state for contracts: registry, clock and atomic calls.

    Attributes:
        timestamp: Current block timestamp in seconds
        block_number: Current block height
        contracts: Registered contracts keyed by lowercase address
    """

    timestamp: int = field(default_factory=lambda: int(time.time()))
    block_number: int = 0
    contracts: Dict[str, Any] = field(default_factory=dict, repr=False)
    _nonce: int = field(default=0, repr=False)
    _depth: int = field(default=0, repr=False)

    # ==================== Clock ====================

    def now(self) -> int:
        return self.timestamp

    def advance_time(self, seconds: int) -> int:
        """
        Move the clock forward and mine one block.

        Args:
            seconds: Seconds to add (must be non-negative)

        Returns:
            New timestamp
        """
        if seconds < 0:
            raise ValueError("Cannot move the clock backwards")
        self.timestamp += seconds
        self.block_number += 1
        return self.timestamp

    def mine(self, blocks: int = 1, block_time: int = 12) -> int:
        """Mine ``blocks`` blocks of ``block_time`` seconds each."""
        for _ in range(blocks):
            self.advance_time(block_time)
        return self.block_number

    # ==================== Registry ====================

    def next_address(self, kind: str, deployer: str) -> str:
        """Derive a fresh address for a contract deployed by ``deployer``."""
        self._nonce += 1
        return derive_address(kind, normalize_address(deployer), self._nonce)

    def register(self, contract: Any) -> Any:
        """
        Register a contract under its ``address`` attribute.

        Returns:
            The registered contract, for chaining

        Raises:
            ContractError: If the address is empty or already taken
        """
        address = normalize_address(getattr(contract, "address", ""))
        if address == NULL_ADDRESS:
            raise ContractError("Cannot register a contract at the null address")
        if address in self.contracts and self.contracts[address] is not contract:
            raise ContractError(f"Address {address} already in use")
        self.contracts[address] = contract
        logger.debug(
            "Contract registered",
            extra={
                "event": "chain.register",
                "address": address[:10],
                "kind": type(contract).__name__,
            },
        )
        return contract

    def get(self, address: str) -> Any:
        """
        Resolve a registered contract.

        Raises:
            ContractError: If nothing is deployed at ``address``
        """
        contract = self.contracts.get(normalize_address(address))
        if contract is None:
            raise ContractError(f"No contract at {address}")
        return contract

    def has(self, address: str | None) -> bool:
        return normalize_address(address) in self.contracts

    # ==================== Atomic Calls ====================

    def snapshot(self) -> Dict[str, Any]:
        """
        Capture the mutable state of every registered contract.

        Contracts (and the chain itself) are pre-seeded in the deepcopy memo,
        so references between contracts survive the copy unchanged and only
        their own state is duplicated.
        """
        memo: Dict[int, Any] = {id(self): self}
        for contract in self.contracts.values():
            memo[id(contract)] = contract
        states = {
            address: copy.deepcopy(contract.__dict__, memo)
            for address, contract in self.contracts.items()
        }
        return {
            "contracts": dict(self.contracts),
            "states": states,
            "nonce": self._nonce,
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """Restore the registry and every contract from a snapshot."""
        self.contracts = dict(snapshot["contracts"])
        for address, state in snapshot["states"].items():
            contract = self.contracts[address]
            contract.__dict__.clear()
            contract.__dict__.update(state)
        self._nonce = snapshot["nonce"]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a call atomically.

        Only the outermost call takes a snapshot; nested calls join it.
        """
        if self._depth > 0:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        state = self.snapshot()
        self._depth = 1
        try:
            yield
        except Exception as exc:
            self.restore(state)
            logger.info(
                "Call reverted",
                extra={
                    "event": "chain.revert",
                    "error": type(exc).__name__,
                    "reason": str(exc),
                },
            )
            raise
        finally:
            self._depth = 0


def transactional(func: F) -> F:
    """Run a contract method inside its chain's atomic call scope."""

    @functools.wraps(func)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        with self.chain.atomic():
            return func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]
