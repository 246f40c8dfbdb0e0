"""
Upgradeable vault proxy (EIP-173 ownership, versioned dispatch).

A proxy owns a vault's persisted state and forwards every other call to
its current implementation object, resolved through the chain at call time
and invoked with the proxy itself as the state holder. Upgrading swaps the
implementation address only; the state stays in place.

Security features:
- Admin-only upgrades
- Renouncing the admin makes the proxy permanently immutable
- Every forwarded mutating call runs atomically
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict

from ..chain import NULL_ADDRESS, normalize_address, transactional
from ..exceptions import AccessDenied, ImmutableVault, ImplementationNotFound

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


def view(func: Callable[..., Any]) -> Callable[..., Any]:
    """Mark an implementation method as read-only; proxies skip the snapshot."""
    func.is_view = True  # type: ignore[attr-defined]
    return func


@dataclass
class UpgradeHistory:
    """Record of an upgrade event."""
    from_implementation: str
    to_implementation: str
    timestamp: int
    upgrader: str
    version: int


@dataclass
class UpgradeCall:
    """A call forwarded through a proxy right after it is upgraded."""
    function: str
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VaultProxy:
    """
    Proxy holding vault state and dispatching to an implementation.

    Attributes:
        address: Proxy (vault) address
        admin: Upgrade authority; ``NULL_ADDRESS`` once renounced
        implementation: Address of the implementation contract
        storage: Persisted vault state, owned by the proxy
        upgrade_count: Number of upgrades performed
    """

    chain: "Chain" = field(repr=False, compare=False)
    address: str = ""
    admin: str = ""
    implementation: str = ""
    storage: Any = None

    upgrade_count: int = 0
    upgrade_history: list[UpgradeHistory] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.admin = normalize_address(self.admin)
        self.implementation = normalize_address(self.implementation)
        if not self.address:
            self.address = self.chain.next_address("VaultProxy", self.admin)
        self.address = normalize_address(self.address)

    # ==================== Dispatch ====================

    def __getattr__(self, name: str) -> Any:
        # only reached for names the proxy itself does not define
        if name.startswith("_"):
            raise AttributeError(name)

        member = getattr(self.resolve_implementation(), name)
        if not callable(member):
            return member
        if getattr(member, "is_view", False):
            return functools.partial(member, self)

        @functools.wraps(member)
        def forward(*args: Any, **kwargs: Any) -> Any:
            with self.chain.atomic():
                return member(self, *args, **kwargs)

        return forward

    def resolve_implementation(self) -> Any:
        """
        Look up the implementation object for the current address.

        Raises:
            ImplementationNotFound: If the address is null or not deployed
        """
        if self.implementation == NULL_ADDRESS or not self.chain.has(self.implementation):
            raise ImplementationNotFound(
                f"Proxy {self.address} has no implementation at {self.implementation}",
                details={"proxy": self.address, "implementation": self.implementation},
            )
        return self.chain.get(self.implementation)

    # ==================== Admin Functions ====================

    @transactional
    def upgrade_to(self, caller: str, new_implementation: str) -> bool:
        """
        Point the proxy at a new implementation.

        A null address is accepted; every forwarded call then fails with
        :class:`ImplementationNotFound` until the next upgrade.

        Args:
            caller: Must be admin
            new_implementation: Address of new implementation

        Returns:
            True if successful
        """
        self._require_admin(caller)

        old_implementation = self.implementation
        self.implementation = normalize_address(new_implementation)
        self.upgrade_count += 1

        self.upgrade_history.append(UpgradeHistory(
            from_implementation=old_implementation,
            to_implementation=self.implementation,
            timestamp=self.chain.now(),
            upgrader=normalize_address(caller),
            version=self.upgrade_count,
        ))

        logger.info(
            "Proxy upgraded",
            extra={
                "event": "proxy.upgraded",
                "proxy": self.address[:10],
                "old_impl": old_implementation[:10],
                "new_impl": self.implementation[:10],
                "version": self.upgrade_count,
            }
        )

        return True

    @transactional
    def upgrade_to_and_call(
        self,
        caller: str,
        new_implementation: str,
        call: UpgradeCall | None,
    ) -> Any:
        """
        Upgrade to a new implementation and forward a call to it.

        Args:
            caller: Must be admin
            new_implementation: Address of new implementation
            call: Function to invoke on the upgraded proxy (None: upgrade only)

        Returns:
            Result of the forwarded call, or None
        """
        self.upgrade_to(caller, new_implementation)
        if call is None:
            return None
        return getattr(self, call.function)(*call.args, **call.kwargs)

    @transactional
    def transfer_proxy_ownership(self, caller: str, new_admin: str) -> bool:
        """
        Hand the upgrade authority to ``new_admin``.

        Transferring to the null address renounces it for good.

        Args:
            caller: Must be current admin
            new_admin: Address of new admin

        Returns:
            True if successful
        """
        self._require_admin(caller)

        old_admin = self.admin
        self.admin = normalize_address(new_admin)

        logger.info(
            "Proxy admin changed",
            extra={
                "event": "proxy.admin_changed",
                "proxy": self.address[:10],
                "old_admin": old_admin[:10],
                "new_admin": self.admin[:10],
            }
        )

        return True

    # ==================== View Functions ====================

    def proxy_admin(self) -> str:
        return self.admin

    def implementation_address(self) -> str:
        return self.implementation

    @property
    def immutable(self) -> bool:
        return self.admin == NULL_ADDRESS

    def get_upgrade_history(self) -> list[Dict]:
        """Get upgrade history."""
        return [
            {
                "from": h.from_implementation,
                "to": h.to_implementation,
                "timestamp": h.timestamp,
                "upgrader": h.upgrader,
                "version": h.version,
            }
            for h in self.upgrade_history
        ]

    # ==================== Helpers ====================

    def _require_admin(self, caller: str) -> None:
        if self.immutable:
            raise ImmutableVault(f"Proxy {self.address} is immutable")
        if normalize_address(caller) != self.admin:
            raise AccessDenied("Caller is not the proxy admin")
