"""
FLYPE-MAXI vault factory.

Deploys vault proxies for existing pools, keeps a registry of the vaults
each deployer created, and acts as the upgrade authority of every proxy it
deployed until the manager makes a vault immutable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Sequence

from ..chain import NULL_ADDRESS, normalize_address, transactional
from ..config import SHARE_TOKEN_NAME_PREFIX, SHARE_TOKEN_SYMBOL_PREFIX
from ..contracts.access_control import Role, RoleHolders, requires_role
from ..contracts.proxy import UpgradeCall, VaultProxy
from ..exceptions import (
    AlreadyInitialized,
    ImmutableVault,
    InvalidParameter,
    PoolNotFound,
)
from .position_ledger import validate_tick_range
from .storage import VaultStorage

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


@dataclass
class FlypeMaxiFactoryV1:
    """
    Vault factory and upgrade governor.

    Attributes:
        pool_factory: Concentrated liquidity pool factory vaults are deployed on
        manager: Factory owner; governs implementations and upgrades
        vault_implementation: Implementation new vaults and upgrades point at
        vault_count: Vaults deployed so far
    """

    chain: "Chain" = field(repr=False, compare=False)
    pool_factory: str = NULL_ADDRESS
    address: str = ""
    manager: str = NULL_ADDRESS
    vault_implementation: str = NULL_ADDRESS
    initialized: bool = False
    vault_count: int = 0

    deployers: List[str] = field(default_factory=list)
    vaults: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.pool_factory = normalize_address(self.pool_factory)
        if not self.address:
            self.address = self.chain.next_address("FlypeMaxiFactoryV1", self.pool_factory)
        self.address = normalize_address(self.address)

    @classmethod
    def deploy(cls, chain: "Chain", deployer: str, pool_factory: str) -> "FlypeMaxiFactoryV1":
        """Deploy a factory for ``pool_factory`` and register it on ``chain``."""
        factory = cls(
            chain=chain,
            pool_factory=pool_factory,
            address=chain.next_address("FlypeMaxiFactoryV1", deployer),
        )
        chain.register(factory)
        return factory

    @transactional
    def initialize(self, caller: str, implementation: str, manager: str) -> bool:
        """
        Set the vault implementation and the factory manager (once).

        Raises:
            AlreadyInitialized: On any call after the first
        """
        if self.initialized:
            raise AlreadyInitialized("Factory is already initialized")

        self.vault_implementation = normalize_address(implementation)
        self.manager = normalize_address(manager)
        self.initialized = True

        logger.info(
            "Vault factory initialized",
            extra={
                "event": "factory.initialized",
                "factory": self.address[:10],
                "implementation": self.vault_implementation[:10],
                "manager": self.manager[:10],
            },
        )
        return True

    # ==================== Deployment ====================

    @transactional
    def deploy_vault(
        self,
        caller: str,
        token_a: str,
        token_b: str,
        fee: int,
        manager: str,
        manager_fee_bps: int,
        lower_tick: int,
        upper_tick: int,
    ) -> str:
        """
        Deploy a vault on the ``token_a``/``token_b`` pool of tier ``fee``.

        Args:
            caller: Deployer; the vault is recorded under this address
            token_a: One token of the pair
            token_b: The other token
            fee: Pool fee tier
            manager: Vault manager (may be the null address)
            manager_fee_bps: Manager cut of harvested fees
            lower_tick: Lower tick of the initial range
            upper_tick: Upper tick of the initial range

        Returns:
            Address of the new vault

        Raises:
            PoolNotFound: If no pool exists for the pair and tier
            InvalidRange: If the range is not valid for the pool
        """
        pool = self.chain.get(self.pool_factory).get_pool(token_a, token_b, fee)
        if pool is None:
            raise PoolNotFound(
                f"No pool for {normalize_address(token_a)}/{normalize_address(token_b)} at fee {fee}",
                details={"token_a": token_a, "token_b": token_b, "fee": fee},
            )
        validate_tick_range(lower_tick, upper_tick, pool.tick_spacing)

        symbol0 = self.chain.get(pool.token0).symbol
        symbol1 = self.chain.get(pool.token1).symbol
        name = f"{SHARE_TOKEN_NAME_PREFIX} - {symbol0}/{symbol1}"
        symbol = f"{SHARE_TOKEN_SYMBOL_PREFIX}-{self.vault_count + 1}"

        deployer = normalize_address(caller)
        proxy = VaultProxy(
            chain=self.chain,
            address=self.chain.next_address("FlypeMaxiVault", deployer),
            admin=self.address,
            implementation=self.vault_implementation,
            storage=VaultStorage(),
        )
        self.chain.register(proxy)
        proxy.initialize(
            self.address,
            name,
            symbol,
            pool.address,
            manager_fee_bps,
            lower_tick,
            upper_tick,
            manager,
        )

        self.vault_count += 1
        if deployer not in self.vaults:
            self.deployers.append(deployer)
        self.vaults.setdefault(deployer, []).append(proxy.address)

        logger.info(
            "Vault deployed",
            extra={
                "event": "factory.vault_deployed",
                "vault": proxy.address[:10],
                "pool": pool.address[:10],
                "deployer": deployer[:10],
                "symbol": symbol,
            },
        )
        return proxy.address

    # ==================== Upgrade Governance ====================

    @transactional
    @requires_role(Role.MANAGER)
    def set_vault_implementation(self, caller: str, implementation: str) -> bool:
        """Point future deployments and upgrades at ``implementation``."""
        previous = self.vault_implementation
        self.vault_implementation = normalize_address(implementation)

        logger.info(
            "Vault implementation updated",
            extra={
                "event": "factory.implementation_updated",
                "previous": previous[:10],
                "implementation": self.vault_implementation[:10],
            },
        )
        return True

    @transactional
    @requires_role(Role.MANAGER)
    def upgrade_vaults(self, caller: str, vaults: Sequence[str]) -> bool:
        """
        Point every listed vault at the current implementation.

        Raises:
            ImmutableVault: If any listed vault is immutable (nothing is upgraded)
        """
        proxies = self._upgradeable_proxies(vaults)
        for proxy in proxies:
            proxy.upgrade_to(self.address, self.vault_implementation)
        return True

    @transactional
    @requires_role(Role.MANAGER)
    def upgrade_vaults_and_call(
        self,
        caller: str,
        vaults: Sequence[str],
        calls: Sequence[UpgradeCall | None],
    ) -> List[Any]:
        """
        Upgrade every listed vault and invoke its paired call.

        Returns:
            Result of each forwarded call

        Raises:
            InvalidParameter: If ``vaults`` and ``calls`` differ in length
            ImmutableVault: If any listed vault is immutable (nothing is upgraded)
        """
        if len(vaults) != len(calls):
            raise InvalidParameter(
                "Vaults and calls must have the same length",
                details={"vaults": len(vaults), "calls": len(calls)},
            )
        proxies = self._upgradeable_proxies(vaults)
        return [
            proxy.upgrade_to_and_call(self.address, self.vault_implementation, call)
            for proxy, call in zip(proxies, calls)
        ]

    @transactional
    @requires_role(Role.MANAGER)
    def make_vaults_immutable(self, caller: str, vaults: Sequence[str]) -> bool:
        """
        Renounce the upgrade authority over every listed vault.

        Raises:
            ImmutableVault: If a listed vault is already immutable
        """
        for address in vaults:
            proxy = self._proxy(address)
            proxy.transfer_proxy_ownership(self.address, NULL_ADDRESS)
            logger.info(
                "Vault made immutable",
                extra={"event": "factory.vault_immutable", "vault": proxy.address[:10]},
            )
        return True

    # ==================== View Functions ====================

    def get_deployers(self) -> List[str]:
        return list(self.deployers)

    def get_vaults(self, deployer: str) -> List[str]:
        return list(self.vaults.get(normalize_address(deployer), []))

    def num_vaults(self, deployer: str | None = None) -> int:
        """Vaults deployed by ``deployer``, or by anyone when omitted."""
        if deployer is None:
            return sum(len(vaults) for vaults in self.vaults.values())
        return len(self.vaults.get(normalize_address(deployer), []))

    def num_deployers(self) -> int:
        return len(self.deployers)

    def is_vault_immutable(self, vault: str) -> bool:
        return self._proxy(vault).immutable

    def get_proxy_admin(self, vault: str) -> str:
        return self._proxy(vault).proxy_admin()

    # ==================== Ownership ====================

    @transactional
    @requires_role(Role.MANAGER)
    def transfer_ownership(self, caller: str, new_manager: str) -> bool:
        """
        Hand the factory to ``new_manager``.

        Raises:
            InvalidParameter: If ``new_manager`` is the null address
        """
        new_manager = normalize_address(new_manager)
        if new_manager == NULL_ADDRESS:
            raise InvalidParameter("New manager cannot be the null address")
        self.manager = new_manager
        return True

    @transactional
    @requires_role(Role.MANAGER)
    def renounce_ownership(self, caller: str) -> bool:
        """Give up the factory for good; upgrades become impossible."""
        self.manager = NULL_ADDRESS
        logger.warning(
            "Vault factory ownership renounced",
            extra={"event": "factory.ownership_renounced", "factory": self.address[:10]},
        )
        return True

    # ==================== Helpers ====================

    def _role_holders(self, caller: str, *args: Any, **kwargs: Any) -> RoleHolders:
        return caller, {Role.MANAGER: self.manager}

    def _proxy(self, address: str) -> VaultProxy:
        contract = self.chain.get(address)
        if not isinstance(contract, VaultProxy):
            raise InvalidParameter(
                f"{normalize_address(address)} is not a vault proxy",
                details={"vault": normalize_address(address)},
            )
        return contract

    def _upgradeable_proxies(self, vaults: Sequence[str]) -> List[VaultProxy]:
        proxies = [self._proxy(address) for address in vaults]
        immutable = [proxy.address for proxy in proxies if proxy.immutable]
        if immutable:
            raise ImmutableVault(
                f"Cannot upgrade immutable vaults: {', '.join(immutable)}",
                details={"vaults": immutable},
            )
        return proxies
