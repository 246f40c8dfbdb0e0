"""
FLYPE-MAXI vault implementation, version 1.

A single implementation object serves every vault proxy pointing at it.
It holds only implementation-wide settings (the rebalancer and the protocol
treasury); each vault's state lives in its proxy's storage and every method
receives the proxy as ``vault``.

Usage:
    impl = FlypeMaxiVaultV1.deploy(chain, deployer, rebalancer, treasury)
    factory.initialize(owner, impl.address, owner)
    vault = chain.get(factory.deploy_vault(owner, weth, usdc, 3000, owner, 100, -600, 600))
    vault.mint(depositor, shares, depositor)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from ..chain import NULL_ADDRESS, normalize_address
from ..config import (
    DEFAULT_MAX_REBALANCE_PAYOUT_BPS,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_SLIPPAGE_INTERVAL,
    MAX_MANAGER_FEE_BPS,
    SHARE_TOKEN_DECIMALS,
    get_addresses,
)
from ..contracts.access_control import Role, RoleHolders
from ..contracts.erc20 import ERC20Token
from ..contracts.proxy import view
from ..exceptions import AlreadyInitialized, InvalidParameter
from .fee_engine import FeeEngine
from .manager_controls import ManagerControls
from .position_ledger import PositionLedger, validate_tick_range
from .rebalance_controller import RebalanceController
from .share_accounting import ShareAccounting
from .storage import VaultEvent, VaultStorage

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)


@dataclass
class FlypeMaxiVaultV1(
    PositionLedger,
    ShareAccounting,
    FeeEngine,
    RebalanceController,
    ManagerControls,
):
    """
    Vault logic shared by every proxy that points at it.

    Attributes:
        rebalancer: Only address allowed to call ``rebalance``
        protocol_treasury: Receiver of protocol reserve withdrawals
        address: Implementation address
    """

    VERSION = "1.0.0"

    chain: "Chain" = field(repr=False, compare=False)
    rebalancer: str = NULL_ADDRESS
    protocol_treasury: str = NULL_ADDRESS
    address: str = ""

    def __post_init__(self) -> None:
        self.rebalancer = normalize_address(self.rebalancer)
        self.protocol_treasury = normalize_address(self.protocol_treasury)
        if not self.address:
            self.address = self.chain.next_address("FlypeMaxiVaultV1", self.rebalancer)
        self.address = normalize_address(self.address)

    # ==================== Deployment ====================

    @classmethod
    def deploy(
        cls,
        chain: "Chain",
        deployer: str,
        rebalancer: str,
        protocol_treasury: str,
    ) -> "FlypeMaxiVaultV1":
        """Deploy an implementation and register it on ``chain``."""
        implementation = cls(
            chain=chain,
            rebalancer=rebalancer,
            protocol_treasury=protocol_treasury,
            address=chain.next_address("FlypeMaxiVaultV1", deployer),
        )
        chain.register(implementation)

        logger.info(
            "Vault implementation deployed",
            extra={
                "event": "vault.implementation_deployed",
                "implementation": implementation.address[:10],
                "rebalancer": implementation.rebalancer[:10],
                "version": cls.VERSION,
            },
        )
        return implementation

    @classmethod
    def from_network(
        cls,
        chain: "Chain",
        network: str | None = None,
        deployer: str | None = None,
    ) -> "FlypeMaxiVaultV1":
        """
        Deploy an implementation wired to a network's rebalancer and treasury.

        Args:
            chain: Chain to register on
            network: Network name; defaults to FLYPE_NETWORK
            deployer: Deploying address; defaults to the network's rebalancer

        Raises:
            ConfigurationError: If the network is unknown
        """
        addresses = get_addresses(network)
        return cls.deploy(
            chain,
            deployer or addresses.rebalancer,
            addresses.rebalancer,
            addresses.fee_treasury,
        )

    # ==================== Initialization ====================

    def initialize(
        self,
        vault: Any,
        caller: str,
        name: str,
        symbol: str,
        pool: str,
        manager_fee_bps: int,
        lower_tick: int,
        upper_tick: int,
        manager: str,
    ) -> bool:
        """
        Bind a fresh proxy to a pool and range.

        The vault starts with the default payout cap and slippage settings,
        the manager as treasury, and the rebalance cooldown running.

        Args:
            caller: Initializing address (the factory)
            name: Share token name
            symbol: Share token symbol
            pool: Pool address
            manager_fee_bps: Manager cut of harvested fees
            lower_tick: Lower tick of the initial range
            upper_tick: Upper tick of the initial range
            manager: Vault manager; the null address leaves the vault unmanaged

        Raises:
            AlreadyInitialized: If the vault was initialized before
            InvalidParameter: If the manager fee is out of bounds
            InvalidRange: If the range is not valid for the pool
        """
        if vault.storage is None:
            vault.storage = VaultStorage()
        storage = vault.storage
        if storage.initialized:
            raise AlreadyInitialized(f"Vault {vault.address} is already initialized")
        if not 0 <= manager_fee_bps <= MAX_MANAGER_FEE_BPS:
            raise InvalidParameter(
                f"Manager fee must be within [0, {MAX_MANAGER_FEE_BPS}] bps",
                details={"manager_fee_bps": manager_fee_bps},
            )

        pool_contract = self.chain.get(pool)
        validate_tick_range(lower_tick, upper_tick, pool_contract.tick_spacing)

        storage.pool = pool_contract.address
        storage.token0 = pool_contract.token0
        storage.token1 = pool_contract.token1
        storage.lower_tick = lower_tick
        storage.upper_tick = upper_tick
        storage.shares = ERC20Token(
            name=name,
            symbol=symbol,
            decimals=SHARE_TOKEN_DECIMALS,
            address=vault.address,
            owner=vault.address,
        )

        storage.manager_fee_bps = manager_fee_bps
        storage.max_rebalance_payout_bps = DEFAULT_MAX_REBALANCE_PAYOUT_BPS
        storage.slippage_bps = DEFAULT_SLIPPAGE_BPS
        storage.slippage_interval = DEFAULT_SLIPPAGE_INTERVAL
        storage.last_param_update_time = self.chain.now()

        storage.manager = normalize_address(manager)
        storage.manager_treasury = storage.manager
        storage.initialized = True

        self._emit(
            vault,
            "Initialized",
            pool=storage.pool,
            lower_tick=lower_tick,
            upper_tick=upper_tick,
            manager=storage.manager,
        )
        logger.info(
            "Vault initialized",
            extra={
                "event": "vault.initialized",
                "vault": vault.address[:10],
                "pool": storage.pool[:10],
                "range": f"[{lower_tick}, {upper_tick}]",
                "manager_fee_bps": manager_fee_bps,
                "initializer": normalize_address(caller)[:10],
            },
        )
        return True

    # ==================== View Functions ====================

    @view
    def version(self, vault: Any) -> str:
        return self.VERSION

    @view
    def get_events(self, vault: Any, name: str | None = None) -> List[Dict[str, Any]]:
        """Events emitted by the vault, optionally filtered by name."""
        return [
            {"name": event.name, "timestamp": event.timestamp, **event.data}
            for event in vault.storage.events
            if name is None or event.name == name
        ]

    @view
    def get_vault_state(self, vault: Any) -> Dict[str, Any]:
        """Snapshot of the vault for reporting."""
        storage = vault.storage
        amount0, amount1 = self.get_underlying_balances(vault)
        return {
            "address": vault.address,
            "pool": storage.pool,
            "range": (storage.lower_tick, storage.upper_tick),
            "total_supply": storage.shares.total_supply,
            "liquidity": self.position_liquidity(vault),
            "underlying": (amount0, amount1),
            "manager": storage.manager,
            "manager_fee_bps": storage.manager_fee_bps,
            "locked": self.is_locked(vault),
        }

    # ==================== Helpers ====================

    def _role_holders(self, vault: Any, caller: str, *args: Any, **kwargs: Any) -> RoleHolders:
        return caller, {
            Role.MANAGER: vault.storage.manager,
            Role.REBALANCER: self.rebalancer,
        }

    def _emit(self, vault: Any, name: str, **data: Any) -> None:
        vault.storage.events.append(VaultEvent(name=name, data=data, timestamp=self.chain.now()))
