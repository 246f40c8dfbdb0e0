"""
FlypeMaxiFactoryV1 tests.

Vault deployment and the registry, upgrade governance through the vault
proxies, immutability and factory ownership.
"""

import pytest

from flypemaxi.core.chain import NULL_ADDRESS
from flypemaxi.core.contracts.proxy import UpgradeCall
from flypemaxi.core.defi.tick_math import encode_price_sqrt
from flypemaxi.core.exceptions import (
    AccessDenied,
    AlreadyInitialized,
    ImmutableVault,
    ImplementationNotFound,
    InvalidParameter,
    InvalidRange,
    PoolNotFound,
)
from flypemaxi.core.vault.vault_v1 import FlypeMaxiVaultV1


ETHER = 10**18
FULL_RANGE = (-887220, 887220)


def _create_pool(world, fee):
    return world.pool_factory.create_pool(
        world.factory.manager,
        world.token0.address,
        world.token1.address,
        fee,
        encode_price_sqrt(1, 1),
    )


def _deploy(world, caller, fee=3000, lower=FULL_RANGE[0], upper=FULL_RANGE[1], manager=None, manager_fee_bps=0):
    return world.factory.deploy_vault(
        caller,
        world.token0.address,
        world.token1.address,
        fee,
        manager or caller,
        manager_fee_bps,
        lower,
        upper,
    )


@pytest.fixture
def new_implementation(world, accounts):
    return FlypeMaxiVaultV1.deploy(world.chain, accounts.user0, accounts.user2, accounts.treasury)


# ==================== Deployment ====================


class TestDeployVault:

    @pytest.mark.parametrize(
        "fee,full_range",
        [
            (500, (-887270, 887270)),
            (3000, (-887220, 887220)),
            (10000, (-887200, 887200)),
        ],
    )
    def test_full_range_per_tier(self, world, accounts, fee, full_range):
        if fee != 3000:
            _create_pool(world, fee)
        address = _deploy(world, accounts.user1, fee, *full_range)
        vault = world.chain.get(address)

        assert (vault.lower_tick(), vault.upper_tick()) == full_range
        assert vault.pool() == world.pool_factory.get_pool(
            world.token0.address, world.token1.address, fee
        ).address

    def test_vault_binds_pool_tokens(self, world):
        assert world.vault.token0() == world.token0.address
        assert world.vault.token1() == world.token1.address
        assert world.vault.pool() == world.pool.address

    def test_sequential_symbols(self, world, accounts):
        address = _deploy(world, accounts.user0, lower=-600, upper=600)
        assert world.chain.get(address).symbol() == "FMXI-2"

    def test_off_grid_range(self, world, accounts):
        with pytest.raises(InvalidRange):
            _deploy(world, accounts.user0, 3000, -10, 10)

    @pytest.mark.parametrize("fee,lower,upper", [(10000, -10, 10), (500, -5, 5), (500, 100, 0)])
    def test_invalid_range_on_other_tiers(self, world, accounts, fee, lower, upper):
        _create_pool(world, fee)
        with pytest.raises(InvalidRange):
            _deploy(world, accounts.user0, fee, lower, upper)

    def test_missing_pool(self, world, accounts):
        with pytest.raises(PoolNotFound):
            _deploy(world, accounts.user0, 10000, -887200, 887200)

    def test_null_manager_allowed(self, world, accounts):
        address = _deploy(world, accounts.user1, manager=NULL_ADDRESS)
        assert world.chain.get(address).manager() == NULL_ADDRESS

    def test_manager_fee_bounds(self, world, accounts):
        with pytest.raises(InvalidParameter):
            _deploy(world, accounts.user0, manager_fee_bps=1751)

    def test_failed_deploy_leaves_registry_unchanged(self, world, accounts):
        count = world.factory.vault_count

        with pytest.raises(InvalidParameter):
            _deploy(world, accounts.user1, manager_fee_bps=1751)

        assert world.factory.vault_count == count
        assert world.factory.get_vaults(accounts.user1) == []
        assert accounts.user1 not in world.factory.get_deployers()

    def test_vault_is_usable(self, world, accounts):
        address = _deploy(world, accounts.user1, lower=-600, upper=600)
        vault = world.chain.get(address)
        world.token0.approve(accounts.user1, address, world.token0.UINT256_MAX)
        world.token1.approve(accounts.user1, address, world.token1.UINT256_MAX)

        shares, _, _ = vault.get_mint_amounts(ETHER, ETHER)
        vault.mint(accounts.user1, shares, accounts.user1)

        assert vault.balance_of(accounts.user1) == shares
        assert world.pool.position_liquidity(address, -600, 600) > 0


# ==================== Registry ====================


class TestRegistry:

    def test_registry_by_deployer(self, world, accounts):
        second = _deploy(world, accounts.user1, lower=-600, upper=600)
        third = _deploy(world, accounts.user0, lower=-1200, upper=1200)

        assert world.factory.get_deployers() == [accounts.user0, accounts.user1]
        assert world.factory.get_vaults(accounts.user0) == [world.vault.address, third]
        assert world.factory.get_vaults(accounts.user1) == [second]
        assert world.factory.num_vaults() == 3
        assert world.factory.num_vaults(accounts.user0) == 2
        assert world.factory.num_deployers() == 2

    def test_unknown_deployer(self, world, accounts):
        assert world.factory.get_vaults(accounts.user2) == []
        assert world.factory.num_vaults(accounts.user2) == 0

    def test_factory_is_proxy_admin(self, world):
        assert world.factory.get_proxy_admin(world.vault.address) == world.factory.address
        assert not world.factory.is_vault_immutable(world.vault.address)

    def test_initialize_once(self, world, accounts):
        with pytest.raises(AlreadyInitialized):
            world.factory.initialize(accounts.user0, world.implementation.address, accounts.user0)

    def test_vault_initialize_once(self, world, accounts):
        with pytest.raises(AlreadyInitialized):
            world.vault.initialize(
                accounts.user0, "X", "X", world.pool.address, 0, *FULL_RANGE, accounts.user0
            )


# ==================== Upgrades ====================


class TestUpgrades:

    def test_upgrade_preserves_state(self, funded_world, accounts, new_implementation):
        world = funded_world
        supply = world.vault.total_supply()
        underlying = world.vault.get_underlying_balances()

        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)
        world.factory.upgrade_vaults(accounts.user0, [world.vault.address])

        assert world.vault.implementation_address() == new_implementation.address
        assert world.vault.rebalancer == accounts.user2
        assert world.vault.total_supply() == supply
        assert world.vault.get_underlying_balances() == underlying

    def test_upgrade_history(self, world, accounts, new_implementation):
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)
        world.factory.upgrade_vaults(accounts.user0, [world.vault.address])

        [entry] = world.vault.get_upgrade_history()
        assert entry["from"] == world.implementation.address
        assert entry["to"] == new_implementation.address
        assert entry["upgrader"] == world.factory.address
        assert entry["version"] == 1

    def test_upgraded_rebalancer_takes_over(self, funded_world, accounts, new_implementation):
        world = funded_world
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)
        world.factory.upgrade_vaults(accounts.user0, [world.vault.address])
        world.unlock()

        with pytest.raises(AccessDenied):
            world.vault.rebalance(accounts.rebalancer, 0, 0, False, 0, world.token0.address)
        assert world.vault.rebalance(accounts.user2, 0, 0, False, 0, world.token0.address) > 0

    def test_new_deployments_use_new_implementation(self, world, accounts, new_implementation):
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)
        address = _deploy(world, accounts.user1, lower=-600, upper=600)

        assert world.chain.get(address).implementation_address() == new_implementation.address
        assert world.vault.implementation_address() == world.implementation.address

    def test_null_implementation(self, world, accounts):
        world.factory.set_vault_implementation(accounts.user0, NULL_ADDRESS)
        world.factory.upgrade_vaults(accounts.user0, [world.vault.address])

        with pytest.raises(ImplementationNotFound):
            world.vault.total_supply()
        with pytest.raises(ImplementationNotFound):
            _deploy(world, accounts.user1, lower=-600, upper=600)

    def test_upgrade_and_call(self, world, accounts, new_implementation):
        second = _deploy(world, accounts.user0, lower=-600, upper=600)
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)

        results = world.factory.upgrade_vaults_and_call(
            accounts.user0,
            [world.vault.address, second],
            [
                UpgradeCall("version"),
                UpgradeCall("withdraw_manager_balance", (world.factory.address,)),
            ],
        )

        assert results == ["1.0.0", (0, 0)]
        assert world.chain.get(second).implementation_address() == new_implementation.address

    def test_upgrade_and_call_length_mismatch(self, world, accounts):
        with pytest.raises(InvalidParameter):
            world.factory.upgrade_vaults_and_call(
                accounts.user0, [world.vault.address], [UpgradeCall("version"), None]
            )

    def test_upgrade_and_call_without_call(self, world, accounts):
        assert world.factory.upgrade_vaults_and_call(
            accounts.user0, [world.vault.address], [None]
        ) == [None]

    def test_only_manager_governs(self, world, accounts, new_implementation):
        with pytest.raises(AccessDenied):
            world.factory.set_vault_implementation(accounts.user1, new_implementation.address)
        with pytest.raises(AccessDenied):
            world.factory.upgrade_vaults(accounts.user1, [world.vault.address])
        with pytest.raises(AccessDenied):
            world.factory.upgrade_vaults_and_call(accounts.user1, [world.vault.address], [None])
        with pytest.raises(AccessDenied):
            world.factory.make_vaults_immutable(accounts.user1, [world.vault.address])

    def test_direct_proxy_upgrade_needs_admin(self, world, accounts, new_implementation):
        with pytest.raises(AccessDenied):
            world.vault.upgrade_to(accounts.user0, new_implementation.address)
        assert world.vault.implementation_address() == world.implementation.address


# ==================== Immutability ====================


class TestImmutability:

    def test_make_immutable(self, world, accounts):
        world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])

        assert world.factory.is_vault_immutable(world.vault.address)
        assert world.factory.get_proxy_admin(world.vault.address) == NULL_ADDRESS

    def test_immutable_vault_cannot_be_upgraded(self, world, accounts, new_implementation):
        world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)

        with pytest.raises(ImmutableVault):
            world.factory.upgrade_vaults(accounts.user0, [world.vault.address])
        with pytest.raises(ImmutableVault):
            world.vault.upgrade_to(world.factory.address, new_implementation.address)
        with pytest.raises(ImmutableVault):
            world.factory.upgrade_vaults_and_call(accounts.user0, [world.vault.address], [None])

        assert world.vault.implementation_address() == world.implementation.address

    def test_immutable_twice(self, world, accounts):
        world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])
        with pytest.raises(ImmutableVault):
            world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])

    def test_batch_with_immutable_vault_upgrades_nothing(self, world, accounts, new_implementation):
        second = _deploy(world, accounts.user0, lower=-600, upper=600)
        world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)

        with pytest.raises(ImmutableVault):
            world.factory.upgrade_vaults(accounts.user0, [second, world.vault.address])

        mutable = world.chain.get(second)
        assert mutable.implementation_address() == world.implementation.address
        assert mutable.get_upgrade_history() == []

    def test_immutable_vault_keeps_working(self, world, accounts):
        world.factory.make_vaults_immutable(accounts.user0, [world.vault.address])
        shares, _, _ = world.deposit(accounts.user0, ETHER, ETHER)
        assert world.vault.balance_of(accounts.user0) == shares


class TestNonVaultAddresses:

    def test_views_reject_token(self, world):
        with pytest.raises(InvalidParameter):
            world.factory.is_vault_immutable(world.token0.address)
        with pytest.raises(InvalidParameter):
            world.factory.get_proxy_admin(world.pool.address)

    def test_upgrades_reject_token(self, world, accounts, new_implementation):
        world.factory.set_vault_implementation(accounts.user0, new_implementation.address)
        with pytest.raises(InvalidParameter):
            world.factory.upgrade_vaults(accounts.user0, [world.vault.address, world.token0.address])
        with pytest.raises(InvalidParameter):
            world.factory.upgrade_vaults_and_call(accounts.user0, [world.token1.address], [None])

        assert world.vault.implementation_address() == world.implementation.address

    def test_make_immutable_rejects_token(self, world, accounts):
        with pytest.raises(InvalidParameter):
            world.factory.make_vaults_immutable(
                accounts.user0, [world.vault.address, world.token0.address]
            )

        assert not world.factory.is_vault_immutable(world.vault.address)


# ==================== Factory Ownership ====================


class TestFactoryOwnership:

    def test_transfer_ownership(self, world, accounts, new_implementation):
        world.factory.transfer_ownership(accounts.user0, accounts.user1)

        assert world.factory.manager == accounts.user1
        world.factory.set_vault_implementation(accounts.user1, new_implementation.address)
        with pytest.raises(AccessDenied):
            world.factory.set_vault_implementation(accounts.user0, world.implementation.address)

    def test_transfer_to_null_rejected(self, world, accounts):
        with pytest.raises(InvalidParameter):
            world.factory.transfer_ownership(accounts.user0, NULL_ADDRESS)

    def test_renounce_ownership(self, world, accounts):
        world.factory.renounce_ownership(accounts.user0)

        assert world.factory.manager == NULL_ADDRESS
        with pytest.raises(AccessDenied):
            world.factory.upgrade_vaults(accounts.user0, [world.vault.address])
        with pytest.raises(AccessDenied):
            world.factory.upgrade_vaults(NULL_ADDRESS, [world.vault.address])

    def test_deploy_open_after_renounce(self, world, accounts):
        world.factory.renounce_ownership(accounts.user0)
        address = _deploy(world, accounts.user2, lower=-600, upper=600)
        assert world.factory.get_vaults(accounts.user2) == [address]
