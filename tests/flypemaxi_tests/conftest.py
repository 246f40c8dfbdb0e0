import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace

import pytest

project_root = Path(__file__).resolve().parents[2]
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from flypemaxi.core.chain import Chain
from flypemaxi.core.contracts.erc20 import ERC20Token
from flypemaxi.core.contracts.proxy import VaultProxy
from flypemaxi.core.defi.concentrated_liquidity import (
    ConcentratedLiquidityFactory,
    ConcentratedLiquidityPool,
)
from flypemaxi.core.defi.tick_math import encode_price_sqrt
from flypemaxi.core.vault.factory import FlypeMaxiFactoryV1
from flypemaxi.core.vault.vault_v1 import FlypeMaxiVaultV1


USER0 = "0x" + "a0" * 20
USER1 = "0x" + "a1" * 20
USER2 = "0x" + "a2" * 20
REBALANCER = "0x" + "b0" * 20
TREASURY = "0x" + "c0" * 20

START_TIME = 1_700_000_000
INITIAL_SUPPLY = 10**30
USER_BALANCE = 10**24
SWAPPER_BALANCE = 10**27
FULL_RANGE = (-887220, 887220)
ETHER = 10**18


@dataclass
class SwapTester:
    """Trader contract paying pool swaps from its own balance."""

    chain: Chain = field(repr=False, compare=False)
    address: str = ""

    def swap(self, pool, zero_for_one, amount, sqrt_price_limit=None):
        return pool.swap(self.address, self.address, zero_for_one, amount, sqrt_price_limit)

    def uniswap_v3_swap_callback(self, pool_address, amount0_delta, amount1_delta):
        pool = self.chain.get(pool_address)
        if amount0_delta > 0:
            self.chain.get(pool.token0).transfer(self.address, pool.address, amount0_delta)
        elif amount1_delta > 0:
            self.chain.get(pool.token1).transfer(self.address, pool.address, amount1_delta)


@dataclass
class Deployment:
    """A pool, a factory and one deployed vault."""

    chain: Chain
    token0: ERC20Token
    token1: ERC20Token
    pool_factory: ConcentratedLiquidityFactory
    pool: ConcentratedLiquidityPool
    implementation: FlypeMaxiVaultV1
    factory: FlypeMaxiFactoryV1
    vault: VaultProxy
    swapper: SwapTester

    def deposit(self, user, amount0_max, amount1_max, receiver=None):
        """Mint the most shares the maxima allow."""
        shares, amount0, amount1 = self.vault.get_mint_amounts(amount0_max, amount1_max)
        self.vault.mint(user, shares, receiver or user)
        return shares, amount0, amount1

    def wash_trade(self, rounds=2, amount=ETHER // 10):
        """Swap back and forth so the position earns fees in both tokens."""
        for _ in range(rounds):
            self.swapper.swap(self.pool, True, amount)
            self.swapper.swap(self.pool, False, amount)

    def unlock(self):
        """Move the clock past the vault's rebalance cooldown."""
        self.chain.advance_time(self.vault.cooldown_remaining() + 1)


def deploy_world(
    fee=3000,
    lower_tick=FULL_RANGE[0],
    upper_tick=FULL_RANGE[1],
    manager=USER0,
    manager_fee_bps=0,
    sqrt_price=None,
):
    chain = Chain(timestamp=START_TIME)

    token_a = ERC20Token.deploy(chain, USER0, "TOKEN", "TOKEN", initial_supply=INITIAL_SUPPLY)
    token_b = ERC20Token.deploy(chain, USER0, "TOKEN", "TOKEN", initial_supply=INITIAL_SUPPLY)

    pool_factory = ConcentratedLiquidityFactory(chain=chain, owner=USER0)
    chain.register(pool_factory)
    pool = pool_factory.create_pool(
        USER0,
        token_a.address,
        token_b.address,
        fee,
        sqrt_price or encode_price_sqrt(1, 1),
    )

    implementation = FlypeMaxiVaultV1.deploy(chain, USER0, REBALANCER, TREASURY)
    factory = FlypeMaxiFactoryV1.deploy(chain, USER0, pool_factory.address)
    factory.initialize(USER0, implementation.address, USER0)
    vault_address = factory.deploy_vault(
        USER0,
        token_a.address,
        token_b.address,
        fee,
        manager,
        manager_fee_bps,
        lower_tick,
        upper_tick,
    )
    vault = chain.get(vault_address)

    token0 = chain.get(pool.token0)
    token1 = chain.get(pool.token1)

    swapper = SwapTester(chain=chain, address=chain.next_address("SwapTester", USER0))
    chain.register(swapper)

    for token in (token0, token1):
        token.transfer(USER0, swapper.address, SWAPPER_BALANCE)
        for user in (USER1, USER2):
            token.transfer(USER0, user, USER_BALANCE)
        for user in (USER0, USER1, USER2):
            token.approve(user, vault.address, token.UINT256_MAX)

    return Deployment(
        chain=chain,
        token0=token0,
        token1=token1,
        pool_factory=pool_factory,
        pool=pool,
        implementation=implementation,
        factory=factory,
        vault=vault,
        swapper=swapper,
    )


@pytest.fixture
def accounts():
    return SimpleNamespace(
        user0=USER0,
        user1=USER1,
        user2=USER2,
        rebalancer=REBALANCER,
        treasury=TREASURY,
    )


@pytest.fixture
def world():
    """Full-range vault on a 0.3% pool at price 1, managed by USER0."""
    return deploy_world()


@pytest.fixture
def funded_world(world):
    """``world`` after USER0 deposited 1 ether of each token and fees accrued."""
    world.deposit(USER0, ETHER, ETHER)
    world.wash_trade()
    return world


@pytest.fixture
def make_world():
    return deploy_world
