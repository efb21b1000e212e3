import pytest

from core.fixed_point import WAD
from core.permissions import Capability, Permit
from pool.liquidity_pool import LiquidityPool
from strategy.yield_strategy import YieldStrategy
from utils.clock import ManualClock
from vault.simulated import SimulatedVault

ADMIN = Permit.of("admin", Capability.ADMIN)
KEEPER = Permit.of("keeper", Capability.KEEPER)
POOL = Permit.of("pool", Capability.POOL)


@pytest.fixture
def clock():
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def vault():
    return SimulatedVault(price_per_share=WAD)


@pytest.fixture
def pool(clock):
    return LiquidityPool(amplification=100, clock=clock, swap_fee_bps=4, imbalance_fee_bps=2)


@pytest.fixture
def seeded_pool(pool):
    pool.add_liquidity([1000 * WAD, 1000 * WAD], 0, "lp")
    return pool


@pytest.fixture
def strategy(vault):
    return YieldStrategy(vault, performance_fee_bps=1_000, max_loss_bps=100, fee_recipient="treasury")


@pytest.fixture
def lent_pool(seeded_pool, strategy):
    """Pool seeded 1000/1000 with 800 of asset 0 lent to the strategy."""

    seeded_pool.attach_strategy(strategy, ADMIN)
    seeded_pool.allocate_to_strategy(800 * WAD, ADMIN)
    return seeded_pool
