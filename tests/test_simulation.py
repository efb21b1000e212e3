import pytest

import main
from config.loader import load_engine_config
from core.errors import PermissionDenied
from core.fixed_point import WAD
from core.keeper import Keeper
from core.permissions import Permit
from core.simulation import build_engine, simulate_round_trip
from tests.conftest import ADMIN, KEEPER
from utils.clock import ManualClock
from vault.onchain import OnChainVaultQuoter


@pytest.fixture
def engine():
    return build_engine(load_engine_config(None), clock=ManualClock())


def test_build_engine_wires_components(engine):
    assert engine.pool.strategy is engine.strategy
    assert engine.strategy.pool is engine.pool
    assert engine.optimizer.pool is engine.pool
    assert engine.executor.vault is engine.vault
    assert engine.keeper.clock is engine.clock
    assert engine.vault.price_per_share() == WAD


def test_build_engine_honours_config():
    cfg = load_engine_config(None)
    cfg["pool"] = dict(cfg["pool"], amplification=250, swap_fee_bps=10)
    cfg["vault"] = dict(cfg["vault"], initial_price_per_share="1.05")
    engine = build_engine(cfg, clock=ManualClock())
    assert engine.pool.amp == 250
    assert engine.pool.state.swap_fee_bps == 10
    assert engine.vault.price_per_share() == 105 * WAD // 100


def test_onchain_vault_price_is_mirrored(monkeypatch):
    class _Quoter:
        def price_per_share(self):
            return 1_234 * WAD // 1_000

    monkeypatch.setattr(OnChainVaultQuoter, "from_rpc", classmethod(lambda cls, rpc_url, address: _Quoter()))
    cfg = load_engine_config(None)
    cfg["vault"] = {"kind": "onchain", "rpc_url": "http://localhost:8545", "address": "0x" + "ab" * 20}
    engine = build_engine(cfg, clock=ManualClock())
    assert engine.vault.price_per_share() == 1_234 * WAD // 1_000


def test_onchain_vault_needs_rpc_and_address():
    cfg = load_engine_config(None)
    cfg["vault"] = {"kind": "onchain"}
    with pytest.raises(ValueError):
        build_engine(cfg, clock=ManualClock())


def test_round_trip_is_a_dry_run(engine):
    engine.pool.add_liquidity([1000 * WAD, 1000 * WAD], 0, "lp")
    trip = simulate_round_trip(engine.pool, 1, 0, 25 * WAD)
    assert 0 < trip.loss < 25 * WAD // 100
    assert engine.pool.balances == [1000 * WAD, 1000 * WAD]


def test_keeper_lends_then_harvests_on_schedule(engine):
    pool, keeper, vault = engine.pool, engine.keeper, engine.vault
    pool.add_liquidity([1000 * WAD, 1000 * WAD], 0, "lp")

    first = keeper.tick()
    assert not first.harvested
    assert first.invested == 800 * WAD

    second = keeper.tick()
    assert second.harvested
    assert (second.profit, second.loss, second.invested) == (0, 0, 0)
    assert not keeper.harvest_due()
    assert not keeper.tick().harvested

    engine.clock.advance(keeper.harvest_interval_seconds)
    vault.accrue(10)
    assert keeper.harvest_due()
    later = keeper.tick()
    assert later.harvested
    assert later.profit > 0
    assert pool.get_current_locked_profit() == later.profit


def test_keeper_skips_paused_pool(engine):
    engine.pool.add_liquidity([1000 * WAD, 1000 * WAD], 0, "lp")
    engine.keeper.tick()
    engine.strategy.emergency_withdraw_all(ADMIN)
    tick = engine.keeper.tick()
    assert (tick.harvested, tick.invested) == (False, 0)


def test_keeper_needs_keeper_rights(engine):
    engine.pool.add_liquidity([1000 * WAD, 1000 * WAD], 0, "lp")
    keeper = Keeper(engine.pool, engine.strategy, engine.clock, Permit.of("nobody"))
    with pytest.raises(PermissionDenied):
        keeper.tick()
    assert Keeper(engine.pool, engine.strategy, engine.clock, KEEPER).tick().invested == 800 * WAD


def test_run_simulation_end_to_end():
    engine = main.run(None, 3)
    assert engine.pool.strategy_debt > 800 * WAD
    assert engine.vault.price_per_share() > WAD
    assert engine.keeper.last_harvest == engine.clock.now()
    assert engine.vault.balance_of("user") == 100 * WAD
    assert engine.pool.get_virtual_price() >= WAD


def test_main_accepts_cli_arguments(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("simulation:\n  conversion_amount: '5'\n")
    assert main.main(["--config", str(path), "--ticks", "1"]) == 0
