import copy

import pytest

from core.errors import InvalidParameter, InvariantViolation, OperationPaused, PermissionDenied
from core.fixed_point import WAD
from core.locked_profit import DEFAULT_HORIZON_SECONDS
from strategy.yield_strategy import StrategyState, YieldStrategy
from tests.conftest import ADMIN, KEEPER, POOL


@pytest.fixture
def fully_lent_pool(seeded_pool, strategy):
    seeded_pool.attach_strategy(strategy, ADMIN)
    seeded_pool.allocate_to_strategy(1000 * WAD, ADMIN)
    return seeded_pool


def test_invest_mirrors_pool_debt(lent_pool, strategy, vault):
    assert strategy.debt_to_pool == lent_pool.strategy_debt == 800 * WAD
    assert strategy.position.vault_shares == vault.balance_of(strategy.name) == 800 * WAD
    assert strategy.position.state is StrategyState.INVESTED


def test_invest_requires_pool_capability(strategy):
    with pytest.raises(PermissionDenied):
        strategy.invest(WAD, KEEPER)
    with pytest.raises(InvalidParameter):
        strategy.invest(0, POOL)


def test_performance_fee_cap(vault):
    with pytest.raises(InvalidParameter):
        YieldStrategy(vault, performance_fee_bps=5_001)


def test_harvest_reports_profit_net_of_fee(fully_lent_pool, strategy, vault):
    vault.set_price_per_share(105 * WAD // 100)
    profit, loss = strategy.harvest(KEEPER)
    assert loss == 0
    assert abs(profit - 45 * WAD) <= 10
    assert abs(vault.payout_of("treasury") - 5 * WAD) <= 10
    assert strategy.debt_to_pool == fully_lent_pool.strategy_debt == 1000 * WAD + profit
    assert fully_lent_pool.get_current_locked_profit() == profit


def test_reported_profit_is_invisible_until_it_unlocks(fully_lent_pool, strategy, vault, clock):
    vault.set_price_per_share(105 * WAD // 100)
    strategy.harvest(KEEPER)
    assert fully_lent_pool.get_virtual_price() == WAD
    clock.advance(DEFAULT_HORIZON_SECONDS // 2)
    halfway = fully_lent_pool.get_virtual_price()
    assert halfway > WAD
    clock.advance(DEFAULT_HORIZON_SECONDS // 2)
    assert fully_lent_pool.get_current_locked_profit() == 0
    assert fully_lent_pool.get_virtual_price() > halfway


def test_sandwiching_a_harvest_earns_nothing(fully_lent_pool, strategy, vault):
    vault.set_price_per_share(105 * WAD // 100)
    minted = fully_lent_pool.add_liquidity([100 * WAD, 100 * WAD], 0, "attacker")
    assert minted == 200 * WAD
    strategy.harvest(KEEPER)
    assert fully_lent_pool.remove_liquidity(minted, [0, 0], "attacker") == [100 * WAD, 100 * WAD]


def test_harvest_reports_loss(lent_pool, strategy, vault):
    vault.set_price_per_share(90 * WAD // 100)
    profit, loss = strategy.harvest(ADMIN)
    assert (profit, loss) == (0, 80 * WAD)
    assert strategy.debt_to_pool == lent_pool.strategy_debt == 720 * WAD
    assert lent_pool.get_current_locked_profit() == 0
    assert lent_pool.get_virtual_price() < WAD


def test_loss_eats_into_locked_profit(lent_pool, strategy, vault):
    vault.set_price_per_share(110 * WAD // 100)
    profit, _ = strategy.harvest(KEEPER)
    vault.set_price_per_share(vault.price_per_share() * 99 // 100)
    _, loss = strategy.harvest(KEEPER)
    assert loss > 0
    assert lent_pool.get_current_locked_profit() == profit - loss


def test_harvest_requires_keeper_or_admin(lent_pool, strategy):
    with pytest.raises(PermissionDenied):
        strategy.harvest(POOL)


def test_harvest_without_pool_rejected(strategy):
    with pytest.raises(InvalidParameter):
        strategy.harvest(KEEPER)


def test_failed_report_rolls_back_harvest(lent_pool, strategy, vault, monkeypatch):
    vault.set_price_per_share(105 * WAD // 100)
    position_before = copy.copy(strategy.position)

    def broken_report(*args, **kwargs):
        raise InvariantViolation("report rejected")

    monkeypatch.setattr(lent_pool, "report", broken_report)
    with pytest.raises(InvariantViolation):
        strategy.harvest(KEEPER)
    assert strategy.position == position_before
    assert vault.payout_of("treasury") == 0
    assert vault.balance_of(strategy.name) == 800 * WAD


def test_recall_returns_requested_amount(lent_pool, strategy, vault):
    received = strategy.pool_call_withdraw(100 * WAD, POOL)
    assert received == 100 * WAD
    assert strategy.debt_to_pool == 700 * WAD
    assert vault.balance_of(strategy.name) == 700 * WAD


def test_recall_is_short_when_vault_refuses(lent_pool, strategy, vault):
    vault.set_withdrawal_loss(200)
    assert strategy.pool_call_withdraw(100 * WAD, POOL) == 0
    assert strategy.debt_to_pool == 800 * WAD


def test_recall_clamps_debt_at_zero(lent_pool, strategy, vault):
    vault.set_price_per_share(2 * WAD)
    received = strategy.pool_call_withdraw(1000 * WAD, POOL)
    assert received == 1000 * WAD
    assert strategy.debt_to_pool == 0


def test_preview_withdraw_matches_recall(lent_pool, strategy):
    preview = strategy.preview_withdraw(150 * WAD)
    assert strategy.pool_call_withdraw(150 * WAD, POOL) == preview


def test_emergency_exit_returns_everything_and_pauses(lent_pool, strategy, vault):
    vault.set_withdrawal_loss(500)
    profit, loss = strategy.emergency_withdraw_all(ADMIN)
    assert (profit, loss) == (0, 40 * WAD)
    assert strategy.paused
    assert strategy.debt_to_pool == 0
    assert strategy.position.vault_shares == 0
    assert lent_pool.paused
    assert lent_pool.strategy is None
    assert lent_pool.strategy_debt == 0
    assert lent_pool.balances[0] == 960 * WAD


def test_emergency_exit_writes_off_unredeemable_shares(lent_pool, strategy, vault):
    vault.set_available_liquidity(500 * WAD)
    profit, loss = strategy.emergency_withdraw_all(ADMIN)
    assert (profit, loss) == (0, 300 * WAD)
    assert strategy.position.vault_shares == 0
    assert strategy.position.stranded_shares == 300 * WAD
    assert strategy.estimated_total_assets() == 0
    assert vault.balance_of(strategy.name) == 300 * WAD
    assert lent_pool.strategy_debt == 0
    assert lent_pool.balances[0] == 700 * WAD


def test_paused_strategy_refuses_work(lent_pool, strategy):
    strategy.emergency_withdraw_all(ADMIN)
    assert strategy.pool_call_withdraw(WAD, POOL) == 0
    with pytest.raises(OperationPaused):
        strategy.harvest(KEEPER)
    with pytest.raises(OperationPaused):
        strategy.invest(WAD, POOL)
    with pytest.raises(OperationPaused):
        strategy.emergency_withdraw_all(ADMIN)


def test_emergency_exit_requires_admin(lent_pool, strategy):
    with pytest.raises(PermissionDenied):
        strategy.emergency_withdraw_all(KEEPER)
