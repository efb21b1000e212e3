import pytest

from core.errors import SlippageTooHigh
from core.fixed_point import WAD
from execution.trade_executor import AllocationExecutor
from optimizer.hybrid import HybridAllocationOptimizer, OptimizationQuote
from vault.simulated import SimulatedVault


@pytest.fixture
def pricey_vault():
    return SimulatedVault(price_per_share=102 * WAD // 100)


def _split_quote(pool, vault, swap_amount, deposit_amount, swap_bonus=0):
    optimizer = HybridAllocationOptimizer(pool, vault)
    swap_out = optimizer.quote_swap_leg(swap_amount) + swap_bonus
    direct_out = optimizer.quote_direct_leg(deposit_amount)
    return OptimizationQuote(
        amount=swap_amount + deposit_amount,
        swap_amount=swap_amount,
        complement_amount=deposit_amount,
        expected_swap_output=swap_out,
        expected_complement_output=direct_out,
        expected_total=swap_out + direct_out,
    )


def test_executes_both_legs(seeded_pool, pricey_vault):
    quote = _split_quote(seeded_pool, pricey_vault, 50 * WAD, 51 * WAD)
    result = AllocationExecutor(seeded_pool, pricey_vault).execute(quote, "user")
    assert result.success
    assert result.status == "executed"
    assert result.route == ["swap", "deposit"]
    assert result.details["swap_output"] == quote.expected_swap_output
    assert result.details["deposit_output"] == 50 * WAD
    assert result.details["total_output"] == quote.expected_total
    assert seeded_pool.balances == [1050 * WAD, 1000 * WAD - quote.expected_swap_output]
    assert pricey_vault.balance_of("user") == 50 * WAD


def test_deposit_goes_to_recipient(seeded_pool, pricey_vault):
    quote = _split_quote(seeded_pool, pricey_vault, 0, 51 * WAD)
    result = AllocationExecutor(seeded_pool, pricey_vault).execute(quote, "user", recipient="friend")
    assert result.route == ["deposit"]
    assert pricey_vault.balance_of("friend") == 50 * WAD
    assert pricey_vault.balance_of("user") == 0


def test_optimizer_quote_executes(seeded_pool, pricey_vault):
    quote = HybridAllocationOptimizer(seeded_pool, pricey_vault).quote(100 * WAD)
    result = AllocationExecutor(seeded_pool, pricey_vault).execute(quote, "user")
    assert result.details["total_output"] >= quote.expected_total


def test_slippage_rolls_back_every_leg(seeded_pool, pricey_vault):
    # Quote claims more than the pool will pay, so the swap leg falls short.
    quote = _split_quote(seeded_pool, pricey_vault, 50 * WAD, 51 * WAD, swap_bonus=WAD)
    executor = AllocationExecutor(seeded_pool, pricey_vault, slippage_tolerance_bps=50)
    with pytest.raises(SlippageTooHigh):
        executor.execute(quote, "user")
    assert seeded_pool.balances == [1000 * WAD, 1000 * WAD]
    assert pricey_vault.balance_of("user") == 0


def test_deposit_leg_shortfall_undoes_the_swap(seeded_pool, pricey_vault):
    quote = _split_quote(seeded_pool, pricey_vault, 50 * WAD, 51 * WAD)
    pricey_vault.set_price_per_share(2 * WAD)
    with pytest.raises(SlippageTooHigh):
        AllocationExecutor(seeded_pool, pricey_vault).execute(quote, "user")
    assert seeded_pool.balances == [1000 * WAD, 1000 * WAD]
    assert pricey_vault.balance_of("user") == 0


def test_small_shortfall_within_tolerance_passes(seeded_pool, pricey_vault):
    quote = _split_quote(seeded_pool, pricey_vault, 50 * WAD, 0, swap_bonus=10**15)
    result = AllocationExecutor(seeded_pool, pricey_vault, slippage_tolerance_bps=50).execute(quote, "user")
    assert result.status == "executed"


def test_dry_run_leaves_state_untouched(seeded_pool, pricey_vault):
    quote = _split_quote(seeded_pool, pricey_vault, 50 * WAD, 51 * WAD)
    result = AllocationExecutor(seeded_pool, pricey_vault, dry_run_default=True).execute(quote, "user")
    assert result.status == "dry_run"
    assert result.details == {"expected_total": quote.expected_total}
    assert seeded_pool.balances == [1000 * WAD, 1000 * WAD]
    assert pricey_vault.balance_of("user") == 0


def test_rejects_invalid_tolerance(seeded_pool, pricey_vault):
    with pytest.raises(ValueError):
        AllocationExecutor(seeded_pool, pricey_vault, slippage_tolerance_bps=10_001)
