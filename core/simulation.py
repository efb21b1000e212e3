"""Engine wiring and deterministic what-if helpers.

:func:`build_engine` turns a config dict (see :mod:`config.loader`) into a
connected pool, strategy, vault, optimizer, executor and keeper.  The
helpers here never leave state behind: :func:`simulate_round_trip` executes
real swaps inside a ``dry_run`` block and rolls them back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.fixed_point import to_wad
from core.keeper import Keeper
from core.permissions import Capability, Permit
from execution.trade_executor import AllocationExecutor
from optimizer.hybrid import HybridAllocationOptimizer
from pool.liquidity_pool import LiquidityPool
from strategy.yield_strategy import YieldStrategy
from utils.clock import SystemClock
from utils.safety import dry_run
from vault.simulated import SimulatedVault

log = logging.getLogger(__name__)

ADMIN = Permit.of("admin", Capability.ADMIN)
KEEPER = Permit.of("keeper", Capability.KEEPER)


@dataclass
class Engine:
    clock: Any
    vault: SimulatedVault
    pool: LiquidityPool
    strategy: YieldStrategy
    optimizer: HybridAllocationOptimizer
    executor: AllocationExecutor
    keeper: Keeper
    admin: Permit = ADMIN


@dataclass
class RoundTrip:
    amount_in: int
    intermediate: int
    amount_out: int

    @property
    def loss(self) -> int:
        return self.amount_in - self.amount_out


def _initial_price_per_share(vault_cfg: Dict[str, Any]) -> int:
    if str(vault_cfg.get("kind", "simulated")).lower() == "onchain":
        from vault.onchain import OnChainVaultQuoter

        rpc_url = vault_cfg.get("rpc_url")
        address = vault_cfg.get("address")
        if not rpc_url or not address:
            raise ValueError("vault.kind=onchain requires vault.rpc_url and vault.address")
        price = OnChainVaultQuoter.from_rpc(rpc_url, address).price_per_share()
        log.info("[engine] mirrored on-chain pricePerShare=%d from %s", price, address)
        return price
    return to_wad(vault_cfg.get("initial_price_per_share", "1.0"))


def build_engine(config: Dict[str, Any], clock: Optional[Any] = None) -> Engine:
    clock = clock or SystemClock()
    pool_cfg = config.get("pool", {})
    strategy_cfg = config.get("strategy", {})
    optimizer_cfg = config.get("optimizer", {})
    horizon = int(config.get("locked_profit", {}).get("degradation_horizon_seconds", 6 * 60 * 60))

    vault = SimulatedVault(price_per_share=_initial_price_per_share(config.get("vault", {})))
    pool = LiquidityPool(
        amplification=int(pool_cfg.get("amplification", 100)),
        clock=clock,
        swap_fee_bps=int(pool_cfg.get("swap_fee_bps", 4)),
        imbalance_fee_bps=int(pool_cfg.get("imbalance_fee_bps", 2)),
        horizon_seconds=horizon,
        cooldown_seconds=int(pool_cfg.get("cooldown_seconds", 0)),
        liquid_buffer_bps=int(pool_cfg.get("liquid_buffer_bps", 2_000)),
    )
    strategy = YieldStrategy(
        vault,
        performance_fee_bps=int(strategy_cfg.get("performance_fee_bps", 1_000)),
        max_loss_bps=int(strategy_cfg.get("max_loss_bps", 100)),
        fee_recipient=str(strategy_cfg.get("fee_recipient", "treasury")),
    )
    pool.attach_strategy(strategy, ADMIN)

    optimizer = HybridAllocationOptimizer(
        pool,
        vault,
        max_iterations=int(optimizer_cfg.get("max_iterations", 20)),
        marginal_step=int(optimizer_cfg.get("marginal_step", 10**15)),
        convergence_threshold=int(optimizer_cfg.get("convergence_threshold", 10**12)),
    )
    executor = AllocationExecutor(
        pool,
        vault,
        slippage_tolerance_bps=int(optimizer_cfg.get("slippage_tolerance_bps", 50)),
        dry_run_default=bool(optimizer_cfg.get("dry_run", False)),
    )
    keeper = Keeper(
        pool,
        strategy,
        clock,
        KEEPER,
        harvest_interval_seconds=int(strategy_cfg.get("harvest_interval_seconds", 60 * 60)),
    )
    log.info(
        "[engine] built pool A=%d fee=%d bps horizon=%ds strategy fee=%d bps",
        pool.amp, pool.state.swap_fee_bps, horizon, strategy.position.performance_fee_bps,
    )
    return Engine(
        clock=clock, vault=vault, pool=pool, strategy=strategy,
        optimizer=optimizer, executor=executor, keeper=keeper,
    )


def simulate_round_trip(pool: LiquidityPool, i: int, j: int, dx: int, caller: str = "simulation") -> RoundTrip:
    """Swap ``dx`` of ``i`` into ``j`` and straight back, leaving the pool untouched."""

    with dry_run(pool):
        dy = pool.swap(i, j, dx, 0, caller)
        back = pool.swap(j, i, dy, 0, caller)
    return RoundTrip(amount_in=dx, intermediate=dy, amount_out=back)


__all__ = ["Engine", "RoundTrip", "build_engine", "simulate_round_trip", "ADMIN", "KEEPER"]
