"""Executor for hybrid swap + deposit conversions.

Execution takes a previously computed :class:`OptimizationQuote` and runs
both legs inside one ``atomic`` block.  Each leg's actual output is checked
against its quoted output; a shortfall beyond ``slippage_tolerance_bps``
raises :class:`SlippageTooHigh` and rolls back both legs.  With
``dry_run_default`` the executor only logs what it would have done.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from core.errors import SlippageTooHigh
from core.fixed_point import FEE_DENOMINATOR, bps_of
from optimizer.hybrid import OptimizationQuote
from utils.safety import atomic

log = logging.getLogger(__name__)

DEFAULT_SLIPPAGE_TOLERANCE_BPS = 50


@dataclass
class ExecutionResult:
    route: list[str]
    success: bool
    status: str
    details: Dict[str, Any]


def _check_leg(leg: str, expected: int, actual: int, tolerance_bps: int) -> None:
    floor = expected - bps_of(expected, tolerance_bps)
    if actual < floor:
        raise SlippageTooHigh(
            f"{leg} leg returned {actual}, expected {expected} (tolerance {tolerance_bps} bps)"
        )


class AllocationExecutor:
    """Execution wrapper that respects the dry-run toggle."""

    def __init__(
        self,
        pool,
        vault,
        *,
        slippage_tolerance_bps: int = DEFAULT_SLIPPAGE_TOLERANCE_BPS,
        dry_run_default: bool = False,
    ) -> None:
        if not 0 <= slippage_tolerance_bps <= FEE_DENOMINATOR:
            raise ValueError("slippage tolerance must be within [0, 10000] bps")
        self.pool = pool
        self.vault = vault
        self.slippage_tolerance_bps = int(slippage_tolerance_bps)
        self.dry_run_default = dry_run_default

    def execute(self, quote: OptimizationQuote, caller: str, recipient: str | None = None) -> ExecutionResult:
        recipient = recipient or caller
        route = [leg for leg, size in (("swap", quote.swap_amount), ("deposit", quote.complement_amount)) if size > 0]
        if self.dry_run_default:
            log.info(
                "[executor] Simulating route=%s swap=%d deposit=%d expected_total=%d",
                "+".join(route), quote.swap_amount, quote.complement_amount, quote.expected_total,
            )
            return ExecutionResult(
                route=route, success=True, status="dry_run", details={"expected_total": quote.expected_total}
            )

        swap_out = deposit_out = 0
        with atomic(self.pool, self.vault):
            if quote.swap_amount > 0:
                swap_out = self.pool.swap(0, 1, quote.swap_amount, 0, caller)
                _check_leg("swap", quote.expected_swap_output, swap_out, self.slippage_tolerance_bps)
            if quote.complement_amount > 0:
                deposit_out = self.vault.deposit(quote.complement_amount, recipient)
                _check_leg("deposit", quote.expected_complement_output, deposit_out, self.slippage_tolerance_bps)

        log.info(
            "[executor] Executed route=%s swap_out=%d deposit_out=%d total=%d",
            "+".join(route), swap_out, deposit_out, swap_out + deposit_out,
        )
        return ExecutionResult(
            route=route,
            success=True,
            status="executed",
            details={
                "swap_output": swap_out,
                "deposit_output": deposit_out,
                "total_output": swap_out + deposit_out,
                "expected_total": quote.expected_total,
            },
        )


__all__ = ["AllocationExecutor", "ExecutionResult"]
