"""Split a conversion of asset 0 between a pool swap and a direct vault deposit.

Asset 1 of the pool is the vault's share token, so a user holding asset 0 can
reach it two ways: swap through the pool (non-linear, price impact grows with
size) or deposit straight into the vault (linear at ``WAD / price_per_share``).
:func:`optimize_split` bisects the swap share ``x`` of ``amount`` by comparing
the marginal rates of the two legs and returns the best total it observed.

The finite-difference step used for the swap leg's marginal rate is clamped
to ``amount - mid`` so it never probes beyond the input being split.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from core.errors import EngineError, InvalidParameter
from core.fixed_point import WAD, mul_div_down
from vault.interface import VaultQuoter

log = logging.getLogger(__name__)

MAX_ITERATIONS = 20
MARGINAL_STEP = 10**15
CONVERGENCE_THRESHOLD = 10**12

QuoteFn = Callable[[int], int]


@dataclass(frozen=True)
class OptimizationQuote:
    amount: int
    swap_amount: int
    complement_amount: int
    expected_swap_output: int
    expected_complement_output: int
    expected_total: int
    iterations: int = 0


def _quote(amount: int, swap_amount: int, quote_swap: QuoteFn, quote_direct: QuoteFn, iterations: int) -> OptimizationQuote:
    swap_out = quote_swap(swap_amount)
    direct_out = quote_direct(amount - swap_amount)
    return OptimizationQuote(
        amount=amount,
        swap_amount=swap_amount,
        complement_amount=amount - swap_amount,
        expected_swap_output=swap_out,
        expected_complement_output=direct_out,
        expected_total=swap_out + direct_out,
        iterations=iterations,
    )


def optimize_split(
    amount: int,
    quote_swap: QuoteFn,
    quote_direct: QuoteFn,
    *,
    max_iterations: int = MAX_ITERATIONS,
    marginal_step: int = MARGINAL_STEP,
    convergence_threshold: int = CONVERGENCE_THRESHOLD,
) -> OptimizationQuote:
    """Best observed split of ``amount`` between the swap and the direct leg.

    Both quote functions take an input amount and return the output for it;
    they must return 0 for an input of 0.  The result is never worse than
    either pure allocation.
    """

    if amount <= 0:
        raise InvalidParameter("amount to optimise must be positive")
    if marginal_step <= 0:
        raise InvalidParameter("marginal step must be positive")

    all_swap = quote_swap(amount)
    all_direct = quote_direct(amount)
    if all_direct >= all_swap:
        log.debug("[optimizer] direct dominates at full size: direct=%d swap=%d", all_direct, all_swap)
        return _quote(amount, 0, quote_swap, quote_direct, 0)

    best_x, best_total = amount, all_swap
    lo, hi = 0, amount
    iterations = 0
    for _ in range(max_iterations):
        if hi - lo <= convergence_threshold:
            break
        iterations += 1
        mid = (lo + hi) // 2
        swap_mid = quote_swap(mid)
        direct_rest = quote_direct(amount - mid)
        total = swap_mid + direct_rest
        if total > best_total:
            best_x, best_total = mid, total

        step = min(marginal_step, amount - mid)
        if step <= 0:
            break
        marginal_swap = mul_div_down(quote_swap(mid + step) - swap_mid, WAD, step)
        marginal_direct = mul_div_down(direct_rest - quote_direct(amount - mid - step), WAD, step)
        log.debug(
            "[optimizer] it=%d mid=%d total=%d marginal_swap=%d marginal_direct=%d",
            iterations, mid, total, marginal_swap, marginal_direct,
        )
        if marginal_swap > marginal_direct:
            lo = mid
        else:
            hi = mid

    result = _quote(amount, best_x, quote_swap, quote_direct, iterations)
    log.info(
        "[optimizer] amount=%d swap=%d direct=%d total=%d (all_swap=%d all_direct=%d)",
        amount, result.swap_amount, result.complement_amount, result.expected_total, all_swap, all_direct,
    )
    return result


class HybridAllocationOptimizer:
    """Binds :func:`optimize_split` to a pool (asset 0 -> 1) and a vault."""

    def __init__(
        self,
        pool,
        vault: VaultQuoter,
        *,
        max_iterations: int = MAX_ITERATIONS,
        marginal_step: int = MARGINAL_STEP,
        convergence_threshold: int = CONVERGENCE_THRESHOLD,
    ) -> None:
        self.pool = pool
        self.vault = vault
        self.max_iterations = int(max_iterations)
        self.marginal_step = int(marginal_step)
        self.convergence_threshold = int(convergence_threshold)

    def quote_swap_leg(self, amount: int) -> int:
        if amount <= 0:
            return 0
        try:
            return self.pool.quote_swap(0, 1, amount).dy
        except EngineError as exc:
            # Sizes the curve cannot price are simply not worth anything to the search.
            log.debug("[optimizer] swap leg unpriceable at %d: %s", amount, exc)
            return 0

    def quote_direct_leg(self, amount: int) -> int:
        if amount <= 0:
            return 0
        return mul_div_down(amount, WAD, self.vault.price_per_share())

    def quote(self, amount: int) -> OptimizationQuote:
        return optimize_split(
            amount,
            self.quote_swap_leg,
            self.quote_direct_leg,
            max_iterations=self.max_iterations,
            marginal_step=self.marginal_step,
            convergence_threshold=self.convergence_threshold,
        )


__all__ = ["OptimizationQuote", "optimize_split", "HybridAllocationOptimizer"]
