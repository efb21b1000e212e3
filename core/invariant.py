"""StableSwap invariant solver.

Pure integer Newton-Raphson routines for the two-asset stable invariant::

    Ann * S + D = Ann * D + D**(n+1) / (n**n * prod(xp))      Ann = A * n**n

The functions are deterministic and use floor division only, so identical
inputs always yield bit-identical results.  A solver that exceeds
``MAX_ITERATIONS`` raises :class:`ConvergenceFailure`; callers never retry.
"""
from __future__ import annotations

import logging
from typing import List, Sequence

from core.errors import ConvergenceFailure, InvalidParameter

log = logging.getLogger(__name__)

N_COINS = 2
MAX_ITERATIONS = 255


def _ann(amp: int) -> int:
    if amp <= 0:
        raise InvalidParameter("amplification coefficient must be positive")
    return amp * N_COINS**N_COINS


def _check_indices(*indices: int) -> None:
    for idx in indices:
        if idx < 0 or idx >= N_COINS:
            raise InvalidParameter(f"asset index out of range: {idx}")


def compute_d(xp: Sequence[int], amp: int) -> int:
    """Return the invariant ``D`` for balances ``xp``."""

    if len(xp) != N_COINS:
        raise InvalidParameter(f"expected {N_COINS} balances, got {len(xp)}")
    s = sum(xp)
    if s == 0:
        return 0
    if any(x <= 0 for x in xp):
        raise InvalidParameter("invariant undefined with an empty balance")

    ann = _ann(amp)
    d = s
    for iteration in range(MAX_ITERATIONS):
        d_p = d
        for x in xp:
            d_p = d_p * d // (x * N_COINS)
        d_prev = d
        d = (ann * s + d_p * N_COINS) * d // ((ann - 1) * d + (N_COINS + 1) * d_p)
        if abs(d - d_prev) <= 1:
            log.debug("[invariant] D converged in %d iterations", iteration + 1)
            return d
    raise ConvergenceFailure(f"compute_d did not converge for balances {list(xp)}")


def _solve_quadratic(d: int, b: int, c: int) -> int:
    y = d
    for _ in range(MAX_ITERATIONS):
        y_prev = y
        denominator = 2 * y + b - d
        if denominator <= 0:
            raise ConvergenceFailure("y iteration left the stable domain")
        y = (y * y + c) // denominator
        if abs(y - y_prev) <= 1:
            return y
    raise ConvergenceFailure("y iteration did not converge")


def _y_terms(skip: int, balances: Sequence[int], d: int, ann: int) -> tuple[int, int]:
    """Return ``(b, c)`` of ``y**2 + y*(b - D) = c`` with ``balances[skip]`` unknown."""

    c = d
    s_ = 0
    for k, x in enumerate(balances):
        if k == skip:
            continue
        if x <= 0:
            raise InvalidParameter("invariant undefined with an empty balance")
        s_ += x
        c = c * d // (x * N_COINS)
    c = c * d // (ann * N_COINS)
    b = s_ + d // ann
    return b, c


def compute_y(i: int, j: int, x: int, xp: Sequence[int], amp: int) -> int:
    """New balance of asset ``j`` once asset ``i`` holds ``x``, keeping ``D`` fixed."""

    _check_indices(i, j)
    if i == j:
        raise InvalidParameter("identical asset indices")
    if x <= 0:
        raise InvalidParameter("new balance must be positive")

    ann = _ann(amp)
    d = compute_d(xp, amp)
    balances: List[int] = list(xp)
    balances[i] = x
    b, c = _y_terms(j, balances, d, ann)
    return _solve_quadratic(d, b, c)


def compute_y_given_d(i: int, xp: Sequence[int], d: int, amp: int) -> int:
    """Balance of asset ``i`` that puts the pool on invariant ``d``.

    Used to size single-asset withdrawals where ``d`` is the reduced target.
    """

    _check_indices(i)
    if d <= 0:
        raise InvalidParameter("target invariant must be positive")
    ann = _ann(amp)
    b, c = _y_terms(i, xp, d, ann)
    return _solve_quadratic(d, b, c)


__all__ = ["N_COINS", "MAX_ITERATIONS", "compute_d", "compute_y", "compute_y_given_d"]
