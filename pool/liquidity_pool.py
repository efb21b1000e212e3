"""Two-asset stable-swap liquidity pool with a lending strategy on asset 0.

Asset 0 is partly lent to a :class:`strategy.yield_strategy.YieldStrategy`;
``balances[0]`` is the liquid part and ``strategy_debt`` the lent part.
Asset 1 is fully liquid.  All invariant math runs over the pool's *free*
balances: total asset 0 under management minus the profit still locked by the
:class:`core.locked_profit.ProfitDegradationTracker`.  Newly reported profit is
therefore invisible to swaps, deposits, withdrawals and the virtual price
until it unlocks.

Every state-mutating entry point is non-reentrant and runs inside an
``atomic`` block covering the pool, its tracker, the strategy and the vault,
so a failure at any step leaves no partial mutation behind.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.errors import (
    InsufficientLiquidity,
    InsufficientOutput,
    InvalidParameter,
    InvariantViolation,
    OperationPaused,
    PermissionDenied,
    RoundingError,
)
from core.fixed_point import FEE_DENOMINATOR, WAD, bps_of, mul_div_down
from core.invariant import N_COINS, compute_d, compute_y, compute_y_given_d
from core.locked_profit import DEFAULT_HORIZON_SECONDS, ProfitDegradationTracker
from core.permissions import Capability, Permit
from utils.safety import CooldownGuard, atomic, clamp, non_reentrant

log = logging.getLogger(__name__)

STRATEGY_ASSET = 0
MAX_FEE_BPS = 500
RECALL_TOLERANCE_BPS = 1
PRICE_PROBE_DIVISOR = 10**6


@dataclass
class SwapQuote:
    dy: int
    fee: int
    price_impact: int  # 1e18 == 100%


@dataclass
class PoolState:
    swap_fee_bps: int
    imbalance_fee_bps: int
    balances: List[int] = field(default_factory=lambda: [0] * N_COINS)
    total_shares: int = 0
    shares: Dict[str, int] = field(default_factory=dict)
    strategy_debt: int = 0
    paused: bool = False


def _validate_fee(name: str, value: int) -> int:
    value = int(value)
    if value < 0 or value > MAX_FEE_BPS:
        raise InvalidParameter(f"{name} must be within [0, {MAX_FEE_BPS}] bps, got {value}")
    return value


class LiquidityPool:
    """Stable-swap pool over two 18-decimal assets."""

    def __init__(
        self,
        *,
        amplification: int,
        clock,
        swap_fee_bps: int = 4,
        imbalance_fee_bps: int = 2,
        horizon_seconds: int = DEFAULT_HORIZON_SECONDS,
        cooldown_seconds: int = 0,
        liquid_buffer_bps: int = 2_000,
        name: str = "pool",
    ) -> None:
        if amplification <= 0:
            raise InvalidParameter("amplification coefficient must be positive")
        if not 0 <= liquid_buffer_bps <= FEE_DENOMINATOR:
            raise InvalidParameter("liquid buffer must be within [0, 10000] bps")
        self.name = name
        self.amp = int(amplification)
        self.clock = clock
        self.liquid_buffer_bps = int(liquid_buffer_bps)
        self.state = PoolState(
            swap_fee_bps=_validate_fee("swap_fee_bps", swap_fee_bps),
            imbalance_fee_bps=_validate_fee("imbalance_fee_bps", imbalance_fee_bps),
        )
        self.tracker = ProfitDegradationTracker(clock, horizon_seconds=horizon_seconds)
        self.cooldown = CooldownGuard(clock, cooldown_seconds)
        self.strategy = None
        self._strategy_holder: Optional[str] = None
        self._permit = Permit.of(name, Capability.POOL)
        self._entered = False

    # ------------------------------------------------------------------
    # Atomic participation
    # ------------------------------------------------------------------
    def snapshot(self) -> Tuple[Any, ...]:
        strategy = self.strategy
        return (
            copy.deepcopy(self.state),
            self.tracker.snapshot(),
            self.cooldown.snapshot(),
            strategy,
            self._strategy_holder,
            strategy.snapshot() if strategy is not None else None,
        )

    def restore(self, snap: Tuple[Any, ...]) -> None:
        state, tracker, cooldown, strategy, holder, strategy_snap = snap
        self.state = copy.deepcopy(state)
        self.tracker.restore(tracker)
        self.cooldown.restore(cooldown)
        self.strategy = strategy
        self._strategy_holder = holder
        if strategy is not None:
            strategy.restore(strategy_snap)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    @property
    def balances(self) -> List[int]:
        return list(self.state.balances)

    @property
    def total_shares(self) -> int:
        return self.state.total_shares

    @property
    def strategy_debt(self) -> int:
        return self.state.strategy_debt

    @property
    def paused(self) -> bool:
        return self.state.paused

    def shares_of(self, holder: str) -> int:
        return self.state.shares.get(holder, 0)

    def total_managed(self) -> List[int]:
        """Assets under management: liquid balances plus the debt lent out."""

        st = self.state
        return [st.balances[0] + st.strategy_debt, st.balances[1]]

    def get_current_locked_profit(self) -> int:
        return self.tracker.current_locked()

    def get_free_funds(self) -> int:
        """Free asset-0 funds: total under management minus locked profit."""

        return self.tracker.free_funds(self.total_managed()[STRATEGY_ASSET])

    def _free_xp(self) -> List[int]:
        xp = self.total_managed()
        xp[STRATEGY_ASSET] = self.get_free_funds()
        return xp

    def get_virtual_price(self) -> int:
        if self.state.total_shares == 0:
            raise InvalidParameter("pool has no liquidity")
        d = compute_d(self._free_xp(), self.amp)
        return mul_div_down(d, WAD, self.state.total_shares)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    @staticmethod
    def _check_pair(i: int, j: int) -> None:
        for idx in (i, j):
            if idx not in range(N_COINS):
                raise InvalidParameter(f"asset index out of range: {idx}")
        if i == j:
            raise InvalidParameter("identical asset indices")

    def _dy_before_fee(self, i: int, j: int, dx: int, xp: Sequence[int]) -> int:
        y = compute_y(i, j, xp[i] + dx, xp, self.amp)
        # -1 rounds the payout down in the pool's favour.
        return max(xp[j] - y - 1, 0)

    def quote_swap(self, i: int, j: int, dx: int) -> SwapQuote:
        """Output, fee and price impact of selling ``dx`` of asset ``i`` for ``j``."""

        self._check_pair(i, j)
        if dx <= 0:
            raise InvalidParameter("swap amount must be positive")
        xp = self._free_xp()
        dy_before_fee = self._dy_before_fee(i, j, dx, xp)
        fee = bps_of(dy_before_fee, self.state.swap_fee_bps)
        dy = dy_before_fee - fee

        probe = max(xp[i] // PRICE_PROBE_DIVISOR, 1)
        spot_out = self._dy_before_fee(i, j, probe, xp)
        price_impact = 0
        if spot_out > 0:
            spot = mul_div_down(spot_out, WAD, probe)
            realized = mul_div_down(dy_before_fee, WAD, dx)
            if spot > realized:
                price_impact = mul_div_down(spot - realized, WAD, spot)
        return SwapQuote(dy=dy, fee=fee, price_impact=price_impact)

    preview_swap = quote_swap

    def _calc_add_liquidity(self, amounts: Sequence[int]) -> Tuple[int, List[int]]:
        if len(amounts) != N_COINS:
            raise InvalidParameter(f"expected {N_COINS} amounts")
        if any(a < 0 for a in amounts) or not any(amounts):
            raise InvalidParameter("deposit amounts must be non-negative and not all zero")
        st = self.state
        old = self._free_xp()
        if st.total_shares == 0 and not all(amounts):
            raise InvalidParameter("initial deposit requires both assets")
        d0 = compute_d(old, self.amp) if st.total_shares > 0 else 0
        new = [old[k] + amounts[k] for k in range(N_COINS)]
        d1 = compute_d(new, self.amp)
        if d1 <= d0:
            raise InvariantViolation("liquidity didn't increase")

        fees = [0] * N_COINS
        if st.total_shares == 0:
            return d1, fees
        if d0 == 0:
            raise InvariantViolation("outstanding shares over an empty invariant")
        for k in range(N_COINS):
            ideal = d1 * old[k] // d0
            fees[k] = bps_of(abs(ideal - new[k]), st.imbalance_fee_bps)
        d2 = compute_d([new[k] - fees[k] for k in range(N_COINS)], self.amp)
        if d2 < d0:
            raise RoundingError(f"imbalance fees pushed the invariant below its start: {d2} < {d0}")
        minted = st.total_shares * (d2 - d0) // d0
        return minted, fees

    def preview_add_liquidity(self, amounts: Sequence[int]) -> int:
        minted, _ = self._calc_add_liquidity(amounts)
        return minted

    def _calc_withdraw_one_token(self, shares: int, i: int) -> Tuple[int, int]:
        if i not in range(N_COINS):
            raise InvalidParameter(f"asset index out of range: {i}")
        st = self.state
        if shares <= 0:
            raise InvalidParameter("share amount must be positive")
        if shares >= st.total_shares:
            raise InvalidParameter("cannot burn every outstanding share into one asset")
        xp = self._free_xp()
        d0 = compute_d(xp, self.amp)
        d1 = d0 - shares * d0 // st.total_shares
        new_y = compute_y_given_d(i, xp, d1, self.amp)

        reduced = list(xp)
        for k in range(N_COINS):
            if k == i:
                dx_expected = xp[k] * d1 // d0 - new_y
            else:
                dx_expected = xp[k] - xp[k] * d1 // d0
            reduced[k] -= bps_of(max(dx_expected, 0), st.imbalance_fee_bps)
        dy = reduced[i] - compute_y_given_d(i, reduced, d1, self.amp) - 1
        dy = max(dy, 0)
        dy_without_fee = xp[i] - new_y
        return dy, max(dy_without_fee - dy, 0)

    def calc_withdraw_one_token(self, shares: int, i: int) -> Tuple[int, int]:
        """``(amount_out, fee)`` for burning ``shares`` into asset ``i``."""

        return self._calc_withdraw_one_token(shares, i)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require_active(self) -> None:
        if self.state.paused:
            raise OperationPaused(f"{self.name} is paused")

    def _require_strategy(self, permit: Permit) -> None:
        permit.require(Capability.STRATEGY)
        if self.strategy is None or permit.holder != self._strategy_holder:
            raise PermissionDenied(f"{permit.holder} is not the attached strategy")

    def _burn(self, holder: str, shares: int) -> None:
        st = self.state
        if shares <= 0:
            raise InvalidParameter("share amount must be positive")
        held = st.shares.get(holder, 0)
        if shares > held:
            raise InvalidParameter(f"{holder} holds {held} shares, cannot burn {shares}")
        st.shares[holder] = held - shares
        st.total_shares -= shares

    def _recall(self, shortfall: int) -> int:
        """Pull up to ``shortfall`` (plus a small tolerance) back from the strategy.

        The debt is written down by what the strategy wrote off, not by what
        arrived; vault-side slippage between the two is booked as a loss.
        """

        st = self.state
        strategy = self.strategy
        if strategy is None or shortfall <= 0 or st.strategy_debt == 0:
            return 0
        request = clamp(shortfall + bps_of(shortfall, RECALL_TOLERANCE_BPS) + 1, 0, st.strategy_debt)
        owed_before = strategy.debt_to_pool
        received = strategy.pool_call_withdraw(request, self._permit)
        written_off = min(max(owed_before - strategy.debt_to_pool, received), st.strategy_debt)
        st.balances[STRATEGY_ASSET] += received
        st.strategy_debt -= written_off
        slippage = max(written_off - received, 0)
        if slippage:
            self.tracker.on_report(0, slippage)
            log.warning("[pool] recall slippage booked as loss: %d", slippage)
        log.info(
            "[pool] recall requested=%d received=%d debt=%d", request, received, st.strategy_debt
        )
        return received

    def _deliverable(self, amount: int) -> int:
        """Asset-0 amount that can actually leave; partial when the recall falls short."""

        liquid = self.state.balances[STRATEGY_ASSET]
        if liquid >= amount:
            return amount
        self._recall(amount - liquid)
        liquid = self.state.balances[STRATEGY_ASSET]
        if liquid < amount:
            log.warning("[pool] partial delivery: owed=%d delivered=%d", amount, liquid)
            return liquid
        return amount

    def _push_to_strategy(self, amount: int) -> None:
        st = self.state
        if self.strategy is None:
            raise InvalidParameter("no strategy attached")
        if amount <= 0 or amount > st.balances[STRATEGY_ASSET]:
            raise InvalidParameter(f"cannot lend {amount}; liquid={st.balances[STRATEGY_ASSET]}")
        st.balances[STRATEGY_ASSET] -= amount
        st.strategy_debt += amount
        self.strategy.invest(amount, self._permit)
        log.info("[pool] lent %d to strategy; debt=%d", amount, st.strategy_debt)

    # ------------------------------------------------------------------
    # Trading and liquidity
    # ------------------------------------------------------------------
    @non_reentrant
    def swap(self, i: int, j: int, dx: int, min_dy: int, caller: str) -> int:
        self._require_active()
        with atomic(self):
            quote = self.quote_swap(i, j, dx)
            if quote.dy == 0 or quote.dy < min_dy:
                raise InsufficientOutput(f"swap output {quote.dy} below minimum {min_dy}")
            if j == STRATEGY_ASSET and self.state.balances[j] < quote.dy:
                self._recall(quote.dy - self.state.balances[j])
                if self.state.balances[j] < quote.dy:
                    raise InsufficientLiquidity(
                        f"liquid {self.state.balances[j]} cannot cover swap output {quote.dy}"
                    )
            self.state.balances[i] += dx
            self.state.balances[j] -= quote.dy
        log.info(
            "[pool] swap caller=%s %d->%d dx=%d dy=%d fee=%d impact=%d",
            caller, i, j, dx, quote.dy, quote.fee, quote.price_impact,
        )
        return quote.dy

    @non_reentrant
    def add_liquidity(self, amounts: Sequence[int], min_shares: int, caller: str) -> int:
        self._require_active()
        self.cooldown.check(caller)
        with atomic(self):
            minted, fees = self._calc_add_liquidity(amounts)
            if minted <= 0 or minted < min_shares:
                raise InsufficientOutput(f"minted {minted} shares below minimum {min_shares}")
            st = self.state
            for k in range(N_COINS):
                st.balances[k] += amounts[k]
            st.shares[caller] = st.shares.get(caller, 0) + minted
            st.total_shares += minted
            self.cooldown.touch(caller)
        log.info("[pool] add_liquidity caller=%s amounts=%s shares=%d fees=%s", caller, list(amounts), minted, fees)
        return minted

    @non_reentrant
    def remove_liquidity(self, shares: int, min_amounts: Sequence[int], caller: str) -> List[int]:
        self._require_active()
        self.cooldown.check(caller)
        if len(min_amounts) != N_COINS:
            raise InvalidParameter(f"expected {N_COINS} minimum amounts")
        with atomic(self):
            st = self.state
            total = st.total_shares
            xp = self._free_xp()
            self._burn(caller, shares)
            amounts = [xp[k] * shares // total for k in range(N_COINS)]
            for k in range(N_COINS):
                if amounts[k] < min_amounts[k]:
                    raise InsufficientOutput(f"asset {k} amount {amounts[k]} below minimum {min_amounts[k]}")
            amounts[STRATEGY_ASSET] = self._deliverable(amounts[STRATEGY_ASSET])
            for k in range(N_COINS):
                st.balances[k] -= amounts[k]
            self.cooldown.touch(caller)
        log.info("[pool] remove_liquidity caller=%s shares=%d amounts=%s", caller, shares, amounts)
        return amounts

    @non_reentrant
    def remove_liquidity_one_token(self, shares: int, i: int, min_amount_out: int, caller: str) -> int:
        self._require_active()
        self.cooldown.check(caller)
        with atomic(self):
            amount, fee = self._calc_withdraw_one_token(shares, i)
            if amount < min_amount_out:
                raise InsufficientOutput(f"withdrawal {amount} below minimum {min_amount_out}")
            self._burn(caller, shares)
            if i == STRATEGY_ASSET:
                amount = self._deliverable(amount)
            self.state.balances[i] -= amount
            self.cooldown.touch(caller)
        log.info(
            "[pool] remove_one caller=%s shares=%d asset=%d amount=%d fee=%d", caller, shares, i, amount, fee
        )
        return amount

    # ------------------------------------------------------------------
    # Strategy wiring
    # ------------------------------------------------------------------
    def attach_strategy(self, strategy, permit: Permit) -> None:
        permit.require(Capability.ADMIN)
        if self.strategy is not None:
            raise InvalidParameter("a strategy is already attached")
        if self.state.strategy_debt != 0:
            raise InvariantViolation("debt outstanding without a strategy")
        self.strategy = strategy
        self._strategy_holder = strategy.name
        strategy.bind_pool(self, Permit.of(strategy.name, Capability.STRATEGY))
        log.info("[pool] attached strategy %s", strategy.name)

    @non_reentrant
    def allocate_to_strategy(self, amount: int, permit: Permit) -> None:
        permit.require(Capability.ADMIN, Capability.KEEPER)
        self._require_active()
        with atomic(self):
            self._push_to_strategy(amount)

    @non_reentrant
    def rebalance_strategy(self, permit: Permit) -> int:
        """Lend every unit of liquid asset 0 above the configured buffer."""

        permit.require(Capability.ADMIN, Capability.KEEPER)
        self._require_active()
        if self.strategy is None:
            return 0
        total = self.total_managed()[STRATEGY_ASSET]
        excess = self.state.balances[STRATEGY_ASSET] - bps_of(total, self.liquid_buffer_bps)
        if excess <= 0:
            return 0
        with atomic(self):
            self._push_to_strategy(excess)
        return excess

    @non_reentrant
    def report(self, profit: int, loss: int, new_total_debt: int, permit: Permit) -> None:
        """Reconcile the strategy's result into pool accounting."""

        self._require_strategy(permit)
        if profit < 0 or loss < 0 or new_total_debt < 0:
            raise InvalidParameter("report values must be non-negative")
        if profit > 0 and loss > 0:
            raise InvariantViolation("report carries both profit and loss")
        st = self.state
        if loss > st.strategy_debt:
            raise InvariantViolation(f"loss {loss} exceeds recorded debt {st.strategy_debt}")
        with atomic(self):
            expected = st.strategy_debt + profit - loss
            if expected != new_total_debt:
                log.warning("[pool] debt drift reconciled: expected=%d reported=%d", expected, new_total_debt)
            # The lock follows the actual change in debt, drift included.
            change = new_total_debt - st.strategy_debt
            self.tracker.on_report(max(change, 0), max(-change, 0))
            st.strategy_debt = new_total_debt
        log.info(
            "[pool] report profit=%d loss=%d debt=%d locked=%d",
            profit, loss, new_total_debt, self.tracker.current_locked(),
        )

    @non_reentrant
    def call_emergency_call(self, returned: int, permit: Permit) -> None:
        """Take back everything the strategy returned, detach it and pause."""

        self._require_strategy(permit)
        if returned < 0:
            raise InvalidParameter("returned amount must be non-negative")
        with atomic(self):
            st = self.state
            debt = st.strategy_debt
            self.tracker.on_report(max(returned - debt, 0), max(debt - returned, 0))
            st.balances[STRATEGY_ASSET] += returned
            st.strategy_debt = 0
            st.paused = True
            self.strategy = None
            self._strategy_holder = None
        log.error("[pool] emergency exit: returned=%d prior_debt=%d; pool paused", returned, debt)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------
    def set_fees(self, swap_fee_bps: int, imbalance_fee_bps: int, permit: Permit) -> None:
        permit.require(Capability.ADMIN)
        swap_fee = _validate_fee("swap_fee_bps", swap_fee_bps)
        imbalance_fee = _validate_fee("imbalance_fee_bps", imbalance_fee_bps)
        self.state.swap_fee_bps = swap_fee
        self.state.imbalance_fee_bps = imbalance_fee
        log.info("[pool] fees set swap=%d bps imbalance=%d bps", swap_fee, imbalance_fee)

    def set_degradation_horizon(self, seconds: int, permit: Permit) -> None:
        permit.require(Capability.ADMIN)
        self.tracker.set_horizon(seconds)

    def unpause(self, permit: Permit) -> None:
        permit.require(Capability.ADMIN)
        self.state.paused = False
        log.info("[pool] unpaused")


__all__ = ["LiquidityPool", "PoolState", "SwapQuote", "STRATEGY_ASSET", "MAX_FEE_BPS"]
