"""Yield strategy lending the pool's asset 0 to an external vault.

The strategy owns the debt relationship with the pool: ``debt_to_pool`` is
what it owes back, ``vault_shares`` what it holds.  Profit and loss are
measured against the debt at ``harvest`` time and pushed into the pool with a
single ``report`` call, which is the only point where the pool's view of the
debt is re-synchronised.

Recalls by the pool (``pool_call_withdraw``) never fail hard on vault-side
problems: a shortfall shows up as a smaller returned amount and a paused
strategy returns nothing.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from core.errors import InvalidParameter, InvariantViolation, OperationPaused, VaultWithdrawalError
from core.fixed_point import FEE_DENOMINATOR, WAD, bps_of, mul_div_down, mul_div_up
from core.permissions import Capability, Permit
from utils.safety import atomic, non_reentrant
from vault.interface import Vault

log = logging.getLogger(__name__)

MAX_PERFORMANCE_FEE_BPS = 5_000


class StrategyState(Enum):
    IDLE = "idle"
    INVESTED = "invested"
    HARVESTING = "harvesting"
    EMERGENCY_EXITED = "emergency_exited"


@dataclass
class StrategyPosition:
    performance_fee_bps: int
    debt_to_pool: int = 0
    vault_shares: int = 0
    idle: int = 0
    fees_paid: int = 0
    stranded_shares: int = 0
    state: StrategyState = StrategyState.IDLE


class YieldStrategy:
    def __init__(
        self,
        vault: Vault,
        *,
        performance_fee_bps: int = 1_000,
        max_loss_bps: int = 100,
        fee_recipient: str = "treasury",
        name: str = "strategy",
    ) -> None:
        if not 0 <= performance_fee_bps <= MAX_PERFORMANCE_FEE_BPS:
            raise InvalidParameter(
                f"performance fee must be within [0, {MAX_PERFORMANCE_FEE_BPS}] bps"
            )
        if not 0 <= max_loss_bps <= FEE_DENOMINATOR:
            raise InvalidParameter("max loss must be within [0, 10000] bps")
        self.vault = vault
        self.name = name
        self.fee_recipient = fee_recipient
        self.max_loss_bps = int(max_loss_bps)
        self.position = StrategyPosition(performance_fee_bps=int(performance_fee_bps))
        self.pool = None
        self._pool_permit: Optional[Permit] = None
        self._entered = False

    # ------------------------------------------------------------------
    def snapshot(self) -> Tuple[Any, ...]:
        vault_snap = self.vault.snapshot() if hasattr(self.vault, "snapshot") else None
        return copy.copy(self.position), vault_snap

    def restore(self, snap: Tuple[Any, ...]) -> None:
        position, vault_snap = snap
        self.position = copy.copy(position)
        if vault_snap is not None:
            self.vault.restore(vault_snap)

    def bind_pool(self, pool, permit: Permit) -> None:
        """Called by the pool when it attaches this strategy."""

        permit.require(Capability.STRATEGY)
        self.pool = pool
        self._pool_permit = permit

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    @property
    def paused(self) -> bool:
        return self.position.state is StrategyState.EMERGENCY_EXITED

    @property
    def debt_to_pool(self) -> int:
        return self.position.debt_to_pool

    def vault_value(self) -> int:
        return mul_div_down(self.position.vault_shares, self.vault.price_per_share(), WAD)

    def estimated_total_assets(self) -> int:
        return self.position.idle + self.vault_value()

    def preview_withdraw(self, amount: int) -> int:
        """Expected want a recall of ``amount`` returns, before vault-side losses."""

        if self.paused or amount <= 0:
            return 0
        from_idle = min(amount, self.position.idle)
        remaining = amount - from_idle
        if remaining == 0:
            return from_idle
        pps = self.vault.price_per_share()
        shares = min(mul_div_up(remaining, WAD, pps), self.position.vault_shares)
        return from_idle + mul_div_down(shares, pps, WAD)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _deposit_idle(self) -> int:
        pos = self.position
        if pos.idle <= 0:
            return 0
        minted = self.vault.deposit(pos.idle, self.name)
        pos.vault_shares += minted
        deposited, pos.idle = pos.idle, 0
        log.debug("[strategy] deposited %d want for %d shares", deposited, minted)
        return minted

    def _redeem(self, shares: int, recipient: str, max_loss_bps: Optional[int] = None) -> int:
        """Burn ``shares`` into ``recipient``; tolerated vault refusals return 0."""

        if shares <= 0:
            return 0
        max_loss = self.max_loss_bps if max_loss_bps is None else max_loss_bps
        try:
            assets = self.vault.withdraw(shares, recipient, max_loss, owner=self.name)
        except VaultWithdrawalError as exc:
            log.warning("[strategy] vault refused withdrawal of %d shares: %s", shares, exc)
            return 0
        self.position.vault_shares = self.vault.balance_of(self.name)
        return assets

    # ------------------------------------------------------------------
    # Pool-facing operations
    # ------------------------------------------------------------------
    @non_reentrant
    def invest(self, amount: int, permit: Permit) -> int:
        permit.require(Capability.POOL)
        if self.paused:
            raise OperationPaused(f"{self.name} is emergency-exited")
        if amount <= 0:
            raise InvalidParameter("invest amount must be positive")
        with atomic(self):
            pos = self.position
            pos.debt_to_pool += amount
            pos.idle += amount
            minted = self._deposit_idle()
            pos.state = StrategyState.INVESTED
        log.info("[strategy] invest amount=%d shares=%d debt=%d", amount, minted, pos.debt_to_pool)
        return minted

    @non_reentrant
    def pool_call_withdraw(self, amount: int, permit: Permit) -> int:
        """Return up to ``amount`` want to the pool; the actual amount may be lower."""

        permit.require(Capability.POOL)
        if amount <= 0:
            raise InvalidParameter("withdraw amount must be positive")
        if self.paused:
            log.warning("[strategy] recall of %d while paused; returning nothing", amount)
            return 0
        with atomic(self):
            pos = self.position
            from_idle = min(amount, pos.idle)
            pos.idle -= from_idle
            expected = from_idle
            received = from_idle

            remaining = amount - from_idle
            if remaining > 0 and pos.vault_shares > 0:
                pps = self.vault.price_per_share()
                shares = min(mul_div_up(remaining, WAD, pps), pos.vault_shares)
                held_before = pos.vault_shares
                received += self._redeem(shares, self.name)
                burned = held_before - pos.vault_shares
                expected += mul_div_down(burned, pps, WAD)
            pos.debt_to_pool -= min(expected, pos.debt_to_pool)
        if received < amount:
            log.warning("[strategy] recall short: requested=%d returned=%d", amount, received)
        log.info("[strategy] recall returned=%d debt=%d", received, pos.debt_to_pool)
        return received

    # ------------------------------------------------------------------
    # Keeper / admin operations
    # ------------------------------------------------------------------
    @non_reentrant
    def harvest(self, permit: Permit) -> Tuple[int, int]:
        """Measure the position against the debt and report the result to the pool."""

        permit.require(Capability.KEEPER, Capability.ADMIN)
        if self.paused:
            raise OperationPaused(f"{self.name} is emergency-exited")
        if self.pool is None:
            raise InvalidParameter("strategy is not attached to a pool")
        with atomic(self, self.pool):
            pos = self.position
            pos.state = StrategyState.HARVESTING
            self._deposit_idle()
            total = self.estimated_total_assets()
            profit = loss = 0
            if total < pos.debt_to_pool:
                loss = pos.debt_to_pool - total
                pos.debt_to_pool -= loss
            else:
                gross = total - pos.debt_to_pool
                fee = bps_of(gross, pos.performance_fee_bps)
                if fee > gross:
                    raise InvariantViolation(f"performance fee {fee} exceeds profit {gross}")
                if fee > 0:
                    pps = self.vault.price_per_share()
                    paid = self._redeem(mul_div_up(fee, WAD, pps), self.fee_recipient)
                    pos.fees_paid += paid
                after_fee = self.estimated_total_assets()
                profit = max(after_fee - pos.debt_to_pool, 0)
                if profit > gross:
                    raise InvariantViolation(f"net profit {profit} exceeds gross profit {gross}")
                pos.debt_to_pool += profit
            pos.state = StrategyState.INVESTED if pos.debt_to_pool > 0 else StrategyState.IDLE
            self.pool.report(profit, loss, pos.debt_to_pool, self._pool_permit)
        log.info("[strategy] harvest profit=%d loss=%d debt=%d", profit, loss, pos.debt_to_pool)
        return profit, loss

    @non_reentrant
    def emergency_withdraw_all(self, permit: Permit) -> Tuple[int, int]:
        """Pause, unwind the whole vault position and hand everything back to the pool."""

        permit.require(Capability.ADMIN)
        if self.paused:
            raise OperationPaused(f"{self.name} already emergency-exited")
        pool = self.pool
        with atomic(self, pool):
            pos = self.position
            pos.state = StrategyState.EMERGENCY_EXITED
            if pos.vault_shares > 0:
                # Unwinding accepts any vault-side loss.
                pos.idle += self._redeem(pos.vault_shares, self.name, FEE_DENOMINATOR)
            # Shares the vault could not redeem are written off with the exit loss.
            pos.stranded_shares, pos.vault_shares = pos.vault_shares, 0
            returned = pos.idle
            debt = pos.debt_to_pool
            profit = max(returned - debt, 0)
            loss = max(debt - returned, 0)
            pos.idle = 0
            pos.debt_to_pool = 0
            if pool is not None:
                pool.call_emergency_call(returned, self._pool_permit)
                self.pool = None
                self._pool_permit = None
        log.error(
            "[strategy] emergency exit returned=%d profit=%d loss=%d stranded_shares=%d",
            returned, profit, loss, pos.stranded_shares,
        )
        return profit, loss


__all__ = ["YieldStrategy", "StrategyPosition", "StrategyState"]
