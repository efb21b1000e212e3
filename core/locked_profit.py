"""Locked-profit degradation.

Profit reported by the strategy is not priced in at once.  It starts fully
locked and unlocks linearly over a fixed horizon, so an actor depositing just
before a report and withdrawing just after captures none of it.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from core.errors import InvalidParameter
from core.fixed_point import WAD

log = logging.getLogger(__name__)

COEFFICIENT = WAD
DEFAULT_HORIZON_SECONDS = 6 * 60 * 60


def rate_for_horizon(seconds: int) -> int:
    """Per-second degradation rate that unlocks everything after ``seconds``."""

    if seconds <= 0:
        raise InvalidParameter("degradation horizon must be positive")
    return -(-COEFFICIENT // seconds)


@dataclass
class LockedProfit:
    locked_amount: int = 0
    last_report: int = 0
    degradation_rate: int = rate_for_horizon(DEFAULT_HORIZON_SECONDS)


class ProfitDegradationTracker:
    """Owns a :class:`LockedProfit` record and the clock it decays against."""

    def __init__(self, clock, *, horizon_seconds: int = DEFAULT_HORIZON_SECONDS):
        self.clock = clock
        self.state = LockedProfit(
            last_report=clock.now(),
            degradation_rate=rate_for_horizon(horizon_seconds),
        )

    # ------------------------------------------------------------------
    def current_locked(self) -> int:
        st = self.state
        if st.locked_amount == 0:
            return 0
        elapsed = max(self.clock.now() - st.last_report, 0)
        decayed = elapsed * st.degradation_rate
        if decayed >= COEFFICIENT:
            return 0
        return st.locked_amount * (COEFFICIENT - decayed) // COEFFICIENT

    def on_report(self, gain: int, loss: int) -> int:
        """Fold a report into the lock and restart the decay window."""

        if gain < 0 or loss < 0:
            raise InvalidParameter("gain and loss must be non-negative")
        locked = self.current_locked()
        if gain > 0:
            locked = locked + gain
        elif loss > 0:
            locked = max(locked - loss, 0)
        self.state.locked_amount = locked
        self.state.last_report = self.clock.now()
        log.debug("[locked-profit] report gain=%d loss=%d locked=%d", gain, loss, locked)
        return locked

    def free_funds(self, total_assets: int) -> int:
        return max(total_assets - self.current_locked(), 0)

    def set_horizon(self, seconds: int) -> None:
        # Re-anchor first so the part already unlocked stays unlocked.
        self.on_report(0, 0)
        self.state.degradation_rate = rate_for_horizon(seconds)

    # ------------------------------------------------------------------
    def snapshot(self) -> LockedProfit:
        return copy.copy(self.state)

    def restore(self, snap: LockedProfit) -> None:
        self.state = copy.copy(snap)


__all__ = [
    "COEFFICIENT",
    "DEFAULT_HORIZON_SECONDS",
    "LockedProfit",
    "ProfitDegradationTracker",
    "rate_for_horizon",
]
