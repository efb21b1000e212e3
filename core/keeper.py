"""Periodic upkeep: harvest the strategy and keep the pool's liquid buffer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from core.permissions import Permit

log = logging.getLogger(__name__)


@dataclass
class KeeperTick:
    timestamp: int
    harvested: bool
    profit: int
    loss: int
    invested: int


class Keeper:
    def __init__(self, pool, strategy, clock, permit: Permit, *, harvest_interval_seconds: int = 3_600):
        self.pool = pool
        self.strategy = strategy
        self.clock = clock
        self.permit = permit
        self.harvest_interval_seconds = int(harvest_interval_seconds)
        self.last_harvest: Optional[int] = None

    def harvest_due(self) -> bool:
        if self.last_harvest is None:
            return True
        return self.clock.now() - self.last_harvest >= self.harvest_interval_seconds

    def tick(self) -> KeeperTick:
        now = self.clock.now()
        if self.pool.paused or self.strategy.paused:
            log.debug("[keeper] skipping tick at %d: paused", now)
            return KeeperTick(now, False, 0, 0, 0)

        profit = loss = 0
        harvested = False
        if self.harvest_due() and self.strategy.debt_to_pool > 0:
            profit, loss = self.strategy.harvest(self.permit)
            harvested = True
            self.last_harvest = now
        invested = self.pool.rebalance_strategy(self.permit)
        if harvested or invested:
            log.info("[keeper] tick ts=%d profit=%d loss=%d invested=%d", now, profit, loss, invested)
        return KeeperTick(now, harvested, profit, loss, invested)


__all__ = ["Keeper", "KeeperTick"]
