"""Safety helpers used across the engine: atomic blocks, reentrancy and cooldown guards."""
from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple, TypeVar

from core.errors import CooldownActive, ReentrancyError

log = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@contextmanager
def atomic(*participants: Any) -> Iterator[None]:
    """Run a block all-or-nothing across ``participants``.

    Each participant exposes ``snapshot()`` and ``restore(snap)``.  If the
    block raises, every participant is restored (last first) and the
    exception propagates unchanged.
    """

    seen: set[int] = set()
    unique: List[Any] = []
    for p in participants:
        if p is not None and id(p) not in seen:
            seen.add(id(p))
            unique.append(p)
    snaps: List[Tuple[Any, Any]] = [(p, p.snapshot()) for p in unique]
    try:
        yield
    except BaseException as exc:
        for p, snap in reversed(snaps):
            p.restore(snap)
        log.debug("[atomic] rolled back %d participant(s) after %s", len(snaps), type(exc).__name__)
        raise


@contextmanager
def dry_run(*participants: Any) -> Iterator[None]:
    """Like :func:`atomic` but always restores, even on success."""

    snaps = [(p, p.snapshot()) for p in participants if p is not None]
    try:
        yield
    finally:
        for p, snap in reversed(snaps):
            p.restore(snap)


def non_reentrant(fn: F) -> F:
    """Reject re-entry into any guarded method of the same object."""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        if getattr(self, "_entered", False):
            raise ReentrancyError(f"re-entered {type(self).__name__}.{fn.__name__}")
        self._entered = True
        try:
            return fn(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper  # type: ignore[return-value]


class CooldownGuard:
    """Per-caller rate limit for liquidity-changing operations."""

    def __init__(self, clock, cooldown_seconds: int = 0):
        self.clock = clock
        self.cooldown_seconds = int(cooldown_seconds)
        self._last_action: Dict[str, int] = {}

    def check(self, caller: str) -> None:
        if self.cooldown_seconds <= 0:
            return
        last = self._last_action.get(caller)
        now = self.clock.now()
        if last is not None and now - last < self.cooldown_seconds:
            remaining = self.cooldown_seconds - (now - last)
            raise CooldownActive(f"{caller} in cooldown for another {remaining}s")

    def touch(self, caller: str) -> None:
        self._last_action[caller] = self.clock.now()

    def snapshot(self) -> Dict[str, int]:
        return dict(self._last_action)

    def restore(self, snap: Dict[str, int]) -> None:
        self._last_action = dict(snap)


def clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


__all__ = ["atomic", "dry_run", "non_reentrant", "CooldownGuard", "clamp"]
