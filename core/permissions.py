"""Explicit capability tokens.

Operations that need elevated rights take a :class:`Permit` argument instead
of inspecting an ambient sender.  Issuing permits is the job of whoever wires
the engine together (see :func:`core.simulation.build_engine`).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet

from core.errors import PermissionDenied


class Capability(Enum):
    ADMIN = "admin"
    KEEPER = "keeper"
    STRATEGY = "strategy"
    POOL = "pool"


@dataclass(frozen=True)
class Permit:
    holder: str
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @classmethod
    def of(cls, holder: str, *capabilities: Capability) -> "Permit":
        return cls(holder=holder, capabilities=frozenset(capabilities))

    def require(self, *any_of: Capability) -> None:
        """Raise :class:`PermissionDenied` unless one of ``any_of`` is held."""

        if not any(cap in self.capabilities for cap in any_of):
            wanted = ", ".join(cap.value for cap in any_of)
            raise PermissionDenied(f"{self.holder} lacks capability ({wanted})")


__all__ = ["Capability", "Permit"]
