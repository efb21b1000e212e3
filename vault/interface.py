"""Interface of the external yield vault consumed by the strategy and optimizer."""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class VaultQuoter(Protocol):
    def price_per_share(self) -> int:
        """Value of one share in want, scaled by ``WAD``."""
        ...

    def balance_of(self, account: str) -> int:
        ...


@runtime_checkable
class Vault(VaultQuoter, Protocol):
    def deposit(self, amount: int, recipient: str) -> int:
        """Deposit ``amount`` want, mint shares to ``recipient`` and return them."""
        ...

    def withdraw(
        self, max_shares: int, recipient: str, max_loss_bps: int, *, owner: str | None = None
    ) -> int:
        """Burn up to ``max_shares`` of ``owner`` and send the assets to ``recipient``.

        ``owner`` defaults to ``recipient``.  Returns the assets delivered.
        """
        ...


__all__ = ["Vault", "VaultQuoter"]
