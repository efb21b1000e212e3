"""In-process vault used for offline simulation and tests.

Share price is set explicitly (``accrue`` / ``set_price_per_share``) rather
than derived from a lending market.  Two knobs model an unhealthy vault:
``withdrawal_loss_bps`` haircuts every withdrawal and ``available_liquidity``
caps how much want can leave in total.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from core.errors import InvalidParameter, VaultWithdrawalError
from core.fixed_point import FEE_DENOMINATOR, WAD, bps_of, mul_div_down

log = logging.getLogger(__name__)


@dataclass
class _VaultBook:
    price_per_share: int = WAD
    shares: Dict[str, int] = field(default_factory=dict)
    total_shares: int = 0
    payouts: Dict[str, int] = field(default_factory=dict)
    withdrawal_loss_bps: int = 0
    available_liquidity: Optional[int] = None


class SimulatedVault:
    def __init__(self, *, price_per_share: int = WAD, name: str = "vault"):
        if price_per_share <= 0:
            raise InvalidParameter("price per share must be positive")
        self.name = name
        self.book = _VaultBook(price_per_share=price_per_share)

    # ------------------------------------------------------------------
    # Vault interface
    # ------------------------------------------------------------------
    def price_per_share(self) -> int:
        return self.book.price_per_share

    def balance_of(self, account: str) -> int:
        return self.book.shares.get(account, 0)

    def deposit(self, amount: int, recipient: str) -> int:
        if amount <= 0:
            raise InvalidParameter("deposit amount must be positive")
        minted = mul_div_down(amount, WAD, self.book.price_per_share)
        if minted == 0:
            raise InvalidParameter("deposit too small to mint a share")
        self.book.shares[recipient] = self.balance_of(recipient) + minted
        self.book.total_shares += minted
        log.debug("[vault] deposit amount=%d shares=%d to=%s", amount, minted, recipient)
        return minted

    def withdraw(
        self, max_shares: int, recipient: str, max_loss_bps: int, *, owner: str | None = None
    ) -> int:
        owner = owner or recipient
        book = self.book
        shares = min(max_shares, self.balance_of(owner))
        if shares <= 0:
            return 0
        if book.withdrawal_loss_bps > max_loss_bps:
            raise VaultWithdrawalError(
                f"withdrawal loss {book.withdrawal_loss_bps} bps exceeds max {max_loss_bps} bps"
            )
        value = mul_div_down(shares, book.price_per_share, WAD)
        if book.available_liquidity is not None and value > book.available_liquidity:
            # Burn only the shares the remaining liquidity covers.
            shares = mul_div_down(book.available_liquidity, WAD, book.price_per_share)
            value = mul_div_down(shares, book.price_per_share, WAD)
        assets = value - bps_of(value, book.withdrawal_loss_bps)
        if book.available_liquidity is not None:
            book.available_liquidity -= value
        book.shares[owner] = self.balance_of(owner) - shares
        book.total_shares -= shares
        book.payouts[recipient] = book.payouts.get(recipient, 0) + assets
        log.debug(
            "[vault] withdraw shares=%d assets=%d owner=%s to=%s", shares, assets, owner, recipient
        )
        return assets

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------
    def set_price_per_share(self, price: int) -> None:
        if price <= 0:
            raise InvalidParameter("price per share must be positive")
        self.book.price_per_share = price

    def accrue(self, gain_bps: int) -> int:
        """Grow the share price by ``gain_bps`` and return the new price."""

        self.book.price_per_share += bps_of(self.book.price_per_share, gain_bps)
        return self.book.price_per_share

    def set_withdrawal_loss(self, bps: int) -> None:
        if not 0 <= bps <= FEE_DENOMINATOR:
            raise InvalidParameter("withdrawal loss must be within [0, 10000] bps")
        self.book.withdrawal_loss_bps = bps

    def set_available_liquidity(self, amount: Optional[int]) -> None:
        self.book.available_liquidity = amount

    def payout_of(self, recipient: str) -> int:
        return self.book.payouts.get(recipient, 0)

    def total_assets(self) -> int:
        return mul_div_down(self.book.total_shares, self.book.price_per_share, WAD)

    # ------------------------------------------------------------------
    def snapshot(self) -> _VaultBook:
        return copy.deepcopy(self.book)

    def restore(self, snap: _VaultBook) -> None:
        self.book = copy.deepcopy(snap)


__all__ = ["SimulatedVault"]
