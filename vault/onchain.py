"""Read-only view of a deployed yield vault through web3.

Only the quote half of the vault interface is served: the optimizer's
direct-deposit leg needs ``price_per_share`` and integrators may want
``balance_of``.  Deposits and withdrawals against a live vault belong to the
signing/execution stack, which this engine does not own.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from web3 import Web3

log = logging.getLogger(__name__)

VAULT_ABI: List[Dict[str, Any]] = [
    {
        "name": "pricePerShare",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]


class OnChainVaultQuoter:
    def __init__(self, w3: Web3, address: str):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.contract = w3.eth.contract(address=self.address, abi=VAULT_ABI)
        self._scale: int | None = None

    @classmethod
    def from_rpc(cls, rpc_url: str, address: str, *, timeout: float = 10.0) -> "OnChainVaultQuoter":
        provider = Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        return cls(Web3(provider), address)

    def _decimals_scale(self) -> int:
        if self._scale is None:
            decimals = int(self.contract.functions.decimals().call())
            # Normalise share prices to 18 decimals.
            self._scale = 10 ** (18 - decimals) if decimals <= 18 else 1
        return self._scale

    def price_per_share(self) -> int:
        raw = int(self.contract.functions.pricePerShare().call())
        price = raw * self._decimals_scale()
        log.debug("[vault-onchain] pricePerShare raw=%d normalised=%d", raw, price)
        return price

    def balance_of(self, account: str) -> int:
        return int(self.contract.functions.balanceOf(Web3.to_checksum_address(account)).call())


__all__ = ["OnChainVaultQuoter", "VAULT_ABI"]
