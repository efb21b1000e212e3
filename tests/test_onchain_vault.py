from unittest.mock import MagicMock

from web3 import Web3

from core.fixed_point import WAD
from vault.interface import Vault, VaultQuoter
from vault.onchain import OnChainVaultQuoter

ADDRESS = "0x" + "ab" * 20


def make_quoter(decimals=18, price=WAD, balance=0):
    w3 = MagicMock()
    functions = w3.eth.contract.return_value.functions
    functions.decimals.return_value.call.return_value = decimals
    functions.pricePerShare.return_value.call.return_value = price
    functions.balanceOf.return_value.call.return_value = balance
    return OnChainVaultQuoter(w3, ADDRESS), w3


def test_address_is_checksummed():
    quoter, w3 = make_quoter()
    assert quoter.address == Web3.to_checksum_address(ADDRESS)
    assert w3.eth.contract.call_args.kwargs["address"] == quoter.address


def test_price_per_share_in_wad():
    quoter, _ = make_quoter(price=1_050_000_000_000_000_000)
    assert quoter.price_per_share() == 105 * WAD // 100


def test_price_per_share_normalised_from_six_decimals():
    quoter, w3 = make_quoter(decimals=6, price=1_050_000)
    assert quoter.price_per_share() == 105 * WAD // 100
    quoter.price_per_share()
    # decimals are read once
    assert w3.eth.contract.return_value.functions.decimals.call_count == 1


def test_balance_of_checksums_account():
    quoter, w3 = make_quoter(balance=42)
    account = "0x" + "cd" * 20
    assert quoter.balance_of(account) == 42
    w3.eth.contract.return_value.functions.balanceOf.assert_called_with(Web3.to_checksum_address(account))


def test_live_vault_only_quotes():
    quoter, _ = make_quoter()
    assert isinstance(quoter, VaultQuoter)
    assert not isinstance(quoter, Vault)
