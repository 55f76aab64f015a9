"""Interfaces the liquidator consumes.

``sender`` plays the role of the call origin on every state-changing call.
"""
from typing import Protocol, Tuple

from web3 import Web3

# ERC-3156 borrower acknowledgement; lenders treat anything else as failure.
FLASH_CALLBACK_SUCCESS = Web3.keccak(text="ERC3156FlashBorrower.onFlashLoan")


class Token(Protocol):
    address: str

    def balance_of(self, holder: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, to: str, amount: int, sender: str) -> bool: ...

    def transfer_from(self, src: str, to: str, amount: int, sender: str) -> bool: ...

    def approve(self, spender: str, amount: int, sender: str) -> bool: ...


class Pool(Protocol):
    address: str

    def assets(self) -> Tuple[str, str]: ...

    def reserves(self) -> Tuple[int, int]: ...

    def swap(self, amount_out_a: int, amount_out_b: int, recipient: str, sender: str) -> None: ...


class FlashLender(Protocol):
    address: str

    def issue(self, receiver: str, asset: str, amount: int, context: bytes, sender: str) -> bool: ...

    def max_loan(self, asset: str) -> int: ...

    def fee_for(self, asset: str, amount: int) -> int: ...


class LendingProtocol(Protocol):
    address: str

    def debt_asset(self) -> str: ...

    def collateral_assets(self) -> Tuple[str, str]: ...

    def repay(self, asset: str, amount: int, on_behalf_of: str, sender: str) -> int: ...

    def reclaim_all_collateral(self, owner: str, recipient: str, sender: str) -> None: ...

    def total_debt_of(self, owner: str) -> int: ...
