"""Value transfer — the primitive that moves tokens when a tag is paid.

The real primitive lives outside this package (an on-chain token
transfer). The service only depends on the TransferPrimitive shape:
a callable taking (sender, recipient, amount) that returns a transfer
reference on success and raises TransferError on failure.

TokenLedger is an in-memory balance book with that shape, used for
local runs and tests.
"""

from __future__ import annotations

import logging
from typing import Protocol


logger = logging.getLogger("bitflow.transfer")


class TransferError(Exception):
    """The transfer primitive refused or failed to move funds."""


class TransferPrimitive(Protocol):
    def __call__(self, sender: str, recipient: str, amount: int) -> str:
        ...


class TokenLedger:
    """In-memory token balances with atomic transfers.

    A transfer either moves the full amount and returns a reference,
    or raises TransferError and changes nothing.
    """

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = dict(balances or {})
        self._transfer_counter = 0

    def __call__(self, sender: str, recipient: str, amount: int) -> str:
        return self.transfer(sender, recipient, amount)

    def mint(self, party: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Mint amount must be positive, got {amount}")
        self._balances[party] = self._balances.get(party, 0) + amount

    def balance(self, party: str) -> int:
        return self._balances.get(party, 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> str:
        if amount <= 0:
            raise TransferError(f"Transfer amount must be positive, got {amount}")
        if sender == recipient:
            raise TransferError("Sender and recipient must differ")
        available = self._balances.get(sender, 0)
        if available < amount:
            raise TransferError(
                f"Insufficient balance for {sender}: {available} < {amount}"
            )

        self._balances[sender] = available - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self._transfer_counter += 1
        ref = f"TX-{self._transfer_counter:08d}"
        logger.debug(f"{ref}: {amount} from {sender} to {recipient}")
        return ref
