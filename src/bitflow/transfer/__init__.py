"""Value-transfer primitive interface and in-memory ledger."""

from bitflow.transfer.ledger import TokenLedger, TransferError, TransferPrimitive

__all__ = ["TokenLedger", "TransferError", "TransferPrimitive"]
