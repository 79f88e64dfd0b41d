"""
AetherDEX token ledger (in-process stand-in for token contracts).
"""

from .ledger import TokenLedger, Transfer, TransferCallback

__all__ = [
    "TokenLedger",
    "Transfer",
    "TransferCallback",
]
