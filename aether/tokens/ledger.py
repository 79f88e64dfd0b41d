"""
In-process token ledger.

Stands in for the token contracts the core talks to: balances per
(token, holder), mint/burn for test funding and a transfer hook so callers
can observe (or re-enter from) every transfer the way a malicious token
contract could.

``atomic()`` gives callers the all-or-nothing semantics of a single host
call: every balance change made inside the block is undone if the block
raises.
"""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Tuple

from ..exceptions import InsufficientBalance, ZeroAddress, ZeroAmount
from ..constants import ZERO_ADDRESS
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transfer:
    """A completed ledger movement, handed to transfer callbacks."""
    token: str
    sender: str
    recipient: str
    amount: int


TransferCallback = Callable[[Transfer], None]

# (token, holder, balance delta, supply delta)
_JournalEntry = Tuple[str, str, int, int]


class TokenLedger:
    """
    Balances of every token held by every address.

    Transfers are all-or-nothing: the balance check happens before either
    side moves. Callbacks run after the balances have been updated.
    """

    def __init__(self) -> None:
        self._balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._supply: Dict[str, int] = defaultdict(int)
        self._callbacks: List[TransferCallback] = []
        self._journal: List[_JournalEntry] = []
        self._depth: int = 0

    # -- Queries ------------------------------------------------------------

    def balance_of(self, token: str, holder: str) -> int:
        return self._balances[token][holder]

    def total_supply(self, token: str) -> int:
        return self._supply[token]

    def require_balance(self, token: str, holder: str, amount: int) -> None:
        """Raise ``InsufficientBalance`` unless ``holder`` can pay ``amount``."""
        balance = self._balances[token][holder]
        if balance < amount:
            raise InsufficientBalance(
                f"{holder} holds {balance} {token}, needs {amount}"
            )

    # -- Supply -------------------------------------------------------------

    def mint(self, token: str, to: str, amount: int) -> None:
        if to == ZERO_ADDRESS:
            raise ZeroAddress("Cannot mint to the zero address")
        if amount <= 0:
            raise ZeroAmount("Mint amount must be positive")
        self._apply(token, to, amount, amount)
        logger.debug("Minted %s %s to %s", amount, token, to)

    def burn(self, token: str, holder: str, amount: int) -> None:
        if amount <= 0:
            raise ZeroAmount("Burn amount must be positive")
        self.require_balance(token, holder, amount)
        self._apply(token, holder, -amount, -amount)

    # -- Transfers ----------------------------------------------------------

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """
        Move ``amount`` of ``token`` from ``sender`` to ``recipient``.

        Zero-amount transfers are accepted and still notify callbacks.

        Raises:
            ZeroAddress: recipient is the zero address
            InsufficientBalance: sender cannot cover the amount
        """
        if amount < 0:
            raise ZeroAmount("Transfer amount cannot be negative")
        if recipient == ZERO_ADDRESS:
            raise ZeroAddress("Cannot transfer to the zero address")
        self.require_balance(token, sender, amount)
        self._apply(token, sender, -amount, 0)
        self._apply(token, recipient, amount, 0)

        record = Transfer(token, sender, recipient, amount)
        for callback in list(self._callbacks):
            callback(record)

    # -- Atomicity ----------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["TokenLedger"]:
        """
        Undo every balance change made inside the block if it raises.

        Blocks nest; only the outermost one discards the journal.
        """
        mark = len(self._journal)
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._undo(mark)
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._journal.clear()

    def _apply(self, token: str, holder: str, delta: int, supply_delta: int) -> None:
        self._balances[token][holder] += delta
        if supply_delta:
            self._supply[token] += supply_delta
        if self._depth:
            self._journal.append((token, holder, delta, supply_delta))

    def _undo(self, mark: int) -> None:
        while len(self._journal) > mark:
            token, holder, delta, supply_delta = self._journal.pop()
            self._balances[token][holder] -= delta
            if supply_delta:
                self._supply[token] -= supply_delta
        logger.debug("Ledger rolled back to journal mark %d", mark)

    # -- Callbacks ----------------------------------------------------------

    def on_transfer(self, callback: TransferCallback) -> Callable[[], None]:
        """Register a transfer observer; returns an unregister function."""
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove
