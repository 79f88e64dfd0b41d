"""
Protocol Revenue Distribution

Implements:
  - Revenue recipients with basis-point shares (sum of active ≤ 100 %)
  - distribute_revenue: pull into the treasury, pay every active recipient
    its share, keep the remainder in the treasury
  - Per-token distribution totals and per-recipient claim totals
  - Reentrancy guard and emergency pause
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..logger import get_logger
from ..clock import Clock, SystemClock
from ..constants import BPS, ZERO_ADDRESS
from ..events import EventLog, RevenueDistributed
from ..exceptions import (
    InvalidPercentage,
    Locked,
    Paused,
    RecipientExists,
    RecipientNotFound,
    ZeroAddress,
    ZeroAmount,
)
from ..tokens.ledger import TokenLedger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  RECIPIENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass
class RevenueShare:
    """A revenue recipient and its cut."""
    recipient: str
    percentage_bps: int
    active: bool = True
    total_claimed: int = 0
    claimed_by_token: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "percentageBps": self.percentage_bps,
            "active": self.active,
            "totalClaimed": self.total_claimed,
            "claimedByToken": dict(self.claimed_by_token),
        }


# ══════════════════════════════════════════════════════════════════════
#  DISTRIBUTOR
# ══════════════════════════════════════════════════════════════════════

class RevenueDistributor:
    """
    Splits protocol revenue between recipients.

    Payouts floor (``amount * bps // BPS``); rounding dust and any
    unallocated share stay with the treasury.
    """

    def __init__(
        self,
        ledger: TokenLedger,
        treasury: str,
        events: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
    ):
        if treasury == ZERO_ADDRESS:
            raise ZeroAddress("Treasury cannot be the zero address")
        self.ledger = ledger
        self.treasury = treasury
        self.events = events
        self.clock = clock or SystemClock()
        self._recipients: Dict[str, RevenueShare] = {}
        self._total_distributed: Dict[str, int] = {}
        self._locked = False
        self._paused = False

    # ── Emergency controls ────────────────────────────────────────────

    def pause(self) -> None:
        self._paused = True
        logger.warning("Revenue distribution PAUSED")

    def unpause(self) -> None:
        self._paused = False
        logger.info("Revenue distribution resumed")

    @property
    def is_paused(self) -> bool:
        return self._paused

    # ── Recipients ────────────────────────────────────────────────────

    def _active_bps(self, exclude: Optional[str] = None) -> int:
        return sum(
            r.percentage_bps for r in self._recipients.values()
            if r.active and r.recipient != exclude
        )

    @staticmethod
    def _check_bps(percentage_bps: int) -> None:
        if not isinstance(percentage_bps, int) or not 0 < percentage_bps <= BPS:
            raise InvalidPercentage(f"Share {percentage_bps} bps outside (0, {BPS}]")

    def add_revenue_recipient(self, recipient: str, percentage_bps: int) -> RevenueShare:
        if recipient == ZERO_ADDRESS:
            raise ZeroAddress("Recipient cannot be the zero address")
        self._check_bps(percentage_bps)
        if recipient in self._recipients:
            raise RecipientExists(f"{recipient} is already a revenue recipient")
        if self._active_bps() + percentage_bps > BPS:
            raise InvalidPercentage(
                f"Total share would be {self._active_bps() + percentage_bps} bps (max {BPS})"
            )
        share = RevenueShare(recipient, percentage_bps)
        self._recipients[recipient] = share
        logger.info(f"Revenue recipient added: {recipient} ({percentage_bps} bps)")
        return share

    def update_revenue_recipient(
        self,
        recipient: str,
        percentage_bps: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> RevenueShare:
        share = self.get_recipient(recipient)
        new_bps = share.percentage_bps if percentage_bps is None else percentage_bps
        new_active = share.active if active is None else bool(active)
        self._check_bps(new_bps)
        if new_active and self._active_bps(exclude=recipient) + new_bps > BPS:
            raise InvalidPercentage(
                f"Total share would be {self._active_bps(exclude=recipient) + new_bps} bps (max {BPS})"
            )
        share.percentage_bps = new_bps
        share.active = new_active
        logger.info(f"Revenue recipient updated: {recipient} ({new_bps} bps, active={new_active})")
        return share

    def remove_revenue_recipient(self, recipient: str) -> RevenueShare:
        share = self._recipients.pop(recipient, None)
        if share is None:
            raise RecipientNotFound(f"{recipient} is not a revenue recipient")
        logger.info(f"Revenue recipient removed: {recipient}")
        return share

    def get_recipient(self, recipient: str) -> RevenueShare:
        share = self._recipients.get(recipient)
        if share is None:
            raise RecipientNotFound(f"{recipient} is not a revenue recipient")
        return share

    def list_recipients(self, active_only: bool = False) -> List[RevenueShare]:
        shares = list(self._recipients.values())
        if active_only:
            return [s for s in shares if s.active]
        return shares

    @property
    def total_active_bps(self) -> int:
        return self._active_bps()

    def total_distributed(self, token: str) -> int:
        return self._total_distributed.get(token, 0)

    # ── Distribution ──────────────────────────────────────────────────

    def distribute_revenue(self, caller: str, token: str, amount: int) -> Dict[str, int]:
        """
        Pull ``amount`` of ``token`` from ``caller`` and split it.

        Returns:
            recipient → amount paid this call
        """
        if self._paused:
            raise Paused("Revenue distribution is paused")
        if self._locked:
            raise Locked("Reentrancy detected: revenue distribution in progress")
        if amount <= 0:
            raise ZeroAmount("Revenue amount must be positive")
        if caller == ZERO_ADDRESS or token == ZERO_ADDRESS:
            raise ZeroAddress("Caller and token must be non-zero")
        self.ledger.require_balance(token, caller, amount)

        payouts: Dict[str, int] = {}
        self._locked = True
        try:
            with self.ledger.atomic():
                self.ledger.transfer(token, caller, self.treasury, amount)
                for share in self._recipients.values():
                    if not share.active:
                        continue
                    pay = amount * share.percentage_bps // BPS
                    if pay > 0:
                        self.ledger.transfer(token, self.treasury, share.recipient, pay)
                    payouts[share.recipient] = pay
        finally:
            self._locked = False

        for recipient, pay in payouts.items():
            share = self._recipients[recipient]
            share.total_claimed += pay
            share.claimed_by_token[token] = share.claimed_by_token.get(token, 0) + pay
        self._total_distributed[token] = self._total_distributed.get(token, 0) + amount

        distributed = sum(payouts.values())
        logger.info(
            f"Revenue distributed: {amount} {token} → {len(payouts)} recipients "
            f"({distributed} paid, {amount - distributed} retained)"
        )
        if self.events is not None:
            self.events.emit(RevenueDistributed(
                token, amount, distributed, amount - distributed, timestamp=self.clock.now(),
            ))
        return payouts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "treasury": self.treasury,
            "paused": self._paused,
            "recipients": [r.to_dict() for r in self._recipients.values()],
            "totalDistributed": dict(self._total_distributed),
        }
