"""
Escrow Ledger - Custody of consigned and bid tokens.

The auction contract's token balances are the escrow. This module decides
how much of an incoming consignment is kept and turns every release into a
token transfer sub-message that reports back on failure. A failed transfer
leaves the amount recorded as outstanding for its recipient until it is
re-sent by return_all or retract_bid.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sbap.core.auction.state import AuctionState, TokenSide
from sbap.core.host import SubMsg, execute, on_error
from sbap.core.interfaces import REPLY_PAYOUT
from sbap.core.token.msg import Transfer
from sbap.utils.logger import get_logger

logger = get_logger("auction.escrow")


@dataclass
class Payout:
    """Tokens owed by the escrow to one recipient."""
    side: TokenSide
    recipient: str
    amount: int

    def to_payload(self) -> Dict[str, Any]:
        return {"side": self.side.value, "recipient": self.recipient, "amount": self.amount}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Payout":
        return cls(
            side=TokenSide(payload["side"]),
            recipient=payload["recipient"],
            amount=int(payload["amount"]),
        )


@dataclass
class ConsignResult:
    accepted: int = 0
    returned: int = 0
    amount_needed: int = 0
    rejection: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None


class EscrowLedger:
    """Consignment accounting and payouts for one auction state."""

    def __init__(self, state: AuctionState):
        self.state = state

    def consign(self, sender: str, amount: int) -> ConsignResult:
        """
        Accept sale tokens from the seller.

        Keeps at most what is still needed; the rest is returned. Tokens sent
        by anyone else, after close, or once fully consigned are returned in
        full and nothing changes.

        Args:
            sender: Owner of the incoming tokens
            amount: Amount received

        Returns:
            ConsignResult with accepted/returned/needed amounts
        """
        state = self.state
        needed = state.sell_amount - state.consigned_amount

        if sender != state.seller:
            return ConsignResult(returned=amount, amount_needed=needed,
                                 rejection="Only the seller can consign tokens to this auction")
        if state.closed:
            return ConsignResult(returned=amount, amount_needed=needed,
                                 rejection="Auction has ended; consignment returned")
        if needed == 0:
            return ConsignResult(returned=amount, rejection="Auction is already fully consigned")

        accepted = min(amount, needed)
        state.consigned_amount += accepted
        logger.debug(f"Auction {state.index}: consigned {accepted}, total {state.consigned_amount}/{state.sell_amount}")

        return ConsignResult(
            accepted=accepted,
            returned=amount - accepted,
            amount_needed=state.sell_amount - state.consigned_amount,
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    def pay(self, payout: Payout) -> Optional[SubMsg]:
        """Transfer message for a payout; None for zero amounts."""
        if payout.amount <= 0:
            return None
        token = self.state.token(payout.side)
        transfer = Transfer(recipient=payout.recipient, amount=payout.amount)
        return on_error(execute(token.address, token.code_hash, transfer), REPLY_PAYOUT, payout.to_payload())

    def pay_all(self, payouts: Iterable[Payout]) -> List[SubMsg]:
        return [msg for msg in (self.pay(p) for p in payouts) if msg is not None]

    def record_failed(self, payout: Payout) -> None:
        """Keep a payout whose transfer failed as outstanding."""
        owed = self.state.outstanding(payout.side)
        owed[payout.recipient] = owed.get(payout.recipient, 0) + payout.amount
        logger.warning(
            f"Auction {self.state.index}: payout of {payout.amount} {self.state.token(payout.side).symbol} "
            f"to {payout.recipient[:10]} failed, kept as outstanding"
        )

    def take_outstanding(self, recipient: Optional[str] = None) -> List[Payout]:
        """Remove and return outstanding payouts, all of them or one recipient's."""
        taken: List[Payout] = []
        for side in (TokenSide.SELL, TokenSide.BID):
            owed = self.state.outstanding(side)
            for address in sorted(owed):
                if recipient is not None and address != recipient:
                    continue
                amount = owed.pop(address)
                if amount:
                    taken.append(Payout(side=side, recipient=address, amount=amount))
        return taken
