"""
Settlement Engine - Closing an auction.

settle() turns the escrow into a list of payouts and closes the state:

- fully consigned and at least one bid: the sale tokens go to the winner,
  the winning amount to the seller, every other bid back to its bidder
- otherwise: the consignment goes back to the seller and every bid back to
  its bidder

Payouts are computed here and sent by the caller through the escrow
ledger; whether they succeed does not change the closed state.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sbap.core.auction.bids import bid_order, resolve_winner
from sbap.core.auction.escrow import Payout
from sbap.core.auction.state import AuctionState, TokenSide, WinningBid
from sbap.utils.logger import get_logger

logger = get_logger("auction.settlement")


@dataclass
class Settlement:
    winner: Optional[str] = None
    winning_amount: Optional[int] = None
    payouts: List[Payout] = field(default_factory=list)

    @property
    def swapped(self) -> bool:
        return self.winner is not None

    def returned_to(self, recipient: str, side: TokenSide) -> int:
        return sum(p.amount for p in self.payouts if p.recipient == recipient and p.side == side)


def settle(state: AuctionState) -> Settlement:
    """
    Close the auction and compute its payouts.

    Args:
        state: Open auction state; mutated to closed with escrow emptied

    Returns:
        Settlement with winner (if any) and payouts in deterministic order
    """
    if state.closed:
        raise ValueError(f"Auction {state.index} is already closed")

    settlement = Settlement()
    best = resolve_winner(state.bids)
    losers = dict(state.bids)

    if best is not None and state.is_fully_consigned:
        bidder, bid = best
        del losers[bidder]
        settlement.winner = bidder
        settlement.winning_amount = bid.amount
        settlement.payouts.append(Payout(TokenSide.SELL, bidder, state.consigned_amount))
        settlement.payouts.append(Payout(TokenSide.BID, state.seller, bid.amount))
        state.winning_bid = WinningBid(bidder=bidder, amount=bid.amount)
    elif state.consigned_amount:
        settlement.payouts.append(Payout(TokenSide.SELL, state.seller, state.consigned_amount))

    for bidder, bid in sorted(losers.items(), key=bid_order):
        settlement.payouts.append(Payout(TokenSide.BID, bidder, bid.amount))

    state.bids = {}
    state.consigned_amount = 0
    state.closed = True

    if settlement.swapped:
        logger.info(f"Auction {state.index} closed: {settlement.winner[:10]} won with {settlement.winning_amount}")
    else:
        logger.info(f"Auction {state.index} closed without a winner")

    return settlement
