"""
Bid Registry - One sealed bid per bidder.

Each bidder holds at most one active bid. A repeat bid from the same
address keeps the larger of the two and refunds the smaller; on equal
amounts the original bid (and its timestamp) stays and the new tokens are
returned, so the bidder ends where they started.

Winner resolution is a total order, independent of map iteration order:
highest amount, then earliest timestamp, then earliest arrival.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from sbap.core.auction.state import AuctionState, Bid
from sbap.core.errors import ErrorKind
from sbap.utils.logger import get_logger

logger = get_logger("auction.bids")


@dataclass
class BidOutcome:
    """
    Result of placing a bid.

    Attributes:
        stored: The bid held for the bidder afterwards (None if rejected)
        previous: The bid held before, if any
        refund: Amount to send back to the bidder now
        new_bidder: True when this is the address's first active bid
        rejection: Why the bid was refused, if it was
    """
    stored: Optional[Bid] = None
    previous: Optional[Bid] = None
    refund: int = 0
    new_bidder: bool = False
    rejection: Optional[ErrorKind] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None

    @property
    def replaced(self) -> bool:
        """True when the incoming bid became the stored bid."""
        return self.accepted and self.stored is not None and self.stored is not self.previous


def bid_order(item: Tuple[str, Bid]):
    _, bid = item
    return (-bid.amount, bid.timestamp, bid.seq)


def resolve_winner(bids: Mapping[str, Bid]) -> Optional[Tuple[str, Bid]]:
    """
    Pick the winning bid.

    Returns:
        (bidder, bid) or None when there are no bids
    """
    if not bids:
        return None
    return min(bids.items(), key=bid_order)


class BidRegistry:
    """Bid operations on one auction state."""

    def __init__(self, state: AuctionState):
        self.state = state

    def place_bid(self, bidder: str, amount: int, timestamp: int) -> BidOutcome:
        """
        Place or raise a bid.

        Args:
            bidder: Bidder address
            amount: Tokens received with this bid
            timestamp: Block time of the bid

        Returns:
            BidOutcome; rejected bids refund the full amount
        """
        state = self.state
        previous = state.bids.get(bidder)

        if state.closed:
            return BidOutcome(previous=previous, refund=amount, rejection=ErrorKind.ALREADY_CLOSED)
        if amount == 0:
            return BidOutcome(previous=previous, rejection=ErrorKind.ZERO_AMOUNT)
        if amount < state.minimum_bid:
            return BidOutcome(previous=previous, refund=amount, rejection=ErrorKind.BELOW_MINIMUM_BID)

        if previous is not None and amount <= previous.amount:
            # Keep the standing bid; the new tokens go back
            return BidOutcome(stored=previous, previous=previous, refund=amount)

        state.bid_seq += 1
        stored = Bid(amount=amount, timestamp=timestamp, seq=state.bid_seq)
        state.bids[bidder] = stored
        logger.debug(f"Auction {state.index}: bid {amount} from {bidder[:10]} at {timestamp}")

        return BidOutcome(
            stored=stored,
            previous=previous,
            refund=previous.amount if previous is not None else 0,
            new_bidder=previous is None,
        )

    def retract(self, bidder: str) -> Optional[Bid]:
        """Remove and return the bidder's active bid."""
        return self.state.bids.pop(bidder, None)

    def winner(self) -> Optional[Tuple[str, Bid]]:
        return resolve_winner(self.state.bids)
