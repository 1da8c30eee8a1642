"""
Auction Module.

A single sealed-bid auction instance:
- Escrow ledger (consignment and payouts)
- Bid registry (one bid per bidder, winner resolution)
- Settlement engine (swap or return on close)
- The SealedBidAuction contract tying them to the host
"""

from sbap.core.auction.bids import BidOutcome, BidRegistry, resolve_winner
from sbap.core.auction.contract import SealedBidAuction
from sbap.core.auction.escrow import ConsignResult, EscrowLedger, Payout
from sbap.core.auction.settlement import Settlement, settle
from sbap.core.auction.state import (
    AuctionPhase,
    AuctionState,
    Bid,
    TokenSide,
    WinningBid,
    format_amount,
)

__all__ = [
    "BidOutcome",
    "BidRegistry",
    "resolve_winner",
    "SealedBidAuction",
    "ConsignResult",
    "EscrowLedger",
    "Payout",
    "Settlement",
    "settle",
    "AuctionPhase",
    "AuctionState",
    "Bid",
    "TokenSide",
    "WinningBid",
    "format_amount",
]
