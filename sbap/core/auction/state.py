"""
Auction state.

One AuctionState record per auction instance, loaded at the start of every
handler and saved at the end. The lifecycle phase is derived from it:

    PENDING_CONSIGNMENT -> ACCEPTING_BIDS -> CLOSED

Bids are accepted in both open phases; consignment level only decides
whether finalize can swap.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Dict, Optional

from sbap.core.host import Record, Storage
from sbap.core.interfaces import ContractRef, TokenRef

STATE_KEY = "state"


class AuctionPhase(IntEnum):
    PENDING_CONSIGNMENT = 0
    ACCEPTING_BIDS = 1
    CLOSED = 2


class TokenSide(str, Enum):
    SELL = "sell"
    BID = "bid"


class Bid(Record):
    amount: int
    timestamp: int
    seq: int  # Arrival order; breaks ties between equal amount and timestamp


class WinningBid(Record):
    bidder: str
    amount: int


class AuctionState(Record):
    index: int
    label: str
    factory: ContractRef
    seller: str
    sell_token: TokenRef
    bid_token: TokenRef
    sell_amount: int
    minimum_bid: int
    ends_at: int
    description: Optional[str] = None
    version: int = 0

    consigned_amount: int = 0
    bids: Dict[str, Bid] = {}
    bid_seq: int = 0
    closed: bool = False
    winning_bid: Optional[WinningBid] = None

    # Payouts that failed, by recipient
    outstanding_sell: Dict[str, int] = {}
    outstanding_bid: Dict[str, int] = {}

    @property
    def is_fully_consigned(self) -> bool:
        return self.consigned_amount == self.sell_amount

    @property
    def phase(self) -> AuctionPhase:
        if self.closed:
            return AuctionPhase.CLOSED
        if self.is_fully_consigned:
            return AuctionPhase.ACCEPTING_BIDS
        return AuctionPhase.PENDING_CONSIGNMENT

    @property
    def has_outstanding(self) -> bool:
        return any(self.outstanding_sell.values()) or any(self.outstanding_bid.values())

    @property
    def outstanding_funds(self) -> bool:
        return self.closed and self.has_outstanding

    def token(self, side: TokenSide) -> TokenRef:
        return self.sell_token if side == TokenSide.SELL else self.bid_token

    def outstanding(self, side: TokenSide) -> Dict[str, int]:
        return self.outstanding_sell if side == TokenSide.SELL else self.outstanding_bid

    def status_message(self) -> str:
        if self.closed:
            if self.has_outstanding:
                return (
                    "Closed, but found outstanding balances. Please run either retract_bid "
                    "to retrieve your non-winning bid, or return_all to return all "
                    "outstanding bids/consignment."
                )
            return "Closed"
        consigned = "have" if self.is_fully_consigned else "have NOT"
        return f"Accepting bids: Token(s) to be sold {consigned} been consigned to the auction"


def load_state(storage: Storage) -> AuctionState:
    return storage.load(STATE_KEY, AuctionState)


def save_state(storage: Storage, state: AuctionState) -> None:
    storage.save(STATE_KEY, state)


# =============================================================================
# Display helpers
# =============================================================================


def format_amount(amount: int, decimals: int) -> str:
    """Render a base-unit amount with the token's decimals, e.g. 1500000 -> '1.5'."""
    if decimals == 0:
        return str(amount)
    whole, fraction = divmod(amount, 10**decimals)
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_time(timestamp: int) -> str:
    """UTC date of a timestamp, or the raw seconds when no calendar date exists."""
    try:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return f"{timestamp}s"
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
