"""Auction handle/query messages and answers."""

from typing import Optional

from sbap.core.host import Address, Record, Timestamp, Uint128, WireModel, message_table
from sbap.core.interfaces import ResponseStatus, SetViewingKey
from sbap.core.token.msg import ReceiveMsg


# =============================================================================
# Handle
# =============================================================================


class RetractBid(WireModel):
    wire_name = "retract_bid"


class Finalize(WireModel):
    wire_name = "finalize"
    only_if_bids: bool = False
    # Applied only when the seller finalizes with only_if_bids and there are no bids
    new_ends_at: Optional[Timestamp] = None
    new_minimum_bid: Optional[Uint128] = None


class ReturnAll(WireModel):
    wire_name = "return_all"


class ChangeMinimumBid(WireModel):
    wire_name = "change_minimum_bid"
    minimum_bid: Uint128


HANDLE_MSGS = message_table(
    ReceiveMsg,
    RetractBid,
    Finalize,
    ReturnAll,
    ChangeMinimumBid,
    SetViewingKey,
)


# =============================================================================
# Query
# =============================================================================


class AuctionInfoQuery(WireModel):
    wire_name = "auction_info"


class ViewBid(WireModel):
    wire_name = "view_bid"
    address: Address
    viewing_key: str


class HasBids(WireModel):
    wire_name = "has_bids"
    address: Address
    viewing_key: str


QUERY_MSGS = message_table(AuctionInfoQuery, ViewBid, HasBids)


# =============================================================================
# Handle answers
# =============================================================================


class ConsignAnswer(WireModel):
    wire_name = "consign"
    status: ResponseStatus
    message: str
    amount_consigned: int
    amount_needed: Optional[int] = None
    amount_returned: Optional[int] = None


class BidAnswer(WireModel):
    wire_name = "bid"
    status: ResponseStatus
    message: str
    previous_bid: Optional[int] = None
    minimum_bid: Optional[int] = None
    amount_bid: Optional[int] = None
    amount_returned: Optional[int] = None


class CloseAuctionAnswer(WireModel):
    wire_name = "close_auction"
    status: ResponseStatus
    message: str
    winning_bid: Optional[int] = None
    amount_returned: Optional[int] = None


class RetractBidAnswer(WireModel):
    wire_name = "retract_bid"
    status: ResponseStatus
    message: str
    amount_returned: Optional[int] = None


class ChangeMinimumBidAnswer(WireModel):
    wire_name = "change_minimum_bid"
    status: ResponseStatus
    minimum_bid: int


# =============================================================================
# Query answers
# =============================================================================


class TokenInfo(Record):
    contract_address: str
    symbol: str
    decimals: int


class AuctionInfoAnswer(WireModel):
    wire_name = "auction_info"
    index: int
    label: str
    sell_token: TokenInfo
    bid_token: TokenInfo
    sell_amount: int
    minimum_bid: int
    description: Optional[str] = None
    auction_address: str
    factory_address: str
    ends_at: int
    status: str
    phase: str
    winning_bid: Optional[int] = None
    outstanding_funds: bool = False


class ViewBidAnswer(WireModel):
    wire_name = "bid"
    status: ResponseStatus
    message: str
    amount_bid: Optional[int] = None
    timestamp: Optional[int] = None


class HasBidsAnswer(WireModel):
    wire_name = "has_bids"
    has_bids: bool
