"""Factory init/handle/query messages and answers."""

from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from sbap.core.factory.state import AuctionContractInfo, AuctionRecord
from sbap.core.host import Address, Record, Timestamp, Uint128, WireModel, message_table
from sbap.core.interfaces import (
    ChangeAuctionInfo,
    CloseAuction,
    ContractRef,
    IsKeyValid,
    RegisterAuction,
    RegisterBidder,
    RemoveBidder,
    ResponseStatus,
)
from sbap.utils.validation import (
    MAX_ENTROPY_LENGTH,
    checked,
    validate_description,
    validate_label,
    validate_page_size,
)


class FilterType(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    ALL = "all"


# =============================================================================
# Init
# =============================================================================


class FactoryInitMsg(WireModel):
    wire_name = "init"
    entropy: str = Field(max_length=MAX_ENTROPY_LENGTH)
    auction_contract: AuctionContractInfo


# =============================================================================
# Handle
# =============================================================================


class CreateAuction(WireModel):
    wire_name = "create_auction"
    label: str
    sell_contract: ContractRef
    bid_contract: ContractRef
    sell_amount: Uint128
    minimum_bid: Uint128
    ends_at: Timestamp
    description: Optional[str] = None

    @field_validator("label")
    @classmethod
    def _label(cls, value: str) -> str:
        checked(validate_label(value))
        return value

    @field_validator("description")
    @classmethod
    def _description(cls, value: Optional[str]) -> Optional[str]:
        checked(validate_description(value))
        return value


class NewAuctionContract(WireModel):
    wire_name = "new_auction_contract"
    auction_contract: AuctionContractInfo


class CreateViewingKey(WireModel):
    wire_name = "create_viewing_key"
    entropy: str = Field(max_length=MAX_ENTROPY_LENGTH)


class SetFactoryViewingKey(WireModel):
    wire_name = "set_viewing_key"
    key: str = Field(min_length=1)
    padding: Optional[str] = None


class SetStatus(WireModel):
    wire_name = "set_status"
    stop: bool


HANDLE_MSGS = message_table(
    CreateAuction,
    RegisterAuction,
    RegisterBidder,
    RemoveBidder,
    CloseAuction,
    ChangeAuctionInfo,
    NewAuctionContract,
    CreateViewingKey,
    SetFactoryViewingKey,
    SetStatus,
)


# =============================================================================
# Query
# =============================================================================


class ListMyAuctions(WireModel):
    wire_name = "list_my_auctions"
    address: Address
    viewing_key: str
    filter: FilterType = FilterType.ALL


class ListActiveAuctions(WireModel):
    wire_name = "list_active_auctions"


class ListClosedAuctions(WireModel):
    wire_name = "list_closed_auctions"
    before: Optional[int] = None
    page_size: Optional[int] = None

    @field_validator("page_size")
    @classmethod
    def _page_size(cls, value):
        if value is not None:
            checked(validate_page_size(value))
        return value


QUERY_MSGS = message_table(ListMyAuctions, ListActiveAuctions, ListClosedAuctions, IsKeyValid)


# =============================================================================
# Answers
# =============================================================================


class CreateAuctionAnswer(WireModel):
    wire_name = "create_auction"
    status: ResponseStatus
    index: int
    message: str


class ViewingKeyAnswer(WireModel):
    wire_name = "viewing_key"
    key: str


class ActiveListing(Record):
    index: int
    address: str
    label: str
    pair: str
    sell_amount: int
    sell_decimals: int
    minimum_bid: int
    bid_decimals: int
    ends_at: int

    @classmethod
    def from_record(cls, record: AuctionRecord) -> "ActiveListing":
        return cls(
            index=record.index,
            address=record.address,
            label=record.label,
            pair=record.pair,
            sell_amount=record.sell_amount,
            sell_decimals=record.sell_token.decimals,
            minimum_bid=record.minimum_bid,
            bid_decimals=record.bid_token.decimals,
            ends_at=record.ends_at,
        )


class ClosedListing(Record):
    index: int
    address: str
    label: str
    pair: str
    sell_amount: int
    sell_decimals: int
    winning_bid: Optional[int] = None
    bid_decimals: int
    closed_at: int

    @classmethod
    def from_record(cls, record: AuctionRecord) -> "ClosedListing":
        return cls(
            index=record.index,
            address=record.address,
            label=record.label,
            pair=record.pair,
            sell_amount=record.sell_amount,
            sell_decimals=record.sell_token.decimals,
            winning_bid=record.winning_bid,
            bid_decimals=record.bid_token.decimals,
            closed_at=record.closed_at,
        )


class PairListing(Record):
    pair: str
    auctions: List[ActiveListing]


class MyActiveLists(Record):
    as_seller: List[ActiveListing] = []
    as_bidder: List[ActiveListing] = []


class MyClosedLists(Record):
    as_seller: List[ClosedListing] = []
    won: List[ClosedListing] = []


class ListMyAuctionsAnswer(WireModel):
    wire_name = "list_my_auctions"
    active: Optional[MyActiveLists] = None
    closed: Optional[MyClosedLists] = None


class ListActiveAuctionsAnswer(WireModel):
    wire_name = "list_active_auctions"
    active: List[PairListing] = []


class ListClosedAuctionsAnswer(WireModel):
    wire_name = "list_closed_auctions"
    closed: List[ClosedListing] = []
