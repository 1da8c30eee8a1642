"""
Factory <-> Auction interface.

The factory and its auctions are separate contracts that only know each
other's address and code hash. Everything they exchange is defined here:

- AuctionInitMsg: what the factory instantiates an auction with
- Auction -> factory events (register_auction, register_bidder, ...)
- Factory -> auction delegation of viewing key records
- The is_key_valid query auctions use to authenticate a seller

Two small capabilities wrap the outbound side. FactoryNotifier is what an
auction holds to talk to its factory; AuctionInstantiator is what the
factory holds to create auctions and forward key records to them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import field_validator

from sbap.core.auth import KeyRecord
from sbap.core.host import (
    Address,
    CodeHash,
    InstantiateMsg,
    Record,
    SubMsg,
    Timestamp,
    Uint128,
    WireModel,
    as_wire,
    execute,
    on_error,
)
from sbap.utils.validation import checked, validate_description, validate_label, validate_symbol

# Reply ids
REPLY_NOTIFY = 1
REPLY_PAYOUT = 2
REPLY_INSTANTIATE = 10
REPLY_DELEGATE = 11


class ContractRef(Record):
    address: Address
    code_hash: CodeHash


class TokenRef(Record):
    """A token as an auction sees it."""
    address: Address
    code_hash: CodeHash
    symbol: str
    decimals: int


# =============================================================================
# Auction init
# =============================================================================


class AuctionInitMsg(WireModel):
    wire_name = "init"

    seller: Address
    factory: ContractRef
    index: int
    label: str
    sell_contract: ContractRef
    bid_contract: ContractRef
    sell_amount: Uint128
    sell_decimals: int
    bid_decimals: int
    sell_symbol: str
    bid_symbol: str
    minimum_bid: Uint128
    ends_at: Timestamp
    description: Optional[str] = None
    version: int = 0

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

    @field_validator("sell_symbol", "bid_symbol")
    @classmethod
    def _symbol(cls, value: str) -> str:
        checked(validate_symbol(value))
        return value


# =============================================================================
# Auction -> factory events
# =============================================================================


class RegisterAuction(WireModel):
    wire_name = "register_auction"
    seller: Address
    index: int
    label: str


class RegisterBidder(WireModel):
    wire_name = "register_bidder"
    bidder: Address


class RemoveBidder(WireModel):
    wire_name = "remove_bidder"
    bidder: Address


class CloseAuction(WireModel):
    wire_name = "close_auction"
    seller: Address
    bidder: Optional[Address] = None
    winning_bid: Optional[Uint128] = None


class ChangeAuctionInfo(WireModel):
    wire_name = "change_auction_info"
    minimum_bid: Optional[Uint128] = None
    ends_at: Optional[Timestamp] = None


# =============================================================================
# Factory -> auction
# =============================================================================


class SetViewingKey(WireModel):
    """Delegated key record; accepted by an auction only from its factory."""
    wire_name = "set_viewing_key"
    address: Address
    key: KeyRecord


class IsKeyValid(WireModel):
    wire_name = "is_key_valid"
    address: Address
    viewing_key: str


class IsKeyValidAnswer(WireModel):
    wire_name = "is_key_valid"
    is_valid: bool


# =============================================================================
# Shared answers
# =============================================================================


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class StatusAnswer(WireModel):
    wire_name = "status"
    status: ResponseStatus
    message: str


class ViewingKeyErrorAnswer(WireModel):
    """Same answer for a missing key and a wrong key."""
    wire_name = "viewing_key_error"
    error: str = "Wrong viewing key for this address or viewing key not set"


# =============================================================================
# Capabilities
# =============================================================================


@dataclass
class FactoryNotifier:
    """An auction's handle on its factory."""

    factory: ContractRef

    def notify(self, event: WireModel) -> SubMsg:
        """Fire-and-forget: a rejected event is reported back, never propagated."""
        return on_error(execute(self.factory.address, self.factory.code_hash, event), REPLY_NOTIFY, event.to_wire())

    def register(self, event: RegisterAuction) -> SubMsg:
        """Registration must succeed, or the auction's creation fails with it."""
        return SubMsg(msg=execute(self.factory.address, self.factory.code_hash, event))

    def key_is_valid(self, querier, address: str, viewing_key: str) -> bool:
        answer = querier.query(
            self.factory.address,
            IsKeyValid(address=address, viewing_key=viewing_key),
            code_hash=self.factory.code_hash,
        )
        return bool(answer.get(IsKeyValidAnswer.wire_name, {}).get("is_valid"))


@dataclass
class AuctionInstantiator:
    """The factory's handle on the auction code it deploys."""

    code_id: int
    code_hash: str

    def instantiates(self, init: AuctionInitMsg) -> SubMsg:
        msg = InstantiateMsg(
            code_id=self.code_id,
            code_hash=self.code_hash,
            msg=as_wire(init),
            label=f"{init.label}-{init.index}",
        )
        return on_error(msg, REPLY_INSTANTIATE, {"index": init.index})

    @staticmethod
    def delegate(auction: ContractRef, address: str, record: KeyRecord) -> SubMsg:
        event = SetViewingKey(address=address, key=record)
        payload: Dict[str, Any] = {"auction": auction.address, "address": address}
        return on_error(execute(auction.address, auction.code_hash, event), REPLY_DELEGATE, payload)
