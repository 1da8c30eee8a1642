"""
Factory state records.

- FactoryConfig: admin, status, auction code versions, next index
- AuctionRecord: master table, one per index ever reserved
- ActiveIndex / ClosedLog / PersonIndex: the listing indices
"""

from enum import Enum
from typing import Dict, List, Optional

from sbap.core.host import Record
from sbap.core.interfaces import TokenRef


class FactoryStatus(str, Enum):
    ACCEPTING = "accepting"
    STOPPED = "stopped"


class RecordStatus(str, Enum):
    PENDING = "pending"  # Reserved, auction not registered yet
    ACTIVE = "active"
    CLOSED = "closed"
    VOID = "void"        # Instantiation failed; never listed


class AuctionContractInfo(Record):
    code_id: int
    code_hash: str


class FactoryConfig(Record):
    admin: str
    status: FactoryStatus = FactoryStatus.ACCEPTING
    versions: List[AuctionContractInfo]
    next_index: int = 0

    @property
    def current_version(self) -> int:
        return len(self.versions) - 1

    @property
    def auction_contract(self) -> AuctionContractInfo:
        return self.versions[-1]


class AuctionRecord(Record):
    index: int
    label: str
    seller: str
    code_id: int
    code_hash: str
    version: int
    sell_token: TokenRef
    bid_token: TokenRef
    sell_amount: int
    minimum_bid: int
    ends_at: int
    description: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING
    address: Optional[str] = None
    bidders: List[str] = []
    winner: Optional[str] = None
    winning_bid: Optional[int] = None
    closed_at: Optional[int] = None

    @property
    def pair(self) -> str:
        return f"{self.sell_token.symbol}-{self.bid_token.symbol}"


class ActiveIndex(Record):
    pairs: Dict[str, List[int]] = {}


class ClosedEntry(Record):
    index: int
    closed_at: int


class ClosedLog(Record):
    entries: List[ClosedEntry] = []  # Newest first


class PersonIndex(Record):
    as_seller: List[int] = []
    as_bidder: List[int] = []
    won: List[int] = []
