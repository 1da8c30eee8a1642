"""
Factory Registry - Index of every auction the factory created.

This module provides:
- Index reservation and the pending -> active -> closed/void lifecycle
- Authentication of auction contracts by their bound address
- Listing indices: active auctions by token pair, the closed log, and
  per-address seller/bidder/winner sets

Invariants:
- Every index in the active index or a person index has a master record
- An index leaves the active index and enters the closed log (and the
  winner's `won` set) exactly once, when its close is processed
"""

from typing import Dict, List, Optional

from sbap.core.errors import NotFound, Unauthorized
from sbap.core.factory.state import (
    ActiveIndex,
    AuctionRecord,
    ClosedEntry,
    ClosedLog,
    FactoryConfig,
    PersonIndex,
    RecordStatus,
)
from sbap.core.host import Storage
from sbap.utils.logger import get_logger
from sbap.utils.validation import MAX_PAGE_SIZE

logger = get_logger("factory.registry")

CONFIG_KEY = "config"
ACTIVE_KEY = "active"
CLOSED_KEY = "closed"


class FactoryRegistry:
    """
    Registry of auctions, backed by the factory's storage.

    Usage:
        registry = FactoryRegistry(deps.storage)
        record = registry.authenticate(env.message.sender)
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    # =========================================================================
    # Config
    # =========================================================================

    def config(self) -> FactoryConfig:
        return self.storage.load(CONFIG_KEY, FactoryConfig)

    def save_config(self, config: FactoryConfig) -> None:
        self.storage.save(CONFIG_KEY, config)

    # =========================================================================
    # Master records
    # =========================================================================

    def get(self, index: int) -> AuctionRecord:
        record = self.may_get(index)
        if record is None:
            raise NotFound(f"No auction with index {index}")
        return record

    def may_get(self, index: int) -> Optional[AuctionRecord]:
        return self.storage.may_load(f"auction:{index}", AuctionRecord)

    def save(self, record: AuctionRecord) -> None:
        self.storage.save(f"auction:{record.index}", record)

    def reserve(self, record: AuctionRecord) -> None:
        """Store a newly reserved index as pending."""
        if self.may_get(record.index) is not None:
            raise ValueError(f"Index {record.index} already reserved")
        record.status = RecordStatus.PENDING
        self.save(record)
        logger.debug(f"Reserved auction index {record.index} for {record.seller[:10]}")

    def void(self, index: int) -> None:
        """Mark a pending record whose auction was never created."""
        record = self.may_get(index)
        if record is None or record.status != RecordStatus.PENDING:
            return
        record.status = RecordStatus.VOID
        self.save(record)
        logger.warning(f"Auction index {index} voided: instantiation failed")

    def activate(self, record: AuctionRecord, address: str) -> None:
        """Bind a pending record to its auction contract and list it."""
        record.status = RecordStatus.ACTIVE
        record.address = address
        self.save(record)
        self.storage.set(f"address:{address}", str(record.index).encode())

        active = self._active()
        indices = active.pairs.setdefault(record.pair, [])
        indices.append(record.index)
        indices.sort()
        self.storage.save(ACTIVE_KEY, active)

        person = self.person(record.seller)
        person.as_seller.append(record.index)
        self._save_person(record.seller, person)

        logger.info(f"Auction {record.index} '{record.label}' registered at {address} ({record.pair})")

    def index_of(self, address: str) -> Optional[int]:
        raw = self.storage.get(f"address:{address}")
        return int(raw) if raw is not None else None

    def authenticate(self, address: str) -> AuctionRecord:
        """
        Resolve a caller to the active auction it is.

        Raises:
            Unauthorized: caller is not an active auction of this factory
        """
        index = self.index_of(address)
        record = self.may_get(index) if index is not None else None
        if record is None or record.status != RecordStatus.ACTIVE or record.address != address:
            raise Unauthorized(f"{address} is not an active auction of this factory")
        return record

    # =========================================================================
    # Bidders
    # =========================================================================

    def add_bidder(self, record: AuctionRecord, bidder: str) -> bool:
        if bidder in record.bidders:
            return False
        record.bidders.append(bidder)
        self.save(record)

        person = self.person(bidder)
        if record.index not in person.as_bidder:
            person.as_bidder.append(record.index)
            self._save_person(bidder, person)
        return True

    def remove_bidder(self, record: AuctionRecord, bidder: str) -> bool:
        if bidder not in record.bidders:
            return False
        record.bidders.remove(bidder)
        self.save(record)

        person = self.person(bidder)
        if record.index in person.as_bidder:
            person.as_bidder.remove(record.index)
            self._save_person(bidder, person)
        return True

    # =========================================================================
    # Closing
    # =========================================================================

    def close(
        self,
        record: AuctionRecord,
        closed_at: int,
        winner: Optional[str] = None,
        winning_bid: Optional[int] = None,
    ) -> None:
        """Move an active auction to the closed log."""
        if record.status != RecordStatus.ACTIVE:
            raise ValueError(f"Auction {record.index} is not active")

        active = self._active()
        indices = active.pairs.get(record.pair, [])
        if record.index in indices:
            indices.remove(record.index)
        if not indices:
            active.pairs.pop(record.pair, None)
        self.storage.save(ACTIVE_KEY, active)

        log = self._closed()
        log.entries.insert(0, ClosedEntry(index=record.index, closed_at=closed_at))
        self.storage.save(CLOSED_KEY, log)

        for bidder in record.bidders:
            person = self.person(bidder)
            if record.index in person.as_bidder:
                person.as_bidder.remove(record.index)
                self._save_person(bidder, person)

        if winner is not None:
            person = self.person(winner)
            person.won.append(record.index)
            self._save_person(winner, person)

        record.status = RecordStatus.CLOSED
        record.closed_at = closed_at
        record.winner = winner
        record.winning_bid = winning_bid
        record.bidders = []
        self.save(record)

        logger.info(f"Auction {record.index} closed" + (f", won by {winner[:10]}" if winner else ", no winner"))

    # =========================================================================
    # Listings
    # =========================================================================

    def _active(self) -> ActiveIndex:
        return self.storage.may_load(ACTIVE_KEY, ActiveIndex) or ActiveIndex()

    def _closed(self) -> ClosedLog:
        return self.storage.may_load(CLOSED_KEY, ClosedLog) or ClosedLog()

    def person(self, address: str) -> PersonIndex:
        return self.storage.may_load(f"person:{address}", PersonIndex) or PersonIndex()

    def _save_person(self, address: str, person: PersonIndex) -> None:
        self.storage.save(f"person:{address}", person)

    def active_by_pair(self) -> Dict[str, List[AuctionRecord]]:
        """Active auctions grouped by "SELL-BID", pairs and indices ascending."""
        active = self._active()
        return {
            pair: [self.get(index) for index in active.pairs[pair]]
            for pair in sorted(active.pairs)
        }

    def closed_page(self, before: Optional[int], page_size: int) -> List[AuctionRecord]:
        """
        One page of the closed log, newest first.

        Args:
            before: Index of the last auction of the previous page. Entries
                that closed after it are skipped. An index that is not in the
                log falls back to "indices below `before`".
            page_size: Maximum entries returned, capped at MAX_PAGE_SIZE

        Returns:
            Closed auction records
        """
        entries = self._closed().entries
        if before is not None:
            position = next((i for i, e in enumerate(entries) if e.index == before), None)
            if position is None:
                entries = [e for e in entries if e.index < before]
            else:
                entries = entries[position + 1:]
        return [self.get(e.index) for e in entries[:min(page_size, MAX_PAGE_SIZE)]]

    def records(self, indices: List[int], status: RecordStatus) -> List[AuctionRecord]:
        found = (self.may_get(i) for i in sorted(set(indices)))
        return [r for r in found if r is not None and r.status == status]

    def stats(self) -> dict:
        """Get registry statistics."""
        config = self.config()
        active = self._active()
        return {
            "reserved": config.next_index,
            "active": sum(len(v) for v in active.pairs.values()),
            "closed": len(self._closed().entries),
            "pairs": len(active.pairs),
            "status": config.status.value,
            "versions": len(config.versions),
        }
