"""
Tests for the factory registry.

Tests cover:
1. Reservation and the pending -> active -> closed/void lifecycle
2. Authentication of auction contracts
3. Bidder and winner indices
4. Active and closed listings
"""

import pytest

from sbap.core.errors import NotFound, Unauthorized
from sbap.core.factory import AuctionContractInfo, AuctionRecord, FactoryConfig, FactoryRegistry, RecordStatus
from sbap.core.host import MemoryBackend, Storage
from sbap.core.interfaces import TokenRef

SELLER = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CHARLIE = "0x" + "c" * 40

TOKENS = {
    symbol: TokenRef(address="0x" + digit * 40, code_hash="ab" * 32, symbol=symbol, decimals=6)
    for symbol, digit in (("SELL", "1"), ("BID", "2"), ("ALT", "3"))
}


def auction_at(index: int) -> str:
    return "0x" + f"{index:040x}"


def make_record(index: int, sell: str = "SELL", bid: str = "BID", seller: str = SELLER) -> AuctionRecord:
    return AuctionRecord(
        index=index,
        label=f"lot-{index}",
        seller=seller,
        code_id=2,
        code_hash="cd" * 32,
        version=0,
        sell_token=TOKENS[sell],
        bid_token=TOKENS[bid],
        sell_amount=100,
        minimum_bid=5,
        ends_at=1000,
    )


@pytest.fixture
def registry():
    registry = FactoryRegistry(Storage(MemoryBackend(), "factory"))
    registry.save_config(FactoryConfig(
        admin=SELLER,
        versions=[AuctionContractInfo(code_id=2, code_hash="cd" * 32)],
    ))
    return registry


def activated(registry: FactoryRegistry, index: int, **kwargs) -> AuctionRecord:
    record = make_record(index, **kwargs)
    registry.reserve(record)
    registry.activate(record, auction_at(index))
    return registry.get(index)


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for reservation, activation and voiding."""

    def test_config(self, registry):
        config = registry.config()
        assert config.current_version == 0
        assert config.auction_contract.code_id == 2

    def test_reserve(self, registry):
        registry.reserve(make_record(0))
        record = registry.get(0)
        assert record.status == RecordStatus.PENDING
        assert record.address is None

        with pytest.raises(ValueError):
            registry.reserve(make_record(0))

    def test_missing(self, registry):
        assert registry.may_get(5) is None
        with pytest.raises(NotFound):
            registry.get(5)

    def test_activate(self, registry):
        record = activated(registry, 0)

        assert record.status == RecordStatus.ACTIVE
        assert registry.index_of(auction_at(0)) == 0
        assert registry.person(SELLER).as_seller == [0]
        assert [r.index for r in registry.active_by_pair()["SELL-BID"]] == [0]

    def test_void_only_pending(self, registry):
        registry.reserve(make_record(0))
        registry.void(0)
        assert registry.get(0).status == RecordStatus.VOID

        activated(registry, 1)
        registry.void(1)
        assert registry.get(1).status == RecordStatus.ACTIVE

        # Unknown index is ignored
        registry.void(9)

    def test_void_is_never_listed(self, registry):
        registry.reserve(make_record(0))
        registry.void(0)
        assert registry.active_by_pair() == {}
        assert registry.closed_page(None, 10) == []


class TestAuthenticate:
    """Tests for resolving callers to auctions."""

    def test_active_auction(self, registry):
        activated(registry, 0)
        assert registry.authenticate(auction_at(0)).index == 0

    def test_unknown_caller(self, registry):
        with pytest.raises(Unauthorized):
            registry.authenticate(BOB)

    def test_closed_auction(self, registry):
        record = activated(registry, 0)
        registry.close(record, closed_at=50)
        with pytest.raises(Unauthorized):
            registry.authenticate(auction_at(0))


# =============================================================================
# Bidders and closing
# =============================================================================


class TestBidders:
    """Tests for per-address bidder sets."""

    def test_add_remove(self, registry):
        record = activated(registry, 0)

        assert registry.add_bidder(record, BOB)
        assert not registry.add_bidder(record, BOB)
        assert registry.person(BOB).as_bidder == [0]
        assert registry.get(0).bidders == [BOB]

        assert registry.remove_bidder(record, BOB)
        assert not registry.remove_bidder(record, BOB)
        assert registry.person(BOB).as_bidder == []

    def test_close_with_winner(self, registry):
        record = activated(registry, 0)
        registry.add_bidder(record, BOB)
        registry.add_bidder(record, CHARLIE)

        registry.close(record, closed_at=50, winner=BOB, winning_bid=7)

        closed = registry.get(0)
        assert closed.status == RecordStatus.CLOSED
        assert closed.winner == BOB
        assert closed.winning_bid == 7
        assert closed.closed_at == 50
        assert closed.bidders == []
        assert registry.person(BOB).won == [0]
        assert registry.person(BOB).as_bidder == []
        assert registry.person(CHARLIE).as_bidder == []
        assert registry.person(CHARLIE).won == []
        assert registry.active_by_pair() == {}

    def test_close_once(self, registry):
        record = activated(registry, 0)
        registry.close(record, closed_at=50)
        with pytest.raises(ValueError):
            registry.close(record, closed_at=60)
        assert len(registry.closed_page(None, 10)) == 1


# =============================================================================
# Listings
# =============================================================================


class TestListings:
    """Tests for active and closed listings."""

    def test_active_grouped_by_pair(self, registry):
        activated(registry, 2)
        activated(registry, 0)
        activated(registry, 1, sell="ALT")

        listing = registry.active_by_pair()
        assert list(listing) == ["ALT-BID", "SELL-BID"]
        assert [r.index for r in listing["SELL-BID"]] == [0, 2]

    def test_closed_newest_first(self, registry):
        for index in range(5):
            activated(registry, index)
        # Close out of index order
        for index, when in ((1, 10), (3, 20), (0, 30), (4, 40), (2, 50)):
            registry.close(registry.get(index), closed_at=when)

        assert [r.index for r in registry.closed_page(None, 10)] == [2, 4, 0, 3, 1]

        first = registry.closed_page(None, 2)
        assert [r.index for r in first] == [2, 4]
        second = registry.closed_page(first[-1].index, 2)
        assert [r.index for r in second] == [0, 3]
        assert [r.index for r in registry.closed_page(3, 2)] == [1]
        assert registry.closed_page(1, 2) == []

    def test_closed_unknown_cursor(self, registry):
        """A cursor not in the log pages by index instead."""
        for index in range(3):
            registry.close(activated(registry, index), closed_at=index)

        assert [r.index for r in registry.closed_page(2 + 10, 10)] == [2, 1, 0]
        assert [r.index for r in registry.closed_page(-1, 10)] == []

    def test_records_by_status(self, registry):
        activated(registry, 0)
        registry.close(activated(registry, 1), closed_at=5)
        registry.reserve(make_record(2))

        assert [r.index for r in registry.records([0, 1, 2, 1], RecordStatus.ACTIVE)] == [0]
        assert [r.index for r in registry.records([0, 1, 2, 7], RecordStatus.CLOSED)] == [1]

    def test_stats(self, registry):
        activated(registry, 0)
        activated(registry, 1, sell="ALT")
        registry.close(registry.get(1), closed_at=5)

        stats = registry.stats()
        assert stats["active"] == 1
        assert stats["closed"] == 1
        assert stats["pairs"] == 1
        assert stats["status"] == "accepting"
