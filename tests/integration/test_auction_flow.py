"""
End-to-end auction flows on an in-memory chain.

Tests cover:
1. The bidding scenarios (minimum bid change, equal re-bid)
2. Consignment (partial, excess, wrong sender) and closing without a sale
3. Finalize authorization and one-way close
4. Failed payouts, outstanding funds and their recovery
5. Viewing-key protected auction queries
"""

import pytest

from sbap.core.auction import SealedBidAuction
from sbap.core.auction.msg import ChangeMinimumBid, RetractBid, ReturnAll
from sbap.core.deployment import contract_ref
from sbap.core.errors import AlreadyClosed, Unauthorized
from sbap.core.host import Contract, Response
from sbap.core.interfaces import AuctionInitMsg
from sbap.core.token.msg import ContractStatusLevel, SetContractStatus, Send

INITIAL_BALANCE = 1000


class StubFactory(Contract):
    """Accepts every auction notification; lets tests run auctions without the pull-on-create path."""

    name = "stub_factory"

    def instantiate(self, deps, env, msg):
        return Response()

    def execute(self, deps, env, msg):
        return Response()

    def query(self, deps, env, msg):
        return {"is_key_valid": {"is_valid": True}}


@pytest.fixture
def bare_auction(protocol):
    """An auction created directly (not consigned) whose factory accepts everything."""
    chain = protocol.chain
    stub_code = chain.store_code(StubFactory)
    stub, _ = chain.instantiate(protocol.admin, stub_code.code_id, {"init": {}}, "stub")

    init = AuctionInitMsg(
        seller=protocol.alice,
        factory=contract_ref(chain, stub),
        index=0,
        label="bare",
        sell_contract=contract_ref(chain, protocol.sell),
        bid_contract=contract_ref(chain, protocol.bid),
        sell_amount=100,
        sell_decimals=0,
        bid_decimals=0,
        sell_symbol="SELL",
        bid_symbol="BID",
        minimum_bid=5,
        ends_at=chain.time + 100,
    )
    address, _ = chain.instantiate(protocol.alice, protocol.codes.auction.code_id, init, "bare-0")
    return address


def _consign(protocol, sender, auction, amount):
    result = protocol.chain.execute(sender, protocol.sell, Send(recipient=auction, amount=amount))
    return result.answer_from(auction)["consign"]


def _set_bid_transfers(protocol, level):
    protocol.chain.execute(protocol.admin, protocol.bid, SetContractStatus(level=level))


# =============================================================================
# Scenarios
# =============================================================================


class TestBiddingScenarios:
    """The documented bidding scenarios."""

    def test_minimum_bid_raise_rejects_later_bid(self, protocol):
        """min 5; Bob 7; min -> 10; Charlie 8 refunded; Bob wins with 7."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice, sell_amount=100, minimum_bid=5, ends_in=100)

        chain.advance_time(10)
        answer = protocol.place_bid(protocol.bob, auction, 7)
        assert answer["status"] == "success"
        assert answer["amount_bid"] == 7

        result = chain.execute(protocol.alice, auction, ChangeMinimumBid(minimum_bid=10))
        assert result.data == {"change_minimum_bid": {"status": "success", "minimum_bid": 10}}

        chain.advance_time(10)
        answer = protocol.place_bid(protocol.charlie, auction, 8)
        assert answer["status"] == "failure"
        assert answer["minimum_bid"] == 10
        assert answer["amount_returned"] == 8
        assert protocol.balance(protocol.bid, protocol.charlie) == INITIAL_BALANCE

        chain.advance_time(100)
        result = protocol.finalize(protocol.dave, auction)
        closed = result.answer_from(auction)["close_auction"]
        assert closed["status"] == "success"
        assert closed["winning_bid"] == 7

        assert protocol.balance(protocol.sell, protocol.bob) == INITIAL_BALANCE + 100
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE - 7
        assert protocol.balance(protocol.bid, protocol.alice) == INITIAL_BALANCE + 7
        assert protocol.balance(protocol.sell, protocol.alice) == INITIAL_BALANCE - 100
        assert protocol.balance(protocol.sell, auction) == 0
        assert protocol.balance(protocol.bid, auction) == 0

    def test_equal_rebid_keeps_original_timestamp(self, protocol):
        """A repeat bid of the same amount changes nothing, net zero transfer."""
        chain = protocol.chain
        key = protocol.create_key(protocol.bob)
        auction, _ = protocol.create_auction(protocol.alice)

        chain.advance_time(10)
        first_time = chain.time
        protocol.place_bid(protocol.bob, auction, 7)

        chain.advance_time(10)
        answer = protocol.place_bid(protocol.bob, auction, 7)
        assert answer["status"] == "failure"
        assert answer["previous_bid"] == 7
        assert answer["amount_returned"] == 7
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE - 7

        bid = chain.query(auction, {"view_bid": {"address": protocol.bob, "viewing_key": key}})["bid"]
        assert bid["amount_bid"] == 7
        assert bid["timestamp"] == first_time

    def test_higher_rebid_refunds_previous(self, protocol):
        """Escrowed total equals the stored bid plus refunds."""
        auction, _ = protocol.create_auction(protocol.alice)

        protocol.place_bid(protocol.bob, auction, 7)
        answer = protocol.place_bid(protocol.bob, auction, 12)
        assert answer["status"] == "success"
        assert answer["previous_bid"] == 7
        assert answer["amount_returned"] == 7

        protocol.place_bid(protocol.bob, auction, 9)
        assert protocol.balance(protocol.bid, auction) == 12
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE - 12

    def test_equal_bids_earliest_wins(self, protocol):
        """On equal amounts the earlier bid wins."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice)

        protocol.place_bid(protocol.charlie, auction, 9)
        chain.advance_time(5)
        protocol.place_bid(protocol.bob, auction, 9)

        chain.advance_time(200)
        protocol.finalize(protocol.dave, auction)

        assert protocol.balance(protocol.sell, protocol.charlie) == INITIAL_BALANCE + 100
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE

    def test_bid_after_close_is_refunded(self, protocol):
        """Bids after close are refunded in full."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice)
        chain.advance_time(200)
        protocol.finalize(protocol.alice, auction)

        answer = protocol.place_bid(protocol.bob, auction, 7)
        assert answer["status"] == "failure"
        assert answer["amount_returned"] == 7
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE


# =============================================================================
# Consignment
# =============================================================================


class TestConsignment:
    """Sale token custody."""

    def test_create_consigns_full_amount(self, protocol):
        """The factory pulls the sale tokens into the new auction."""
        auction, _ = protocol.create_auction(protocol.alice, sell_amount=100)

        info = protocol.info(auction)
        assert info["phase"] == "accepting_bids"
        assert "have been consigned" in info["status"]
        assert protocol.balance(protocol.sell, auction) == 100

    def test_partial_consignment_then_close_returns_it(self, protocol, bare_auction):
        """Consign 40 of 100, finalize without bids: 40 back to the seller."""
        answer = _consign(protocol, protocol.alice, bare_auction, 40)
        assert answer["status"] == "failure"
        assert answer["amount_consigned"] == 40
        assert answer["amount_needed"] == 60
        assert protocol.info(bare_auction)["phase"] == "pending_consignment"

        result = protocol.finalize(protocol.alice, bare_auction, only_if_bids=False)
        closed = result.answer_from(bare_auction)["close_auction"]
        assert closed["status"] == "success"
        assert closed["amount_returned"] == 40
        assert "winning_bid" not in closed

        info = protocol.info(bare_auction)
        assert info["phase"] == "closed"
        assert "winning_bid" not in info
        assert protocol.balance(protocol.sell, protocol.alice) == INITIAL_BALANCE

    def test_excess_consignment_returned(self, protocol, bare_auction):
        """Only what is still needed is kept."""
        answer = _consign(protocol, protocol.alice, bare_auction, 150)
        assert answer["status"] == "success"
        assert answer["amount_consigned"] == 100
        assert answer["amount_returned"] == 50
        assert protocol.balance(protocol.sell, bare_auction) == 100

        answer = _consign(protocol, protocol.alice, bare_auction, 10)
        assert answer["status"] == "failure"
        assert answer["amount_returned"] == 10
        assert protocol.balance(protocol.sell, bare_auction) == 100

    def test_consignment_from_non_seller_returned(self, protocol, bare_auction):
        """Sale tokens from anyone else bounce back."""
        answer = _consign(protocol, protocol.bob, bare_auction, 30)
        assert answer["status"] == "failure"
        assert answer["amount_consigned"] == 0
        assert protocol.balance(protocol.sell, protocol.bob) == INITIAL_BALANCE
        assert protocol.info(bare_auction)["phase"] == "pending_consignment"

    def test_bids_while_pending_are_refunded_on_close(self, protocol, bare_auction):
        """Without a full consignment there is no swap."""
        _consign(protocol, protocol.alice, bare_auction, 40)
        protocol.place_bid(protocol.bob, bare_auction, 20)

        protocol.chain.advance_time(200)
        protocol.finalize(protocol.charlie, bare_auction)

        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE
        assert protocol.balance(protocol.sell, protocol.alice) == INITIAL_BALANCE
        assert protocol.balance(protocol.sell, protocol.bob) == INITIAL_BALANCE


# =============================================================================
# Finalize
# =============================================================================


class TestFinalize:
    """Closing rules."""

    def test_non_seller_cannot_finalize_early(self, protocol):
        """Before ends_at only the seller may finalize."""
        auction, _ = protocol.create_auction(protocol.alice, ends_in=100)
        protocol.place_bid(protocol.bob, auction, 7)

        with pytest.raises(Unauthorized):
            protocol.finalize(protocol.bob, auction)
        assert protocol.info(auction)["phase"] == "accepting_bids"

    def test_seller_can_finalize_early(self, protocol):
        """The seller may close any time."""
        auction, _ = protocol.create_auction(protocol.alice, ends_in=100)
        protocol.place_bid(protocol.bob, auction, 7)

        result = protocol.finalize(protocol.alice, auction)
        assert result.answer_from(auction)["close_auction"]["winning_bid"] == 7

    def test_finalize_twice_fails(self, protocol):
        """Closing is one-way."""
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.finalize(protocol.alice, auction)

        with pytest.raises(AlreadyClosed):
            protocol.finalize(protocol.alice, auction)

    def test_only_if_bids_keeps_auction_open(self, protocol):
        """No bids: nothing closes, the seller may extend."""
        chain = protocol.chain
        auction, index = protocol.create_auction(protocol.alice, minimum_bid=5, ends_in=100)
        new_end = chain.time + 1000

        result = protocol.finalize(protocol.alice, auction, only_if_bids=True, new_ends_at=new_end, new_minimum_bid=20)
        answer = result.answer_from(auction)["close_auction"]
        assert answer["status"] == "failure"

        info = protocol.info(auction)
        assert info["phase"] == "accepting_bids"
        assert info["minimum_bid"] == 20
        assert info["ends_at"] == new_end

        record = protocol.registry.get(index)
        assert record.minimum_bid == 20
        assert record.ends_at == new_end

    def test_extend_far_into_the_future(self, protocol):
        """An end time with no calendar date still extends the auction."""
        auction, index = protocol.create_auction(protocol.alice, ends_in=100)

        result = protocol.finalize(protocol.alice, auction, only_if_bids=True, new_ends_at=10**12)
        answer = result.answer_from(auction)["close_auction"]
        assert answer["status"] == "failure"
        assert "1000000000000s" in answer["message"]

        assert protocol.info(auction)["ends_at"] == 10**12
        assert protocol.registry.get(index).ends_at == 10**12

    def test_change_minimum_bid_is_seller_only(self, protocol):
        """Only the seller may change the minimum bid, and only while open."""
        auction, _ = protocol.create_auction(protocol.alice)

        with pytest.raises(Unauthorized):
            protocol.chain.execute(protocol.bob, auction, ChangeMinimumBid(minimum_bid=1))

        protocol.finalize(protocol.alice, auction)
        with pytest.raises(AlreadyClosed):
            protocol.chain.execute(protocol.alice, auction, ChangeMinimumBid(minimum_bid=1))


# =============================================================================
# Retraction and outstanding funds
# =============================================================================


class TestRetractAndRecovery:
    """Retracting bids and recovering failed payouts."""

    def test_retract_returns_bid(self, protocol):
        """An open bid can be retracted in full."""
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)

        result = protocol.chain.execute(protocol.bob, auction, RetractBid())
        answer = result.answer_from(auction)["retract_bid"]
        assert answer["status"] == "success"
        assert answer["amount_returned"] == 7
        assert protocol.balance(protocol.bid, protocol.bob) == INITIAL_BALANCE

    def test_retract_without_bid(self, protocol):
        """Nothing to retract is a neutral failure answer."""
        auction, _ = protocol.create_auction(protocol.alice)

        result = protocol.chain.execute(protocol.bob, auction, RetractBid())
        answer = result.answer_from(auction)["retract_bid"]
        assert answer["status"] == "failure"
        assert "No active bid" in answer["message"]

    def test_failed_payouts_become_outstanding(self, protocol):
        """Payouts that fail at close are kept and re-sent later."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)
        protocol.place_bid(protocol.charlie, auction, 6)

        _set_bid_transfers(protocol, ContractStatusLevel.STOP_TRANSFERS)
        chain.advance_time(200)
        result = protocol.finalize(protocol.dave, auction)

        # Seller's proceeds and Charlie's refund both failed; the sale went through
        assert len(result.failures) == 2
        assert protocol.balance(protocol.sell, protocol.bob) == INITIAL_BALANCE + 100
        info = protocol.info(auction)
        assert info["outstanding_funds"] is True
        assert "outstanding" in info["status"]

        # Still stopped: the retry fails again and nothing is lost
        result = chain.execute(protocol.dave, auction, ReturnAll())
        assert len(result.failures) == 2
        assert protocol.info(auction)["outstanding_funds"] is True

        _set_bid_transfers(protocol, ContractStatusLevel.NORMAL_RUN)

        result = chain.execute(protocol.charlie, auction, RetractBid())
        assert result.answer_from(auction)["retract_bid"]["amount_returned"] == 6
        assert protocol.balance(protocol.bid, protocol.charlie) == INITIAL_BALANCE

        chain.execute(protocol.dave, auction, ReturnAll())
        assert protocol.balance(protocol.bid, protocol.alice) == INITIAL_BALANCE + 7
        assert protocol.info(auction)["outstanding_funds"] is False
        assert protocol.info(auction)["status"] == "Closed"

    def test_return_all_twice_sends_nothing(self, protocol):
        """return_all is idempotent."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)
        protocol.finalize(protocol.alice, auction)

        first = chain.execute(protocol.dave, auction, ReturnAll())
        second = chain.execute(protocol.dave, auction, ReturnAll())

        for result in (first, second):
            assert result.answers_from(protocol.bid) == []
            assert result.answers_from(protocol.sell) == []
            assert result.answer_from(auction)["status"]["status"] == "success"

    def test_return_all_before_close(self, protocol):
        """return_all only applies to closed auctions."""
        auction, _ = protocol.create_auction(protocol.alice)

        result = protocol.chain.execute(protocol.bob, auction, ReturnAll())
        assert result.answer_from(auction)["status"]["status"] == "failure"


# =============================================================================
# Private queries
# =============================================================================


class TestAuctionQueries:
    """Viewing-key protected queries."""

    def test_view_bid_requires_key(self, protocol):
        """Wrong and missing keys get the same answer."""
        chain = protocol.chain
        key = protocol.create_key(protocol.bob)
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)

        wrong = chain.query(auction, {"view_bid": {"address": protocol.bob, "viewing_key": key + "x"}})
        missing = chain.query(auction, {"view_bid": {"address": protocol.charlie, "viewing_key": key}})
        assert wrong == missing
        assert "viewing_key_error" in wrong

        ok = chain.query(auction, {"view_bid": {"address": protocol.bob, "viewing_key": key}})
        assert ok["bid"]["amount_bid"] == 7

    def test_key_created_after_bidding_is_delegated(self, protocol):
        """Creating a key re-delegates it to auctions the address bids in."""
        chain = protocol.chain
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)

        key = protocol.create_key(protocol.bob)
        answer = chain.query(auction, {"view_bid": {"address": protocol.bob, "viewing_key": key}})
        assert answer["bid"]["amount_bid"] == 7

    def test_view_bid_after_winning(self, protocol):
        """The winner can still see their winning bid."""
        chain = protocol.chain
        key = protocol.create_key(protocol.bob)
        auction, _ = protocol.create_auction(protocol.alice)
        protocol.place_bid(protocol.bob, auction, 7)
        protocol.finalize(protocol.alice, auction)

        answer = chain.query(auction, {"view_bid": {"address": protocol.bob, "viewing_key": key}})["bid"]
        assert answer["status"] == "success"
        assert answer["amount_bid"] == 7
        assert "won" in answer["message"]

    def test_has_bids_is_seller_only(self, protocol):
        """has_bids answers the seller; anyone else gets the key error."""
        chain = protocol.chain
        alice_key = protocol.create_key(protocol.alice)
        bob_key = protocol.create_key(protocol.bob)
        auction, _ = protocol.create_auction(protocol.alice)

        answer = chain.query(auction, {"has_bids": {"address": protocol.alice, "viewing_key": alice_key}})
        assert answer == {"has_bids": {"has_bids": False}}

        protocol.place_bid(protocol.bob, auction, 7)
        answer = chain.query(auction, {"has_bids": {"address": protocol.alice, "viewing_key": alice_key}})
        assert answer == {"has_bids": {"has_bids": True}}

        answer = chain.query(auction, {"has_bids": {"address": protocol.bob, "viewing_key": bob_key}})
        assert "viewing_key_error" in answer

    def test_set_viewing_key_only_from_factory(self, protocol):
        """Auctions accept delegated key records only from their factory."""
        auction, _ = protocol.create_auction(protocol.alice)
        record = {"salt": "00" * 16, "digest": "11" * 32}

        with pytest.raises(Unauthorized):
            protocol.chain.execute(protocol.bob, auction, {
                "set_viewing_key": {"address": protocol.bob, "key": record},
            })


def test_auction_code_is_stored(protocol):
    """The deployed auction code is the sealed-bid auction."""
    assert protocol.chain.code(protocol.codes.auction.code_id).contract_cls is SealedBidAuction
