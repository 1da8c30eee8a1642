"""
Sealed-Bid Auction contract.

Ties the escrow ledger, bid registry and settlement engine to the host:
tokens arrive through the token receive hook (sale tokens are a
consignment, bid tokens a bid), everything leaves through payouts that
report failures back to reply(), and the factory hears about bidder
changes and closure through fire-and-forget notifications.
"""

from typing import Any, Dict, List

from sbap.core.auction.bids import BidRegistry
from sbap.core.auction.escrow import EscrowLedger, Payout
from sbap.core.auction.msg import (
    HANDLE_MSGS,
    QUERY_MSGS,
    AuctionInfoAnswer,
    BidAnswer,
    ChangeMinimumBid,
    ChangeMinimumBidAnswer,
    CloseAuctionAnswer,
    ConsignAnswer,
    Finalize,
    HasBids,
    HasBidsAnswer,
    RetractBid,
    RetractBidAnswer,
    ReturnAll,
    TokenInfo,
    ViewBid,
    ViewBidAnswer,
)
from sbap.core.auction.settlement import settle
from sbap.core.auction.state import (
    AuctionState,
    TokenSide,
    format_amount,
    format_time,
    load_state,
    save_state,
)
from sbap.core.auth import ViewingKeyStore
from sbap.core.errors import (
    AlreadyClosed,
    ErrorKind,
    InvalidMessage,
    SameTokenPair,
    Unauthorized,
    ZeroAmount,
)
from sbap.core.host import Contract, Deps, Env, Reply, Response, decode, execute, parse_wire
from sbap.core.interfaces import (
    REPLY_NOTIFY,
    REPLY_PAYOUT,
    AuctionInitMsg,
    ChangeAuctionInfo,
    CloseAuction,
    FactoryNotifier,
    RegisterAuction,
    RegisterBidder,
    RemoveBidder,
    ResponseStatus,
    SetViewingKey,
    StatusAnswer,
    TokenRef,
    ViewingKeyErrorAnswer,
)
from sbap.core.token.msg import ReceiveMsg, RegisterReceive
from sbap.utils.logger import get_logger

logger = get_logger("auction")

SUCCESS = ResponseStatus.SUCCESS
FAILURE = ResponseStatus.FAILURE


class SealedBidAuction(Contract):
    """One auction instance, created by the factory."""

    name = "sealed_bid_auction"
    version = "1"

    # =========================================================================
    # Entry points
    # =========================================================================

    def instantiate(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        init = decode(msg, AuctionInitMsg)

        if init.sell_amount == 0:
            raise ZeroAmount("Sell amount must be greater than zero")
        if init.sell_contract.address == init.bid_contract.address:
            raise SameTokenPair("Sell contract and bid contract must be different")

        state = AuctionState(
            index=init.index,
            label=init.label,
            factory=init.factory,
            seller=init.seller,
            sell_token=TokenRef(
                address=init.sell_contract.address,
                code_hash=init.sell_contract.code_hash,
                symbol=init.sell_symbol,
                decimals=init.sell_decimals,
            ),
            bid_token=TokenRef(
                address=init.bid_contract.address,
                code_hash=init.bid_contract.code_hash,
                symbol=init.bid_symbol,
                decimals=init.bid_decimals,
            ),
            sell_amount=init.sell_amount,
            minimum_bid=init.minimum_bid,
            ends_at=init.ends_at,
            description=init.description,
            version=init.version,
        )
        save_state(deps.storage, state)

        hook = RegisterReceive(code_hash=env.contract.code_hash)
        response = Response()
        for token in (state.sell_token, state.bid_token):
            response.add_message(execute(token.address, token.code_hash, hook))
        response.add_message(
            FactoryNotifier(state.factory).register(
                RegisterAuction(seller=state.seller, index=state.index, label=state.label)
            )
        )

        logger.info(
            f"Auction {state.index} '{state.label}' created: {state.sell_amount} {state.sell_token.symbol} "
            f"for {state.bid_token.symbol}, minimum {state.minimum_bid}, ends {state.ends_at}"
        )
        return response.add_attribute("auction_index", state.index)

    def execute(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        parsed = parse_wire(msg, HANDLE_MSGS)
        state = load_state(deps.storage)

        if isinstance(parsed, ReceiveMsg):
            response = self._receive(env, state, parsed)
        elif isinstance(parsed, RetractBid):
            response = self._retract_bid(env, state)
        elif isinstance(parsed, Finalize):
            response = self._finalize(env, state, parsed)
        elif isinstance(parsed, ReturnAll):
            response = self._return_all(state)
        elif isinstance(parsed, ChangeMinimumBid):
            response = self._change_minimum_bid(env, state, parsed)
        else:
            response = self._set_viewing_key(deps, env, state, parsed)

        save_state(deps.storage, state)
        return response

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        if reply.id == REPLY_PAYOUT:
            state = load_state(deps.storage)
            EscrowLedger(state).record_failed(Payout.from_payload(reply.payload))
            save_state(deps.storage, state)
        elif reply.id == REPLY_NOTIFY:
            event = next(iter(reply.payload or {}), "?")
            logger.warning(f"Factory rejected {event} notification: {reply.error}")
        else:
            raise InvalidMessage(f"Unexpected reply id {reply.id}")
        return Response()

    def query(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Dict[str, Any]:
        parsed = parse_wire(msg, QUERY_MSGS)
        state = load_state(deps.storage)

        if isinstance(parsed, ViewBid):
            return self._view_bid(deps, state, parsed).to_wire()
        if isinstance(parsed, HasBids):
            return self._has_bids(deps, state, parsed).to_wire()
        return self._auction_info(env, state).to_wire()

    # =========================================================================
    # Receive hook: consign / bid
    # =========================================================================

    def _receive(self, env: Env, state: AuctionState, msg: ReceiveMsg) -> Response:
        token = env.message.sender
        if token == state.sell_token.address:
            return self._consign(state, msg.from_, msg.amount)
        if token == state.bid_token.address:
            return self._bid(env, state, msg.from_, msg.amount)
        raise Unauthorized(f"Tokens from {token} are not traded in this auction")

    def _consign(self, state: AuctionState, owner: str, amount: int) -> Response:
        escrow = EscrowLedger(state)
        result = escrow.consign(owner, amount)
        response = Response()
        returned = escrow.pay(Payout(TokenSide.SELL, owner, result.returned))
        if returned is not None:
            response.add_message(returned)

        symbol = state.sell_token.symbol
        decimals = state.sell_token.decimals
        if not result.ok:
            return response.set_data(ConsignAnswer(
                status=FAILURE,
                message=result.rejection,
                amount_consigned=0,
                amount_needed=result.amount_needed or None,
                amount_returned=result.returned,
            ))

        if result.amount_needed:
            status = FAILURE
            message = (
                f"You have not consigned the full amount. "
                f"{format_amount(result.amount_needed, decimals)} {symbol} still needed"
            )
        else:
            status = SUCCESS
            message = "Tokens to be sold have been consigned to the auction"
            logger.info(f"Auction {state.index} fully consigned")

        return response.set_data(ConsignAnswer(
            status=status,
            message=message,
            amount_consigned=result.accepted,
            amount_needed=result.amount_needed or None,
            amount_returned=result.returned or None,
        ))

    def _bid(self, env: Env, state: AuctionState, bidder: str, amount: int) -> Response:
        outcome = BidRegistry(state).place_bid(bidder, amount, env.block.time)
        escrow = EscrowLedger(state)
        response = Response()

        refund = escrow.pay(Payout(TokenSide.BID, bidder, outcome.refund))
        if refund is not None:
            response.add_message(refund)

        symbol = state.bid_token.symbol
        decimals = state.bid_token.decimals

        if not outcome.accepted:
            if outcome.rejection == ErrorKind.ALREADY_CLOSED:
                message = "Auction has ended. Bid tokens have been returned"
            elif outcome.rejection == ErrorKind.ZERO_AMOUNT:
                message = "Bid amount must be greater than zero"
            else:
                message = (
                    f"Bid was below minimum bid of {format_amount(state.minimum_bid, decimals)} "
                    f"{symbol}. Bid tokens have been returned"
                )
            return response.set_data(BidAnswer(
                status=FAILURE,
                message=message,
                minimum_bid=state.minimum_bid if outcome.rejection == ErrorKind.BELOW_MINIMUM_BID else None,
                amount_returned=outcome.refund or None,
            ))

        if not outcome.replaced:
            return response.set_data(BidAnswer(
                status=FAILURE,
                message=(
                    f"New bid less than or equal to previous bid. Newly bid tokens have been "
                    f"returned. Your bid of {format_amount(outcome.previous.amount, decimals)} {symbol} stands"
                ),
                previous_bid=outcome.previous.amount,
                amount_returned=outcome.refund,
            ))

        if outcome.new_bidder:
            response.add_message(FactoryNotifier(state.factory).notify(RegisterBidder(bidder=bidder)))

        logger.info(f"Auction {state.index}: bid of {amount} {symbol} accepted from {bidder[:10]}")
        return response.set_data(BidAnswer(
            status=SUCCESS,
            message=(
                f"Bid accepted. Previously bid tokens have been returned"
                if outcome.previous is not None else "Bid accepted"
            ),
            previous_bid=outcome.previous.amount if outcome.previous is not None else None,
            amount_bid=amount,
            amount_returned=outcome.refund or None,
        ))

    # =========================================================================
    # Handlers
    # =========================================================================

    def _retract_bid(self, env: Env, state: AuctionState) -> Response:
        bidder = env.message.sender
        escrow = EscrowLedger(state)
        bid = BidRegistry(state).retract(bidder)

        payouts: List[Payout] = escrow.take_outstanding(recipient=bidder)
        if bid is not None:
            payouts.insert(0, Payout(TokenSide.BID, bidder, bid.amount))

        response = Response().add_messages(escrow.pay_all(payouts))
        if not payouts:
            return response.set_data(RetractBidAnswer(
                status=FAILURE,
                message=f"No active bid for address: {bidder}",
            ))

        if bid is not None and not state.closed:
            response.add_message(FactoryNotifier(state.factory).notify(RemoveBidder(bidder=bidder)))
            logger.info(f"Auction {state.index}: {bidder[:10]} retracted a bid of {bid.amount}")

        returned = sum(p.amount for p in payouts if p.side == TokenSide.BID)
        return response.set_data(RetractBidAnswer(
            status=SUCCESS,
            message="Funds have been returned",
            amount_returned=returned or None,
        ))

    def _finalize(self, env: Env, state: AuctionState, msg: Finalize) -> Response:
        caller = env.message.sender
        is_seller = caller == state.seller

        if env.block.time < state.ends_at and not is_seller:
            raise Unauthorized("Only the auction creator can finalize the sale before the closing time")
        if state.closed:
            raise AlreadyClosed("Auction has already been closed")

        notifier = FactoryNotifier(state.factory)
        response = Response()

        if msg.only_if_bids and not state.bids:
            message = "Did not close because there are no active bids"
            changed = is_seller and (msg.new_ends_at is not None or msg.new_minimum_bid is not None)
            if changed:
                if msg.new_ends_at is not None:
                    state.ends_at = msg.new_ends_at
                if msg.new_minimum_bid is not None:
                    state.minimum_bid = msg.new_minimum_bid
                response.add_message(notifier.notify(ChangeAuctionInfo(
                    minimum_bid=msg.new_minimum_bid,
                    ends_at=msg.new_ends_at,
                )))
                message += f". Auction now ends {format_time(state.ends_at)} with minimum bid {state.minimum_bid}"
                logger.info(f"Auction {state.index} extended to {state.ends_at}, minimum {state.minimum_bid}")
            return response.set_data(CloseAuctionAnswer(status=FAILURE, message=message))

        settlement = settle(state)
        response.add_messages(EscrowLedger(state).pay_all(settlement.payouts))
        response.add_message(notifier.notify(CloseAuction(
            seller=state.seller,
            bidder=settlement.winner,
            winning_bid=settlement.winning_amount,
        )))

        if settlement.swapped:
            message = "Sale has been finalized"
        elif settlement.payouts:
            message = "Auction closed without a sale. All consigned and bid tokens have been returned"
        else:
            message = "Auction closed without a sale"

        returned = settlement.returned_to(state.seller, TokenSide.SELL)
        return response.set_data(CloseAuctionAnswer(
            status=SUCCESS,
            message=message,
            winning_bid=settlement.winning_amount,
            amount_returned=returned or None,
        ))

    def _return_all(self, state: AuctionState) -> Response:
        if not state.closed:
            return Response().set_data(StatusAnswer(
                status=FAILURE,
                message="return_all can only be executed after the auction has ended",
            ))

        escrow = EscrowLedger(state)
        payouts = escrow.take_outstanding()
        if not payouts:
            return Response().set_data(StatusAnswer(status=SUCCESS, message="No outstanding funds to return"))

        logger.info(f"Auction {state.index}: re-sending {len(payouts)} outstanding payout(s)")
        return Response().add_messages(escrow.pay_all(payouts)).set_data(StatusAnswer(
            status=SUCCESS,
            message="Outstanding funds have been returned",
        ))

    def _change_minimum_bid(self, env: Env, state: AuctionState, msg: ChangeMinimumBid) -> Response:
        if env.message.sender != state.seller:
            raise Unauthorized("Only the auction creator can change the minimum bid")
        if state.closed:
            raise AlreadyClosed("Auction has already been closed")

        state.minimum_bid = msg.minimum_bid
        logger.info(f"Auction {state.index}: minimum bid changed to {msg.minimum_bid}")

        return (
            Response()
            .add_message(FactoryNotifier(state.factory).notify(ChangeAuctionInfo(minimum_bid=msg.minimum_bid)))
            .set_data(ChangeMinimumBidAnswer(status=SUCCESS, minimum_bid=msg.minimum_bid))
        )

    def _set_viewing_key(self, deps: Deps, env: Env, state: AuctionState, msg: SetViewingKey) -> Response:
        if env.message.sender != state.factory.address:
            raise Unauthorized("Only the factory can set viewing keys on an auction")

        ViewingKeyStore(deps.storage).set_record(msg.address, msg.key)
        return Response().set_data(StatusAnswer(status=SUCCESS, message="Viewing key set"))

    # =========================================================================
    # Queries
    # =========================================================================

    def _auction_info(self, env: Env, state: AuctionState) -> AuctionInfoAnswer:
        return AuctionInfoAnswer(
            index=state.index,
            label=state.label,
            sell_token=TokenInfo(
                contract_address=state.sell_token.address,
                symbol=state.sell_token.symbol,
                decimals=state.sell_token.decimals,
            ),
            bid_token=TokenInfo(
                contract_address=state.bid_token.address,
                symbol=state.bid_token.symbol,
                decimals=state.bid_token.decimals,
            ),
            sell_amount=state.sell_amount,
            minimum_bid=state.minimum_bid,
            description=state.description,
            auction_address=env.contract.address,
            factory_address=state.factory.address,
            ends_at=state.ends_at,
            status=state.status_message(),
            phase=state.phase.name.lower(),
            winning_bid=state.winning_bid.amount if state.winning_bid else None,
            outstanding_funds=state.outstanding_funds,
        )

    def _view_bid(self, deps: Deps, state: AuctionState, msg: ViewBid):
        if not ViewingKeyStore(deps.storage).verify(msg.address, msg.viewing_key):
            return ViewingKeyErrorAnswer()

        symbol = state.bid_token.symbol
        decimals = state.bid_token.decimals
        bid = state.bids.get(msg.address)
        if bid is not None:
            return ViewBidAnswer(
                status=SUCCESS,
                message=(
                    f"Bid placed {format_time(bid.timestamp)} for "
                    f"{format_amount(bid.amount, decimals)} {symbol}"
                ),
                amount_bid=bid.amount,
                timestamp=bid.timestamp,
            )

        winning = state.winning_bid
        if winning is not None and winning.bidder == msg.address:
            return ViewBidAnswer(
                status=SUCCESS,
                message=f"Your bid of {format_amount(winning.amount, decimals)} {symbol} won this auction",
                amount_bid=winning.amount,
            )

        return ViewBidAnswer(status=FAILURE, message=f"No active bid for address: {msg.address}")

    def _has_bids(self, deps: Deps, state: AuctionState, msg: HasBids):
        # Ask the factory even for non-sellers so both paths cost the same
        valid = FactoryNotifier(state.factory).key_is_valid(deps.querier, msg.address, msg.viewing_key)
        if not valid or msg.address != state.seller:
            return ViewingKeyErrorAnswer()
        return HasBidsAnswer(has_bids=bool(state.bids))
