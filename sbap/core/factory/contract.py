"""
Auction Factory contract.

Creates auctions, keeps the registry that lists them, and holds the
viewing keys that authenticate private listings. Auctions report back
through auction-only handle messages; the factory accepts those only from
the contract address bound to an active index.

Creating an auction is a chain of messages within one transaction:

    create_auction (factory) -> instantiate (auction)
        -> register_auction (factory) -> send_from (sale token)
            -> receive (auction): consignment

The factory checks the seller's balance and allowance up front. If any
later link fails, the instantiation fails as a whole and the reserved
index is marked void.
"""

from typing import Any, Dict, Tuple

from sbap.core.auth import ViewingKeyStore
from sbap.core.errors import (
    InsufficientAllowanceOrBalance,
    InvalidMessage,
    SameTokenPair,
    Stopped,
    Unauthorized,
    ZeroAmount,
)
from sbap.core.factory.msg import (
    HANDLE_MSGS,
    QUERY_MSGS,
    ActiveListing,
    ClosedListing,
    CreateAuction,
    CreateAuctionAnswer,
    CreateViewingKey,
    FactoryInitMsg,
    FilterType,
    ListActiveAuctionsAnswer,
    ListClosedAuctions,
    ListClosedAuctionsAnswer,
    ListMyAuctions,
    ListMyAuctionsAnswer,
    MyActiveLists,
    MyClosedLists,
    NewAuctionContract,
    PairListing,
    SetFactoryViewingKey,
    SetStatus,
    ViewingKeyAnswer,
)
from sbap.core.factory.registry import FactoryRegistry
from sbap.core.factory.state import (
    AuctionRecord,
    FactoryConfig,
    FactoryStatus,
    RecordStatus,
)
from sbap.core.host import Contract, Deps, Env, Querier, Reply, Response, decode, execute, parse_wire
from sbap.core.interfaces import (
    REPLY_DELEGATE,
    REPLY_INSTANTIATE,
    AuctionInitMsg,
    AuctionInstantiator,
    ChangeAuctionInfo,
    CloseAuction,
    ContractRef,
    IsKeyValid,
    IsKeyValidAnswer,
    RegisterAuction,
    RegisterBidder,
    RemoveBidder,
    ResponseStatus,
    StatusAnswer,
    TokenRef,
    ViewingKeyErrorAnswer,
)
from sbap.core.token.msg import AllowanceQuery, BalanceQuery, SendFrom, TokenInfoQuery
from sbap.utils.logger import get_logger

logger = get_logger("factory")


def _token_ref(querier: Querier, contract: ContractRef) -> TokenRef:
    info = querier.query(contract.address, TokenInfoQuery(), code_hash=contract.code_hash)["token_info"]
    return TokenRef(
        address=contract.address,
        code_hash=contract.code_hash,
        symbol=info["symbol"],
        decimals=info["decimals"],
    )


def _funds_available(querier: Querier, token: TokenRef, owner: str, spender: str) -> Tuple[int, int]:
    balance = querier.query(token.address, BalanceQuery(address=owner), code_hash=token.code_hash)
    allowance = querier.query(
        token.address, AllowanceQuery(owner=owner, spender=spender), code_hash=token.code_hash
    )
    return balance["balance"]["amount"], allowance["allowance"]["allowance"]


class AuctionFactory(Contract):
    """Spawns and indexes sealed-bid auctions."""

    name = "auction_factory"
    version = "1"

    # =========================================================================
    # Entry points
    # =========================================================================

    def instantiate(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        init = decode(msg, FactoryInitMsg)
        config = FactoryConfig(admin=env.message.sender, versions=[init.auction_contract])
        FactoryRegistry(deps.storage).save_config(config)
        self._keys(deps).init_seed(env, init.entropy.encode("utf-8"))

        logger.info(f"Factory created at {env.contract.address}, admin {config.admin[:10]}")
        return Response()

    def execute(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        parsed = parse_wire(msg, HANDLE_MSGS)
        registry = FactoryRegistry(deps.storage)
        config = registry.config()

        if isinstance(parsed, CreateAuction):
            response = self._create_auction(deps, env, config, registry, parsed)
        elif isinstance(parsed, RegisterAuction):
            response = self._register_auction(deps, env, registry, parsed)
        elif isinstance(parsed, (RegisterBidder, RemoveBidder, CloseAuction, ChangeAuctionInfo)):
            response = self._auction_event(deps, env, registry, parsed)
        elif isinstance(parsed, (NewAuctionContract, SetStatus)):
            response = self._admin(env, config, parsed)
        else:
            response = self._viewing_key(deps, env, registry, parsed)

        registry.save_config(config)
        return response

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        if reply.id == REPLY_INSTANTIATE:
            if reply.is_error:
                FactoryRegistry(deps.storage).void(int(reply.payload["index"]))
        elif reply.id == REPLY_DELEGATE:
            logger.warning(
                f"Could not forward viewing key of {reply.payload['address'][:10]} "
                f"to auction {reply.payload['auction'][:10]}: {reply.error}"
            )
        else:
            raise InvalidMessage(f"Unexpected reply id {reply.id}")
        return Response()

    def query(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Dict[str, Any]:
        parsed = parse_wire(msg, QUERY_MSGS)
        registry = FactoryRegistry(deps.storage)

        if isinstance(parsed, ListMyAuctions):
            return self._list_my_auctions(deps, registry, parsed).to_wire()
        if isinstance(parsed, ListClosedAuctions):
            page_size = parsed.page_size or deps.config.default_page_size
            closed = registry.closed_page(parsed.before, page_size)
            return ListClosedAuctionsAnswer(closed=[ClosedListing.from_record(r) for r in closed]).to_wire()
        if isinstance(parsed, IsKeyValid):
            valid = self._keys(deps).verify(parsed.address, parsed.viewing_key)
            return IsKeyValidAnswer(is_valid=valid).to_wire()

        active = [
            PairListing(pair=pair, auctions=[ActiveListing.from_record(r) for r in records])
            for pair, records in registry.active_by_pair().items()
        ]
        return ListActiveAuctionsAnswer(active=active).to_wire()

    # =========================================================================
    # Creation
    # =========================================================================

    def _create_auction(
        self,
        deps: Deps,
        env: Env,
        config: FactoryConfig,
        registry: FactoryRegistry,
        msg: CreateAuction,
    ) -> Response:
        if config.status == FactoryStatus.STOPPED:
            raise Stopped("The factory has been stopped. No new auctions can be created")
        if msg.sell_amount == 0:
            raise ZeroAmount("Sell amount must be greater than zero")
        if msg.sell_contract.address == msg.bid_contract.address:
            raise SameTokenPair("Sell contract and bid contract must be different")

        seller = env.message.sender
        sell_token = _token_ref(deps.querier, msg.sell_contract)
        bid_token = _token_ref(deps.querier, msg.bid_contract)

        balance, allowance = _funds_available(deps.querier, sell_token, seller, env.contract.address)
        if balance < msg.sell_amount or allowance < msg.sell_amount:
            raise InsufficientAllowanceOrBalance(
                f"Need {msg.sell_amount} {sell_token.symbol} in balance and allowance to the factory, "
                f"have balance={balance}, allowance={allowance}"
            )

        index = config.next_index
        config.next_index += 1
        code = config.auction_contract

        registry.reserve(AuctionRecord(
            index=index,
            label=msg.label,
            seller=seller,
            code_id=code.code_id,
            code_hash=code.code_hash,
            version=config.current_version,
            sell_token=sell_token,
            bid_token=bid_token,
            sell_amount=msg.sell_amount,
            minimum_bid=msg.minimum_bid,
            ends_at=msg.ends_at,
            description=msg.description,
        ))

        init = AuctionInitMsg(
            seller=seller,
            factory=ContractRef(address=env.contract.address, code_hash=env.contract.code_hash),
            index=index,
            label=msg.label,
            sell_contract=msg.sell_contract,
            bid_contract=msg.bid_contract,
            sell_amount=msg.sell_amount,
            sell_decimals=sell_token.decimals,
            bid_decimals=bid_token.decimals,
            sell_symbol=sell_token.symbol,
            bid_symbol=bid_token.symbol,
            minimum_bid=msg.minimum_bid,
            ends_at=msg.ends_at,
            description=msg.description,
            version=config.current_version,
        )

        logger.info(f"Creating auction {index} '{msg.label}' for {seller[:10]}")
        return (
            Response()
            .add_message(AuctionInstantiator(code.code_id, code.code_hash).instantiates(init))
            .add_attribute("auction_index", index)
            .set_data(CreateAuctionAnswer(
                status=ResponseStatus.SUCCESS,
                index=index,
                message=f"Auction {index} is being created",
            ))
        )

    def _register_auction(self, deps: Deps, env: Env, registry: FactoryRegistry, msg: RegisterAuction) -> Response:
        sender = env.message.sender
        record = registry.may_get(msg.index)
        if (
            record is None
            or record.status != RecordStatus.PENDING
            or record.label != msg.label
            or record.seller != msg.seller
        ):
            raise Unauthorized(f"No pending auction matches registration from {sender}")

        instance = deps.querier.contract_info(sender)
        if instance.creator != env.contract.address or instance.code_id != record.code_id:
            raise Unauthorized(f"{sender} was not created by this factory for auction {msg.index}")

        registry.activate(record, sender)

        # Pull the sale tokens; the token's receive hook consigns them
        pull = SendFrom(owner=record.seller, recipient=sender, amount=record.sell_amount)
        return (
            Response()
            .add_message(execute(record.sell_token.address, record.sell_token.code_hash, pull))
            .set_data(StatusAnswer(status=ResponseStatus.SUCCESS, message="Auction registered"))
        )

    # =========================================================================
    # Auction-only events
    # =========================================================================

    def _auction_event(self, deps: Deps, env: Env, registry: FactoryRegistry, msg) -> Response:
        record = registry.authenticate(env.message.sender)
        response = Response()

        if isinstance(msg, RegisterBidder):
            if registry.add_bidder(record, msg.bidder):
                key = self._keys(deps).get_record(msg.bidder)
                if key is not None:
                    auction = ContractRef(address=record.address, code_hash=record.code_hash)
                    response.add_message(AuctionInstantiator.delegate(auction, msg.bidder, key))
        elif isinstance(msg, RemoveBidder):
            registry.remove_bidder(record, msg.bidder)
        elif isinstance(msg, CloseAuction):
            if msg.seller != record.seller:
                raise Unauthorized("Close notification names the wrong seller")
            registry.close(record, env.block.time, msg.bidder, msg.winning_bid)
        else:
            if msg.minimum_bid is not None:
                record.minimum_bid = msg.minimum_bid
            if msg.ends_at is not None:
                record.ends_at = msg.ends_at
            registry.save(record)

        return response.set_data(StatusAnswer(status=ResponseStatus.SUCCESS, message=msg.wire_name))

    # =========================================================================
    # Admin
    # =========================================================================

    def _admin(self, env: Env, config: FactoryConfig, msg) -> Response:
        if env.message.sender != config.admin:
            raise Unauthorized("This is an admin command and can only be run from the admin address")

        if isinstance(msg, NewAuctionContract):
            config.versions.append(msg.auction_contract)
            message = f"Auction contract version {config.current_version} registered"
        else:
            config.status = FactoryStatus.STOPPED if msg.stop else FactoryStatus.ACCEPTING
            message = f"Factory status is now {config.status.value}"

        logger.info(message)
        return Response().set_data(StatusAnswer(status=ResponseStatus.SUCCESS, message=message))

    # =========================================================================
    # Viewing keys
    # =========================================================================

    def _keys(self, deps: Deps) -> ViewingKeyStore:
        return ViewingKeyStore(deps.storage, key_prefix=deps.config.viewing_key_prefix)

    def _viewing_key(self, deps: Deps, env: Env, registry: FactoryRegistry, msg) -> Response:
        sender = env.message.sender
        keys = self._keys(deps)

        if isinstance(msg, CreateViewingKey):
            key = keys.create_key(env, sender, msg.entropy)
        elif isinstance(msg, SetFactoryViewingKey):
            key = msg.key
            keys.set_key(env, sender, key)
        else:
            raise InvalidMessage(f"Unhandled message {msg.wire_name}")

        # Re-delegate to every active auction the address bids in
        record = keys.get_record(sender)
        response = Response()
        for auction in registry.records(registry.person(sender).as_bidder, RecordStatus.ACTIVE):
            ref = ContractRef(address=auction.address, code_hash=auction.code_hash)
            response.add_message(AuctionInstantiator.delegate(ref, sender, record))

        return response.set_data(ViewingKeyAnswer(key=key))

    # =========================================================================
    # Queries
    # =========================================================================

    def _list_my_auctions(self, deps: Deps, registry: FactoryRegistry, msg: ListMyAuctions):
        if not self._keys(deps).verify(msg.address, msg.viewing_key):
            return ViewingKeyErrorAnswer()

        person = registry.person(msg.address)
        answer = ListMyAuctionsAnswer()

        if msg.filter in (FilterType.ACTIVE, FilterType.ALL):
            answer.active = MyActiveLists(
                as_seller=[ActiveListing.from_record(r) for r in registry.records(person.as_seller, RecordStatus.ACTIVE)],
                as_bidder=[ActiveListing.from_record(r) for r in registry.records(person.as_bidder, RecordStatus.ACTIVE)],
            )
        if msg.filter in (FilterType.CLOSED, FilterType.ALL):
            answer.closed = MyClosedLists(
                as_seller=[ClosedListing.from_record(r) for r in registry.records(person.as_seller, RecordStatus.CLOSED)],
                won=[ClosedListing.from_record(r) for r in registry.records(person.won, RecordStatus.CLOSED)],
            )
        return answer
