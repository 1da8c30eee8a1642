"""
Shared fixtures.

`protocol` is a deployed system on an in-memory chain: two tokens (SELL and
BID, zero decimals), an auction factory, and four funded accounts. Its
helpers wrap the handful of calls most tests repeat.
"""

from typing import Dict, Optional, Tuple

import pytest

from sbap.core.auction.msg import Finalize
from sbap.core.deployment import (
    auction_address,
    contract_ref,
    deploy_factory,
    deploy_token,
    factory_registry,
    store_codes,
)
from sbap.core.factory.msg import CreateAuction
from sbap.core.host import Chain, TxResult
from sbap.core.token.msg import IncreaseAllowance, Send
from sbap.crypto import generate_keypair

INITIAL_BALANCE = 1000


class Protocol:
    """A deployed token pair and factory plus call helpers."""

    def __init__(self, chain: Chain, names=("alice", "bob", "charlie", "dave")):
        self.chain = chain
        self.codes = store_codes(chain)
        self.accounts: Dict[str, str] = {name: generate_keypair().address for name in names}
        self.admin = self.accounts[names[0]]

        holders = [(address, INITIAL_BALANCE) for address in self.accounts.values()]
        self.sell = deploy_token(chain, self.codes, self.admin, "SELL", decimals=0, balances=holders)
        self.bid = deploy_token(chain, self.codes, self.admin, "BID", decimals=0, balances=holders)
        self.factory = deploy_factory(chain, self.codes, self.admin, entropy="test entropy")

    def __getattr__(self, name: str) -> str:
        accounts = self.__dict__.get("accounts", {})
        if name in accounts:
            return accounts[name]
        raise AttributeError(name)

    @property
    def registry(self):
        return factory_registry(self.chain, self.factory)

    def balance(self, token: str, address: str) -> int:
        return self.chain.query(token, {"balance": {"address": address}})["balance"]["amount"]

    def create_auction(
        self,
        seller: str,
        sell_amount: int = 100,
        minimum_bid: int = 5,
        ends_in: int = 100,
        label: str = "lot",
        description: Optional[str] = None,
        sell_token: Optional[str] = None,
        bid_token: Optional[str] = None,
    ) -> Tuple[str, int]:
        """Approve the factory and create an auction; returns (address, index)."""
        sell_token = sell_token or self.sell
        bid_token = bid_token or self.bid
        self.chain.execute(seller, sell_token, IncreaseAllowance(spender=self.factory, amount=sell_amount))
        result = self.chain.execute(seller, self.factory, CreateAuction(
            label=label,
            sell_contract=contract_ref(self.chain, sell_token),
            bid_contract=contract_ref(self.chain, bid_token),
            sell_amount=sell_amount,
            minimum_bid=minimum_bid,
            ends_at=self.chain.time + ends_in,
            description=description,
        ))
        index = result.data["create_auction"]["index"]
        return auction_address(self.chain, self.factory, index), index

    def place_bid(self, bidder: str, auction: str, amount: int) -> dict:
        """Send bid tokens; returns the auction's answer body."""
        result = self.chain.execute(bidder, self.bid, Send(recipient=auction, amount=amount))
        return result.answer_from(auction)["bid"]

    def finalize(self, caller: str, auction: str, **kwargs) -> TxResult:
        return self.chain.execute(caller, auction, Finalize(**kwargs))

    def info(self, auction: str) -> dict:
        return self.chain.query(auction, {"auction_info": {}})["auction_info"]

    def create_key(self, address: str, entropy: str = "seed") -> str:
        result = self.chain.execute(address, self.factory, {"create_viewing_key": {"entropy": entropy}})
        return result.data["viewing_key"]["key"]


@pytest.fixture
def chain():
    return Chain()


@pytest.fixture
def protocol(chain):
    return Protocol(chain)
