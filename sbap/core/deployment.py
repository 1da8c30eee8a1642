"""
Deployment helpers.

Stores the three contract codes on a chain and instantiates tokens and a
factory. Used by the CLI and by tests; code ids are stable because
Chain.store_code() is idempotent and codes are always stored in the same
order.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from sbap.core.auction import SealedBidAuction
from sbap.core.factory import AuctionContractInfo, AuctionFactory, FactoryRegistry
from sbap.core.factory.msg import FactoryInitMsg
from sbap.core.host import Chain, CodeInfo, ReadonlyStorage
from sbap.core.interfaces import ContractRef
from sbap.core.token import InitialBalance, Snip20Token, TokenInitMsg
from sbap.utils.logger import get_logger

logger = get_logger("deploy")


@dataclass
class Codes:
    token: CodeInfo
    auction: CodeInfo
    factory: CodeInfo


def store_codes(chain: Chain) -> Codes:
    return Codes(
        token=chain.store_code(Snip20Token),
        auction=chain.store_code(SealedBidAuction),
        factory=chain.store_code(AuctionFactory),
    )


def contract_ref(chain: Chain, address: str) -> ContractRef:
    return ContractRef(address=address, code_hash=chain.instance(address).code_hash)


def deploy_token(
    chain: Chain,
    codes: Codes,
    admin: str,
    symbol: str,
    decimals: int = 6,
    balances: Optional[Iterable[Tuple[str, int]]] = None,
    name: Optional[str] = None,
) -> str:
    """Instantiate a token and return its address."""
    init = TokenInitMsg(
        name=name or f"{symbol} token",
        symbol=symbol,
        decimals=decimals,
        admin=admin,
        initial_balances=[InitialBalance(address=a, amount=n) for a, n in (balances or [])],
    )
    address, _ = chain.instantiate(admin, codes.token.code_id, init, label=symbol)
    return address


def deploy_factory(chain: Chain, codes: Codes, admin: str, entropy: str = "sbap") -> str:
    """Instantiate a factory deploying the stored auction code."""
    init = FactoryInitMsg(
        entropy=entropy,
        auction_contract=AuctionContractInfo(
            code_id=codes.auction.code_id,
            code_hash=codes.auction.code_hash,
        ),
    )
    address, _ = chain.instantiate(admin, codes.factory.code_id, init, label="auction-factory")
    logger.info(f"Factory deployed at {address}")
    return address


def factory_registry(chain: Chain, factory: str) -> FactoryRegistry:
    """Read-only view of a factory's registry, for tooling."""
    return FactoryRegistry(ReadonlyStorage(chain.backend, factory))


def auction_address(chain: Chain, factory: str, index: int) -> str:
    """
    Address of an auction by index.

    Raises:
        NotFound: no auction with that index
        ValueError: the auction was never created
    """
    record = factory_registry(chain, factory).get(index)
    if record.address is None:
        raise ValueError(f"Auction {index} has no contract ({record.status.value})")
    return record.address


def balances(chain: Chain, tokens: Dict[str, str], address: str) -> Dict[str, int]:
    """Balance of address in every token, by symbol."""
    return {
        symbol: chain.query(token, {"balance": {"address": address}})["balance"]["amount"]
        for symbol, token in tokens.items()
    }
