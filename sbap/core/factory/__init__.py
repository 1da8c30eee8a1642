"""
Factory Module.

Creates and indexes auctions:
- Auction creation with an up-front balance/allowance check
- Registry of active/closed auctions and per-address membership
- Viewing keys for private listings, delegated to auctions
- Admin controls (auction code versions, stop/resume creation)
"""

from sbap.core.factory.contract import AuctionFactory
from sbap.core.factory.msg import FilterType
from sbap.core.factory.registry import FactoryRegistry
from sbap.core.factory.state import (
    AuctionContractInfo,
    AuctionRecord,
    FactoryConfig,
    FactoryStatus,
    RecordStatus,
)

__all__ = [
    "AuctionFactory",
    "FilterType",
    "FactoryRegistry",
    "AuctionContractInfo",
    "AuctionRecord",
    "FactoryConfig",
    "FactoryStatus",
    "RecordStatus",
]
