"""
Sealed-Bid Auction Protocol (SBAP)

A contract-host simulation of a sealed-bid token auction system:
- Factory that spawns, indexes and authenticates access to auctions
- Auction instances with escrow, bid registry and settlement
- Viewing-key authentication delegated from factory to auctions
- SNIP-20 style fungible tokens as the settlement medium
"""

__version__ = "0.1.0"
