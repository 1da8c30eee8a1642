"""
Authentication Module.

Provides viewing-key authentication for private queries:
- Key creation from a seeded PRNG and key setting
- Salted-hash storage and constant-time verification
- Record delegation from the factory to auctions
"""

from sbap.core.auth.viewing_key import KeyRecord, ViewingKeyStore

__all__ = ["KeyRecord", "ViewingKeyStore"]
