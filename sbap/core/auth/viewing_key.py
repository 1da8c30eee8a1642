"""
Viewing Keys - Password-style authentication for private queries.

Queries carry no signature, so private data (who bid what, which auctions
an address takes part in) is guarded by a viewing key: a secret string
the owner creates or sets through a signed handle message, then presents
with every query.

Only a salted hash of each key is stored:

    digest = sha256(salt || key)

Verification hashes the presented key the same way and compares digests
in constant time. When the address has no key, the comparison still runs
against a dummy record, so "no key" and "wrong key" cost the same and
produce the same answer.

New keys and salts come from a seeded PRNG. The seed is set once from
caller entropy plus block data and is replaced after every draw, so two
draws never repeat. Records can be copied verbatim to another store
(delegation), which lets one key authenticate at the factory and at every
auction it forwards the record to.
"""

import base64
from typing import Optional

from sbap.core.host import Env, Record, Storage
from sbap.crypto import constant_time_compare, sha256
from sbap.utils.logger import get_logger

logger = get_logger("auth")

# Storage key prefix for hashed key records
RECORD_PREFIX = "vk:"

# Storage key of the PRNG seed
SEED_KEY = "vk_seed"

SALT_LENGTH = 16


class KeyRecord(Record):
    """Salted hash of a viewing key; safe to store and to forward."""
    salt: str    # hex
    digest: str  # hex

    def matches(self, key: str) -> bool:
        candidate = sha256(bytes.fromhex(self.salt) + key.encode("utf-8"))
        return constant_time_compare(candidate, bytes.fromhex(self.digest))


# Compared against when an address has no key
_DUMMY_RECORD = KeyRecord(salt="00" * SALT_LENGTH, digest="00" * 32)


def _block_bytes(env: Env) -> bytes:
    return env.block.height.to_bytes(8, "big") + env.block.time.to_bytes(8, "big")


class ViewingKeyStore:
    """Viewing key records of one contract."""

    def __init__(self, storage: Storage, key_prefix: str = "api_key_"):
        self.storage = storage
        self.key_prefix = key_prefix

    # =========================================================================
    # PRNG
    # =========================================================================

    def init_seed(self, env: Env, entropy: bytes) -> None:
        """Set the PRNG seed. Called once, when the owning contract is created."""
        seed = sha256(entropy + _block_bytes(env) + env.contract.address.encode())
        self.storage.set(SEED_KEY, seed)

    def _draw(self, env: Env, extra: bytes) -> bytes:
        seed = self.storage.get(SEED_KEY)
        if seed is None:
            raise RuntimeError("Viewing key PRNG was never seeded")

        out = sha256(seed + _block_bytes(env) + extra)
        self.storage.set(SEED_KEY, sha256(seed + out))
        return out

    # =========================================================================
    # Keys
    # =========================================================================

    def create_key(self, env: Env, address: str, entropy: str) -> str:
        """
        Generate a new key for address and store its hash.

        Args:
            env: Current environment (block data is mixed into the draw)
            address: Owner of the key
            entropy: Caller supplied entropy

        Returns:
            The plaintext key; it is not recoverable later
        """
        raw = self._draw(env, address.encode() + entropy.encode("utf-8"))
        key = self.key_prefix + base64.b64encode(raw).decode("ascii")
        self.set_key(env, address, key)
        return key

    def set_key(self, env: Env, address: str, key: str) -> KeyRecord:
        """Store the salted hash of a caller-chosen key."""
        salt = self._draw(env, b"salt" + address.encode())[:SALT_LENGTH]
        record = KeyRecord(salt=salt.hex(), digest=sha256(salt + key.encode("utf-8")).hex())
        self.set_record(address, record)
        logger.debug(f"Viewing key set for {address[:10]}")
        return record

    def set_record(self, address: str, record: KeyRecord) -> None:
        """Store an already hashed record (delegated from another store)."""
        self.storage.save(RECORD_PREFIX + address, record)

    def get_record(self, address: str) -> Optional[KeyRecord]:
        return self.storage.may_load(RECORD_PREFIX + address, KeyRecord)

    def verify(self, address: str, key: str) -> bool:
        """Check a presented key in constant time."""
        record = self.get_record(address)
        matched = (record or _DUMMY_RECORD).matches(key)
        return record is not None and matched
