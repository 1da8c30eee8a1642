"""
Cryptographic primitives for SBAP.

- sha256: code hashes, viewing keys and their salted digests, PRNG seeds
- keccak256: address derivation
- secp256k1 keypairs: account identities
- constant_time_compare: comparing secrets

Accounts are addressed Ethereum-style, as the last 20 bytes of
keccak256(public key). Contract instances get addresses from the same hash
over a domain tag, their code id and the host's instance counter, so a
chain replayed from the same calls ends up with the same addresses.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass, field

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1

# secp256k1 group order
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

DOMAIN_CONTRACT_ADDRESS = b"sbap/contract"

ADDRESS_BYTES = 20


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """Keccak-256 as used by Ethereum (not NIST SHA3-256)."""
    return keccak.new(digest_bits=256, data=data).digest()


def constant_time_compare(a: bytes, b: bytes) -> bool:
    return hmac.compare_digest(a, b)


def _to_address(digest: bytes) -> str:
    return "0x" + digest[-ADDRESS_BYTES:].hex()


# =============================================================================
# Accounts
# =============================================================================


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Uncompressed public key (x || y, 64 bytes) of a 32-byte private key.

    Raises:
        ValueError: wrong length or out of the curve's scalar range
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")
    scalar = int.from_bytes(private_key, "big")
    if not 0 < scalar < SECP256K1_ORDER:
        raise ValueError("Private key out of range")

    x, y = secp256k1.privtopub(private_key)
    return x.to_bytes(32, "big") + y.to_bytes(32, "big")


def address_from_public_key(public_key: bytes) -> str:
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return _to_address(keccak256(public_key))


@dataclass(frozen=True)
class KeyPair:
    """A secp256k1 account key and its address."""

    private_key: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "KeyPair":
        return cls(private_key=private_key, public_key=private_key_to_public_key(private_key))

    @property
    def address(self) -> str:
        return address_from_public_key(self.public_key)

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def generate_keypair() -> KeyPair:
    """Fresh keypair from the OS random source."""
    scalar = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    return KeyPair.from_private_key(scalar.to_bytes(32, "big"))


def new_address() -> str:
    return generate_keypair().address


# =============================================================================
# Contracts
# =============================================================================


def derive_contract_address(code_id: int, instance_id: int) -> str:
    """
    Address of the instance_id-th contract created on a host, running code_id.

    Both counters are encoded as 8-byte big-endian integers after the
    domain tag.
    """
    preimage = DOMAIN_CONTRACT_ADDRESS + code_id.to_bytes(8, "big") + instance_id.to_bytes(8, "big")
    return _to_address(keccak256(preimage))
