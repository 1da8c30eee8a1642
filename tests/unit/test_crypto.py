"""
Account keys, hashes and address derivation.
"""

import hashlib

import pytest

from sbap.crypto import (
    SECP256K1_ORDER,
    KeyPair,
    constant_time_compare,
    derive_contract_address,
    generate_keypair,
    keccak256,
    private_key_to_public_key,
    sha256,
)
from sbap.utils.validation import validate_address


class TestAccounts:
    """Tests for secp256k1 accounts."""

    def test_fresh_account_shape(self):
        account = generate_keypair()
        assert (len(account.private_key), len(account.public_key)) == (32, 64)
        assert validate_address(account.address) == (True, "")

    def test_fresh_accounts_differ(self):
        first, second = generate_keypair(), generate_keypair()
        assert first.address != second.address

    def test_public_key_matches_private(self):
        account = generate_keypair()
        assert private_key_to_public_key(account.private_key) == account.public_key

    def test_invalid_private_keys_rejected(self):
        with pytest.raises(ValueError):
            private_key_to_public_key(b"\x01" * 31)
        with pytest.raises(ValueError):
            private_key_to_public_key(bytes(32))
        with pytest.raises(ValueError):
            private_key_to_public_key(SECP256K1_ORDER.to_bytes(32, "big"))

    def test_rebuilt_from_private_key(self):
        """The same private key always gives the same account."""
        account = generate_keypair()
        rebuilt = KeyPair.from_private_key(account.private_key)
        assert rebuilt == account
        assert rebuilt.address == account.address
        assert account.private_key.hex() not in repr(account)


class TestHashing:
    """Tests for hash functions."""

    def test_sha256_known_value(self):
        assert sha256(b"").hex() == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_keccak256_known_value(self):
        """Keccak-256, not NIST SHA3-256."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_keccak_is_not_sha3(self):
        assert keccak256(b"abc") != hashlib.sha3_256(b"abc").digest()


class TestContractAddresses:
    """Tests for contract address derivation."""

    def test_deterministic(self):
        assert derive_contract_address(2, 5) == derive_contract_address(2, 5)

    def test_depends_on_code_and_instance(self):
        addresses = {derive_contract_address(c, i) for c in (1, 2) for i in (1, 2)}
        assert len(addresses) == 4

    def test_format(self):
        assert validate_address(derive_contract_address(1, 1))[0]


class TestConstantTimeCompare:
    """Tests for secret comparison."""

    def test_equal(self):
        assert constant_time_compare(b"secret", b"secret")

    def test_different(self):
        assert not constant_time_compare(b"secret", b"secreT")
        assert not constant_time_compare(b"secret", b"secret!")
