"""Tests for cross-domain message identity hashing."""

import pytest
from web3 import Web3

from message_relayer.hashing import (
    UnsupportedMessageVersionError,
    decode_versioned_nonce,
    encode_cross_domain_message,
    encode_versioned_nonce,
    hash_cross_domain_message,
)

SENDER = Web3.to_checksum_address("0x00000000000000000000000000000000000000aa")
TARGET = Web3.to_checksum_address("0x00000000000000000000000000000000000000bb")
V1_NONCE = (1 << 240) | 7


class TestVersionedNonce:
    """Tests for packing the encoding version into the nonce."""

    def test_encode_sets_top_bits(self):
        assert encode_versioned_nonce(7, 1) == V1_NONCE

    def test_decode_splits_nonce_and_version(self):
        assert decode_versioned_nonce(V1_NONCE) == (7, 1)
        assert decode_versioned_nonce(42) == (42, 0)

    def test_reencoding_is_idempotent(self):
        """Re-tagging an already versioned nonce leaves it unchanged."""
        nonce, version = decode_versioned_nonce(V1_NONCE)
        assert encode_versioned_nonce(nonce, version) == V1_NONCE


class TestEncodeCrossDomainMessage:
    """Tests for relay calldata encoding."""

    def test_v1_uses_relay_message_selector(self):
        encoded = encode_cross_domain_message(V1_NONCE, SENDER, TARGET, 0, 200000, b"\x12\x34")
        assert encoded[:4] == Web3.keccak(
            text="relayMessage(uint256,address,address,uint256,uint256,bytes)"
        )[:4]
        assert encoded[:4].hex() == "d764ad0b"

    def test_v0_uses_legacy_selector(self):
        encoded = encode_cross_domain_message(3, SENDER, TARGET, 0, 200000, b"\x12\x34")
        assert encoded[:4].hex() == "cbd4ece9"

    def test_unsupported_version_raises(self):
        with pytest.raises(UnsupportedMessageVersionError, match="version: 2"):
            encode_cross_domain_message((2 << 240) | 1, SENDER, TARGET, 0, 0, b"")


class TestHashCrossDomainMessage:
    """Tests for the message identity hash."""

    def test_hash_is_deterministic(self):
        first = hash_cross_domain_message(V1_NONCE, SENDER, TARGET, 0, 200000, b"\x12\x34")
        second = hash_cross_domain_message(V1_NONCE, SENDER, TARGET, 0, 200000, b"\x12\x34")

        assert first == second
        assert first.startswith("0x")
        assert len(first) == 66

    def test_hash_is_keccak_of_calldata(self):
        encoded = encode_cross_domain_message(V1_NONCE, SENDER, TARGET, 5, 200000, b"\xff")
        expected = Web3.to_hex(Web3.keccak(encoded))

        assert hash_cross_domain_message(V1_NONCE, SENDER, TARGET, 5, 200000, b"\xff") == expected

    def test_address_case_does_not_change_hash(self):
        checksummed = hash_cross_domain_message(V1_NONCE, SENDER, TARGET, 0, 1, b"")
        lowered = hash_cross_domain_message(V1_NONCE, SENDER.lower(), TARGET.lower(), 0, 1, b"")
        assert checksummed == lowered

    @pytest.mark.parametrize("field,changed", [
        ("value", (V1_NONCE, SENDER, TARGET, 1, 200000, b"\x12\x34")),
        ("gas_limit", (V1_NONCE, SENDER, TARGET, 0, 200001, b"\x12\x34")),
        ("payload", (V1_NONCE, SENDER, TARGET, 0, 200000, b"\x12\x35")),
        ("nonce", (V1_NONCE + 1, SENDER, TARGET, 0, 200000, b"\x12\x34")),
    ])
    def test_every_field_contributes(self, field, changed):
        base = hash_cross_domain_message(V1_NONCE, SENDER, TARGET, 0, 200000, b"\x12\x34")
        assert hash_cross_domain_message(*changed) != base, f"{field} did not affect the hash"

    def test_legacy_hash_ignores_value_and_gas(self):
        """v0 messages encode neither value nor gas limit."""
        assert hash_cross_domain_message(3, SENDER, TARGET, 0, 1, b"") == \
            hash_cross_domain_message(3, SENDER, TARGET, 0, 999, b"")
