"""Shared fixtures for Message Relayer tests."""

import pytest
from hexbytes import HexBytes
from web3 import Web3

from message_relayer.config import DestinationChainConfig, RelayerConfig, SourceChainConfig
from message_relayer.hashing import hash_cross_domain_message
from message_relayer.models import Message

SENDER = Web3.to_checksum_address("0x00000000000000000000000000000000000000aa")
TARGET = Web3.to_checksum_address("0x00000000000000000000000000000000000000bb")
RELAY_SENDER = Web3.to_checksum_address("0x36bde71c97b33cc4729cf772ae268934f7bac70b")


def make_message(nonce: int = 1, value: int = 0, block_number: int = 105, payload: bytes = b"\x12\x34") -> Message:
    """Build a Message whose hash matches its fields."""
    return Message(
        message_hash=hash_cross_domain_message(nonce, SENDER, TARGET, value, 200000, payload),
        sender=SENDER,
        target=TARGET,
        payload=payload,
        nonce=nonce,
        gas_limit=200000,
        value=value,
        block_number=block_number,
        transaction_hash="0x" + f"{nonce:064x}",
        timestamp=1_700_000_000,
    )


def make_sent_event(
    nonce: int = 1,
    sender: str = SENDER,
    block_number: int = 105,
    tx_byte: str = "ab",
    log_index: int = 0,
) -> dict:
    """Build a decoded SentMessage log as returned by web3."""
    return {
        'args': {
            'target': TARGET,
            'sender': sender,
            'message': b"\x12\x34",
            'messageNonce': nonce,
            'gasLimit': 200000,
        },
        'event': 'SentMessage',
        'blockNumber': block_number,
        'transactionHash': HexBytes("0x" + tx_byte * 32),
        'logIndex': log_index,
    }


def make_extension_event(
    value: int, sender: str = SENDER, tx_byte: str = "ab", log_index: int = 1
) -> dict:
    """Build a decoded SentMessageExtension1 log."""
    return {
        'args': {'sender': sender, 'value': value},
        'event': 'SentMessageExtension1',
        'blockNumber': 105,
        'transactionHash': HexBytes("0x" + tx_byte * 32),
        'logIndex': log_index,
    }


@pytest.fixture
def relayer_config():
    """A valid configuration pointing at local RPC endpoints."""
    return RelayerConfig(
        source_chain=SourceChainConfig(rpc_url="http://localhost:8545"),
        destination_chain=DestinationChainConfig(
            rpc_url="http://localhost:9545",
            relay_sender_address=RELAY_SENDER,
        ),
    )
