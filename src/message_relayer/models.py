"""
Shared data models for the Message Relayer.

This module contains the data classes and types used across the relayer components.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MessageStatus(str, Enum):
    """Lifecycle status of a cross-domain message. Only PENDING -> RELAYED is allowed."""
    PENDING = "pending"
    RELAYED = "relayed"


@dataclass(frozen=True, slots=True)
class Message:
    """Represents a SentMessage observed on the source chain.

    Content-addressed: two messages with identical fields share the same
    ``message_hash`` and collapse to a single record in the store.

    Attributes:
        message_hash: Identity hash of (nonce, sender, target, value, gas_limit, payload)
        sender: Address that sent the message on the source chain
        target: Address the message is delivered to on the destination chain
        payload: Opaque calldata forwarded to the target
        nonce: Versioned message nonce as emitted by the source messenger
        gas_limit: Minimum gas limit requested for the relay
        value: Native currency attached to the message (wei)
        block_number: Source block containing the SentMessage log
        transaction_hash: Source transaction hash
        timestamp: Unix timestamp of the source block
    """
    message_hash: str
    sender: str
    target: str
    payload: bytes
    nonce: int
    gas_limit: int
    value: int
    block_number: int
    transaction_hash: str
    timestamp: int = 0

    def __str__(self) -> str:
        return (
            f"Message(hash={self.message_hash[:10]}..., "
            f"nonce={self.nonce}, block={self.block_number})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "messageHash": self.message_hash,
            "sender": self.sender,
            "target": self.target,
            "message": "0x" + self.payload.hex(),
            "messageNonce": str(self.nonce),
            "gasLimit": self.gas_limit,
            "value": str(self.value),
            "blockNumber": self.block_number,
            "transactionHash": self.transaction_hash,
            "timestamp": self.timestamp,
        }
