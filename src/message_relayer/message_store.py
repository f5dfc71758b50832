"""
In-memory ledger of cross-domain messages.

Records are keyed by message hash and kept in first-seen order so that
pending messages are always relayed in the same, reproducible order.
The store is owned by the relayer loop; nothing else mutates it.
"""

import logging
from collections import OrderedDict

from .models import Message, MessageStatus

logger = logging.getLogger(__name__)


class MessageStore:
    """Append-only message ledger with a one-way Pending -> Relayed status."""

    def __init__(self) -> None:
        # OrderedDict keeps insertion order explicit for stable relay ordering
        self._messages: OrderedDict[str, Message] = OrderedDict()
        self._status: dict[str, MessageStatus] = {}

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_hash: str) -> bool:
        return message_hash in self._messages

    def upsert_if_absent(self, message: Message) -> bool:
        """
        Insert a message unless its hash is already tracked.

        An existing record is never overwritten, so re-indexing a block range
        cannot move a relayed message back to pending.

        Args:
            message: Message to insert

        Returns:
            True if the message was inserted, False if it was already present
        """
        if message.message_hash in self._messages:
            logger.debug(f"Message {message.message_hash[:10]}... already tracked")
            return False

        self._messages[message.message_hash] = message
        self._status[message.message_hash] = MessageStatus.PENDING
        return True

    def mark_relayed(self, message_hash: str) -> bool:
        """
        Mark a tracked message as relayed.

        Args:
            message_hash: Identity hash of the message

        Returns:
            True if the status changed, False if already relayed or unknown
        """
        status = self._status.get(message_hash)
        if status is None:
            logger.warning(f"Ignoring relay confirmation for unknown message {message_hash}")
            return False
        if status is MessageStatus.RELAYED:
            return False

        self._status[message_hash] = MessageStatus.RELAYED
        return True

    def get(self, message_hash: str) -> Message | None:
        return self._messages.get(message_hash)

    def status(self, message_hash: str) -> MessageStatus | None:
        return self._status.get(message_hash)

    def pending(self) -> list[Message]:
        """Snapshot of pending messages in first-seen order."""
        return [
            message for message_hash, message in self._messages.items()
            if self._status[message_hash] is MessageStatus.PENDING
        ]

    def count(self, status: MessageStatus) -> int:
        return sum(1 for value in self._status.values() if value is status)

    def dump(self) -> list[dict]:
        """All tracked messages with their status, for read-only views."""
        return [
            {**message.to_dict(), "status": self._status[message_hash].value,
             "isRelayed": self._status[message_hash] is MessageStatus.RELAYED}
            for message_hash, message in self._messages.items()
        ]
