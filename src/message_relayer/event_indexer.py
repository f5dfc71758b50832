"""
Event indexer for the Message Relayer.

This module reads SentMessage events from the source chain messenger and
RelayedMessage events from the destination chain messenger, normalizing
them into Message records and confirmed hashes. It never touches the
message store or block cursors; the relayer loop owns those.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD

from .hashing import UnsupportedMessageVersionError, hash_cross_domain_message
from .metrics import RelayerMetrics
from .models import Message

logger = logging.getLogger(__name__)


class SenderMismatchError(ValueError):
    """Raised when a SentMessage and its SentMessageExtension1 disagree on sender."""

    def __init__(self, transaction_hash: str, sender: str, extension_sender: str):
        self.transaction_hash = transaction_hash
        self.sender = sender
        self.extension_sender = extension_sender
        super().__init__(
            f"Sender mismatch in transaction {transaction_hash}: "
            f"SentMessage sender {sender} != SentMessageExtension1 sender {extension_sender}"
        )


def _to_hex(value: Any) -> str:
    """Normalize HexBytes, bytes or str into a 0x-prefixed lowercase hex string."""
    match value:
        case bytes() | bytearray():
            return Web3.to_hex(value)
        case str() as text:
            return text.lower() if text.startswith('0x') else '0x' + text.lower()
        case _:
            raise TypeError(f"Unexpected hex value type: {type(value)}")


def _to_bytes(value: Any) -> bytes:
    match value:
        case bytes() | bytearray():
            return bytes(value)
        case str() as text:
            return bytes(HexBytes(text))
        case _:
            raise TypeError(f"Unexpected bytes value type: {type(value)}")


class EventIndexer:
    """Reads and normalizes messenger events from both chains."""

    def __init__(
        self,
        w3_source: Web3,
        w3_destination: Web3,
        source_messenger: Contract,
        destination_messenger: Contract,
        metrics: RelayerMetrics | None = None,
    ) -> None:
        """
        Initialize the event indexer.

        Args:
            w3_source: Web3 connection to the source chain
            w3_destination: Web3 connection to the destination chain
            source_messenger: Source CrossDomainMessenger contract
            destination_messenger: Destination CrossDomainMessenger contract
            metrics: Metrics for skipped events (a private instance by default)
        """
        self.w3_source = w3_source
        self.w3_destination = w3_destination
        self.source_messenger = source_messenger
        self.destination_messenger = destination_messenger
        self.metrics = metrics if metrics is not None else RelayerMetrics()

    async def latest_source_block(self) -> int:
        return await asyncio.to_thread(lambda: self.w3_source.eth.block_number)

    async def latest_destination_block(self) -> int:
        return await asyncio.to_thread(lambda: self.w3_destination.eth.block_number)

    async def scan_source_sent(self, from_block: int, to_block: int) -> list[Message]:
        """
        Collect SentMessage events in a block range.

        Both the primary SentMessage stream and the SentMessageExtension1 stream
        are fetched concurrently and paired by transaction hash and log index.
        A missing extension means the message carries no value.

        Args:
            from_block: First block of the range (inclusive)
            to_block: Last block of the range (inclusive)

        Returns:
            Messages in log order. Events whose nonce carries an unknown
            encoding version are logged, counted and left out.

        Raises:
            SenderMismatchError: If a pair disagrees on the sender; no messages
                from the batch are returned
        """
        sent_events, extension_events = await asyncio.gather(
            asyncio.to_thread(
                self.source_messenger.events.SentMessage.get_logs,
                from_block=from_block,
                to_block=to_block,
            ),
            asyncio.to_thread(
                self.source_messenger.events.SentMessageExtension1.get_logs,
                from_block=from_block,
                to_block=to_block,
            ),
        )

        if not sent_events:
            return []

        logger.info(
            f"Found {len(sent_events)} SentMessage events "
            f"in source blocks {from_block}-{to_block}"
        )

        pairs = self._pair_extensions(sent_events, extension_events)

        # Validate every pair before building anything so a corrupt batch yields nothing
        for event, extension in pairs:
            self._check_sender(event, extension)

        timestamps = await self._fetch_timestamps({event['blockNumber'] for event in sent_events})

        messages: list[Message] = []
        for event, extension in pairs:
            try:
                messages.append(
                    self._build_message(event, extension, timestamps.get(event['blockNumber'], 0))
                )
            except UnsupportedMessageVersionError as e:
                self.metrics.unsupported_messages += 1
                logger.error(
                    f"Skipping SentMessage in transaction {_to_hex(event['transactionHash'])}: {e}"
                )
        return messages

    async def scan_destination_confirmed(self, from_block: int, to_block: int) -> list[str]:
        """
        Collect hashes of messages relayed on the destination chain.

        Args:
            from_block: First block of the range (inclusive)
            to_block: Last block of the range (inclusive)

        Returns:
            0x-prefixed message hashes in log order
        """
        events = await asyncio.to_thread(
            self.destination_messenger.events.RelayedMessage.get_logs,
            from_block=from_block,
            to_block=to_block,
        )

        if events:
            logger.info(
                f"Found {len(events)} RelayedMessage events "
                f"in destination blocks {from_block}-{to_block}"
            )

        return [_to_hex(event['args']['msgHash']) for event in events]

    async def get_sent_message_from_tx(self, transaction_hash: str) -> Message | None:
        """
        Decode the message sent by a single source transaction.

        Args:
            transaction_hash: Source transaction hash

        Returns:
            The Message, or None if the transaction emitted no SentMessage

        Raises:
            ValueError: If the transaction is not found
            SenderMismatchError: If the event pair disagrees on the sender
            UnsupportedMessageVersionError: If the nonce version is not 0 or 1
        """
        receipt = await asyncio.to_thread(
            self.w3_source.eth.get_transaction_receipt, transaction_hash
        )
        if not receipt:
            raise ValueError(f"Transaction not found: {transaction_hash}")

        sent_events = self.source_messenger.events.SentMessage().process_receipt(
            receipt, errors=DISCARD
        )
        if not sent_events:
            return None

        extension_events = self.source_messenger.events.SentMessageExtension1().process_receipt(
            receipt, errors=DISCARD
        )

        event, extension = self._pair_extensions(sent_events[:1], extension_events)[0]
        self._check_sender(event, extension)

        timestamps = await self._fetch_timestamps({event['blockNumber']})
        return self._build_message(event, extension, timestamps.get(event['blockNumber'], 0))

    @staticmethod
    def _pair_extensions(
        sent_events: Iterable[Mapping[str, Any]],
        extension_events: Iterable[Mapping[str, Any]],
    ) -> list[tuple[Mapping[str, Any], Mapping[str, Any] | None]]:
        """
        Match each SentMessage with its SentMessageExtension1.

        The messenger emits the extension directly after the SentMessage, so the
        extension at the next log index in the same transaction is the match.
        Logs without that neighbour fall back to the first extension in the
        transaction.
        """
        by_position: dict[tuple[str, int], Mapping[str, Any]] = {}
        first_by_tx: dict[str, Mapping[str, Any]] = {}
        for extension in extension_events:
            tx_hash = _to_hex(extension['transactionHash'])
            first_by_tx.setdefault(tx_hash, extension)
            if (log_index := extension.get('logIndex')) is not None:
                by_position[(tx_hash, log_index)] = extension

        pairs = []
        for event in sent_events:
            tx_hash = _to_hex(event['transactionHash'])
            extension = None
            if (log_index := event.get('logIndex')) is not None:
                extension = by_position.get((tx_hash, log_index + 1))
            pairs.append((event, extension or first_by_tx.get(tx_hash)))
        return pairs

    @staticmethod
    def _check_sender(event: Mapping[str, Any], extension: Mapping[str, Any] | None) -> None:
        if extension is None:
            return

        sender: str = event['args']['sender']
        extension_sender: str = extension['args']['sender']
        if sender.lower() != extension_sender.lower():
            raise SenderMismatchError(
                _to_hex(event['transactionHash']), sender, extension_sender
            )

    async def _fetch_timestamps(self, block_numbers: set[int]) -> dict[int, int]:
        """Fetch block timestamps once per distinct block, concurrently."""
        ordered = sorted(block_numbers)
        blocks = await asyncio.gather(*(
            asyncio.to_thread(self.w3_source.eth.get_block, number) for number in ordered
        ))
        return {number: block['timestamp'] for number, block in zip(ordered, blocks)}

    @staticmethod
    def _build_message(
        event: Mapping[str, Any],
        extension: Mapping[str, Any] | None,
        timestamp: int,
    ) -> Message:
        args: Mapping[str, Any] = event['args']
        value: int = extension['args']['value'] if extension else 0
        payload = _to_bytes(args['message'])

        message_hash = hash_cross_domain_message(
            args['messageNonce'],
            args['sender'],
            args['target'],
            value,
            args['gasLimit'],
            payload,
        )

        return Message(
            message_hash=message_hash,
            sender=Web3.to_checksum_address(args['sender']),
            target=Web3.to_checksum_address(args['target']),
            payload=payload,
            nonce=args['messageNonce'],
            gas_limit=args['gasLimit'],
            value=value,
            block_number=event['blockNumber'],
            transaction_hash=_to_hex(event['transactionHash']),
            timestamp=timestamp,
        )
