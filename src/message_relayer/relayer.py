"""
Message Relayer implementation.

This module contains the relayer service that drives the poll cycle:
index SentMessage events on the source chain, pick up RelayedMessage
confirmations on the destination chain, relay whatever is still pending,
publish metrics, then sleep.
"""

import asyncio
import logging

from .api import create_app, start_api
from .config import RelayerConfig
from .event_indexer import EventIndexer, SenderMismatchError
from .message_store import MessageStore
from .metrics import RelayerMetrics
from .models import MessageStatus
from .relay_executor import RelayExecutor
from .utils.block_cursor import BlockCursor
from .utils.contract_utility import ContractUtility
from .utils.fork_utility import ForkUtility

logger = logging.getLogger(__name__)

SOURCE = "source"
DESTINATION = "destination"


class CycleAborted(Exception):
    """Internal signal that the current cycle stopped early."""


class MessageRelayer:
    """
    Relayer service that owns the message store and block cursors.

    Only this class mutates the store and cursors; the indexer and executor
    are called from its single loop and never hold a reference to them.
    One cycle always completes before the next one starts.
    """

    def __init__(
        self,
        config: RelayerConfig,
        indexer: EventIndexer,
        executor: RelayExecutor,
        store: MessageStore | None = None,
        cursor: BlockCursor | None = None,
        metrics: RelayerMetrics | None = None,
    ):
        """
        Initialize the Message Relayer.

        Args:
            config: Relayer configuration
            indexer: Event indexer for both chains
            executor: Relay executor for the destination chain
            store: Message ledger (a new one by default)
            cursor: Block cursors (initialized on startup by default)
            metrics: Metrics shared with the executor
        """
        self.config = config
        self.indexer = indexer
        self.executor = executor
        self.store = store if store is not None else MessageStore()
        self.cursor = cursor if cursor is not None else BlockCursor()
        self.metrics = metrics if metrics is not None else executor.metrics
        self.running = False

        self.shutdown_event = asyncio.Event()

    @classmethod
    def from_config(cls, config: RelayerConfig) -> "MessageRelayer":
        """Wire chain connections, indexer and executor from configuration."""
        timeout = config.monitoring.request_timeout

        source_util = ContractUtility(config.source_chain.rpc_url, timeout)
        destination_util = ContractUtility(
            config.destination_chain.rpc_url,
            timeout,
            secret=config.local_private_key if config.local_mode else "",
        )

        source_messenger = source_util.get_contract(
            "L1CrossDomainMessenger", config.source_chain.messenger_address
        )
        destination_messenger = destination_util.get_contract(
            "L2CrossDomainMessenger", config.destination_chain.messenger_address
        )

        metrics = RelayerMetrics()
        indexer = EventIndexer(
            w3_source=source_util.w3,
            w3_destination=destination_util.w3,
            source_messenger=source_messenger,
            destination_messenger=destination_messenger,
            metrics=metrics,
        )

        if config.local_mode:
            fork_util = None
            relay_sender = destination_util.account.address
        else:
            fork_util = ForkUtility(config.destination_chain.admin_rpc_url, timeout)
            relay_sender = config.destination_chain.relay_sender_address

        executor = RelayExecutor(
            w3=destination_util.w3,
            messenger=destination_messenger,
            relay_sender=relay_sender,
            fork_util=fork_util,
            metrics=metrics,
            funding=config.funding,
            relay_gas=config.monitoring.relay_gas,
            receipt_timeout=config.monitoring.receipt_timeout,
        )

        logger.info(f"Initialized relayer in {'local' if config.local_mode else 'fork'} mode")
        return cls(config, indexer, executor, metrics=metrics)

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "MessageRelayer":
        """
        Create a MessageRelayer from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env(local_mode=local_mode)
        config.log_config()
        return cls.from_config(config)

    async def init_cursors(self) -> None:
        """
        Set each chain's cursor to the block before its first block to scan.

        Without a configured start block, scanning starts lookback_blocks behind
        the current head.
        """
        lookback = self.config.monitoring.lookback_blocks
        starts = {
            SOURCE: (self.config.source_chain.start_block, self.indexer.latest_source_block),
            DESTINATION: (
                self.config.destination_chain.start_block,
                self.indexer.latest_destination_block,
            ),
        }

        for chain, (start_block, latest_block) in starts.items():
            if chain in self.cursor.snapshot():
                continue
            if start_block is None:
                start_block = max(0, await latest_block() - lookback)
            self.cursor.set_initial(chain, start_block - 1)
            logger.info(f"Indexing {chain} chain from block {start_block}")

    async def _wait_for_cursors(self) -> None:
        while not self.shutdown_event.is_set():
            try:
                await self.init_cursors()
                return
            except Exception as e:
                self.metrics.record_connection_failure("startup", "block_number")
                logger.error(f"Failed to read chain heads on startup: {e}")
                await self._sleep(self.config.monitoring.polling_interval)

    async def run_cycle(self) -> bool:
        """
        Run one full cycle: fund, index, confirm, relay, publish.

        Returns:
            True if the cycle ran to completion, False if it was aborted
        """
        try:
            await self._ensure_balance()
            latest_source, latest_destination = await self._read_heads()

            self._check_shutdown()
            await self._index_source(latest_source)

            self._check_shutdown()
            await self._index_destination(latest_destination)

            self._check_shutdown()
            await self._relay_pending()

        except CycleAborted as e:
            self.metrics.cycles_aborted += 1
            logger.warning(f"Cycle aborted: {e}")
            return False

        finally:
            self.metrics.pending_messages = self.store.count(MessageStatus.PENDING)

        self.metrics.cycles_completed += 1
        return True

    def _check_shutdown(self) -> None:
        if self.shutdown_event.is_set():
            raise CycleAborted("shutdown requested")

    async def _ensure_balance(self) -> None:
        try:
            await self.executor.ensure_messenger_balance()
        except Exception as e:
            self.metrics.record_connection_failure(DESTINATION, "funding")
            logger.warning(f"Could not check relay sender balance: {e}")

    async def _read_heads(self) -> tuple[int, int]:
        """Read both chain heads concurrently."""
        results = await asyncio.gather(
            self.indexer.latest_source_block(),
            self.indexer.latest_destination_block(),
            return_exceptions=True,
        )

        failed = False
        for chain, result in zip((SOURCE, DESTINATION), results):
            if isinstance(result, Exception):
                failed = True
                self.metrics.record_connection_failure(chain, "block_number")
                logger.error(f"Failed to read {chain} block number: {result}")

        if failed:
            raise CycleAborted("could not read chain heads")

        latest_source, latest_destination = results
        return latest_source, latest_destination

    async def _index_source(self, latest_block: int) -> None:
        block_range = self.cursor.next_range(SOURCE, latest_block)
        if block_range is None:
            logger.debug("No new source blocks")
            return

        from_block, to_block = block_range
        logger.info(f"Scanning for new messages from source block {from_block} to {to_block}")

        try:
            messages = await self.indexer.scan_source_sent(from_block, to_block)
        except SenderMismatchError as e:
            self.metrics.integrity_failures += 1
            logger.error(f"Data integrity failure while indexing: {e}")
            raise CycleAborted("sender mismatch in source events") from e
        except Exception as e:
            self.metrics.record_connection_failure(SOURCE, "indexing")
            logger.error(f"Failed to scan source blocks {from_block}-{to_block}: {e}")
            raise CycleAborted("source scan failed") from e

        for message in messages:
            if self.store.upsert_if_absent(message):
                self.metrics.messages_sent += 1
                logger.info(f"Added message {message.message_hash} to queue")

        self.cursor.advance(SOURCE, to_block)
        self.metrics.last_scanned_source_block = to_block

    async def _index_destination(self, latest_block: int) -> None:
        block_range = self.cursor.next_range(DESTINATION, latest_block)
        if block_range is None:
            logger.debug("No new destination blocks")
            return

        from_block, to_block = block_range
        logger.info(f"Scanning for relayed messages from destination block {from_block} to {to_block}")

        try:
            relayed_hashes = await self.indexer.scan_destination_confirmed(from_block, to_block)
        except Exception as e:
            self.metrics.record_connection_failure(DESTINATION, "indexing")
            logger.error(f"Failed to scan destination blocks {from_block}-{to_block}: {e}")
            raise CycleAborted("destination scan failed") from e

        for message_hash in relayed_hashes:
            if self.store.mark_relayed(message_hash):
                self.metrics.messages_relayed += 1
                logger.info(f"Marked message {message_hash} as relayed")
            elif message_hash not in self.store:
                self.metrics.unknown_confirmations += 1

        self.cursor.advance(DESTINATION, to_block)
        self.metrics.last_scanned_destination_block = to_block

    async def _relay_pending(self) -> None:
        """Relay pending messages one at a time; they share one sender account."""
        for message in self.store.pending():
            self._check_shutdown()
            if await self.executor.relay(message) and self.store.mark_relayed(message.message_hash):
                self.metrics.messages_relayed += 1

    async def _sleep(self, seconds: float) -> None:
        """Sleep until the interval elapses or shutdown is requested."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        """Main loop for the relayer service."""
        self.running = True
        logger.info("Message Relayer starting...")
        logger.info(f"Polling interval: {self.config.monitoring.polling_interval}s")

        app = create_app(self.store, self.metrics)
        runner = await start_api(app, self.config.api.host, self.config.api.port)

        try:
            await self._wait_for_cursors()

            while not self.shutdown_event.is_set():
                await self.run_cycle()
                self.metrics.log_metrics()
                await self._sleep(self.config.monitoring.polling_interval)

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            await runner.cleanup()
            logger.info("Message Relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
