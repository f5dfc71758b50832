"""Relay submission for the Message Relayer.

This module submits relayMessage transactions to the destination messenger,
either from an impersonated relay sender on a forked network (default) or
from a local signing key.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.types import TxParams, TxReceipt, Wei

from .hashing import decode_versioned_nonce, encode_versioned_nonce
from .models import Message

if TYPE_CHECKING:
    from .config import FundingConfig
    from .metrics import RelayerMetrics
    from .utils.fork_utility import ForkUtility

logger = logging.getLogger(__name__)

# Relays are always submitted with the current message encoding
RELAY_MESSAGE_VERSION = 1


class RelayError(Exception):
    """Raised when a relay transaction is mined but reverted."""


class RelayExecutor:
    """Handles relayMessage submission to the destination messenger."""

    def __init__(
        self,
        w3: Web3,
        messenger: Contract,
        relay_sender: str,
        fork_util: "ForkUtility | None",
        metrics: "RelayerMetrics",
        funding: "FundingConfig",
        relay_gas: int = 5_000_000,
        receipt_timeout: int = 60,
    ) -> None:
        """
        Initialize the RelayExecutor.

        Args:
            w3: Web3 connection to the destination chain
            messenger: Destination CrossDomainMessenger contract
            relay_sender: Account that submits relays
            fork_util: Admin RPC client for impersonation (None for signing mode)
            metrics: Shared relayer metrics
            funding: Relay sender balance thresholds
            relay_gas: Gas limit for relay transactions
            receipt_timeout: Seconds to wait for a receipt
        """
        self.w3 = w3
        self.messenger = messenger
        self.relay_sender = Web3.to_checksum_address(relay_sender)
        self.fork_util = fork_util
        self.metrics = metrics
        self.funding = funding
        self.relay_gas = relay_gas
        self.receipt_timeout = receipt_timeout

        mode = "fork impersonation" if fork_util else "local signing"
        logger.info(f"RelayExecutor initialized in {mode} mode")
        logger.info(f"  Messenger: {messenger.address}")
        logger.info(f"  Relay Sender: {self.relay_sender}")

    def build_relay_calldata(self, message: Message) -> str:
        """ABI-encode the relayMessage call for a message."""
        nonce, _ = decode_versioned_nonce(message.nonce)
        versioned_nonce = encode_versioned_nonce(nonce, RELAY_MESSAGE_VERSION)

        return self.messenger.encode_abi(
            "relayMessage",
            args=[
                versioned_nonce,
                message.sender,
                message.target,
                message.value,
                message.gas_limit,
                message.payload,
            ],
        )

    async def relay(self, message: Message) -> bool:
        """
        Relay a pending message to the destination chain.

        Failures are logged and reported through the return value; they never
        propagate, so one failing message cannot block the rest of a cycle.

        Args:
            message: Message to relay

        Returns:
            True if the relay transaction was mined successfully
        """
        try:
            logger.info(f"Attempting to relay message {message.message_hash}")
            tx: TxParams = {
                'to': self.messenger.address,
                'data': self.build_relay_calldata(message),
                'gas': self.relay_gas,
                'value': Wei(message.value),
            }

            match self.fork_util:
                case None:
                    tx_hash = await self._send_signed(tx)
                case fork_util:
                    if message.value:
                        await self._fund_relay_sender(message.value)
                    tx_hash = await fork_util.send_transaction_as(tx, self.relay_sender)

            receipt: TxReceipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.receipt_timeout
            )

            if (status := receipt.get('status', 0)) != 1:
                tx_hex = Web3.to_hex(HexBytes(tx_hash))
                raise RelayError(f"Relay transaction {tx_hex} reverted (status={status})")

            logger.info(
                f"✓ Message {message.message_hash[:10]}... relayed in block {receipt['blockNumber']}"
            )
            return True

        except Exception as e:
            self.metrics.relay_failures += 1
            logger.error(f"✗ Failed to relay message {message.message_hash}: {e}")
            return False

    async def _send_signed(self, tx: TxParams) -> HexBytes:
        signed_tx: dict[str, Any] = {**tx, 'from': self.relay_sender}
        return await asyncio.to_thread(self.w3.eth.send_transaction, signed_tx)

    async def _fund_relay_sender(self, value: int) -> None:
        """Make sure the impersonated sender can attach the message value and still pay gas."""
        required = value + self.funding.minimum_balance_wei
        balance = await asyncio.to_thread(self.w3.eth.get_balance, self.relay_sender)
        if balance < required and self.fork_util:
            await self.fork_util.add_balance(self.relay_sender, required - balance)

    async def ensure_messenger_balance(self) -> int:
        """
        Publish the relay sender balance and top it up when it runs low.

        Top-ups only happen in fork mode; a signing key must be funded externally.

        Returns:
            Relay sender balance in wei after any top-up
        """
        balance = await asyncio.to_thread(self.w3.eth.get_balance, self.relay_sender)
        logger.debug(f"Relay sender balance: {Web3.from_wei(balance, 'ether')} ETH")

        if balance < self.funding.minimum_balance_wei and self.fork_util:
            logger.info("Refilling relay sender balance")
            await self.fork_util.set_balance(self.relay_sender, self.funding.target_balance_wei)
            balance = self.funding.target_balance_wei

        self.metrics.messenger_balance = balance
        return balance
