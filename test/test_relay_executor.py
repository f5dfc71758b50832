#!/usr/bin/env python3
"""Unit tests for the RelayExecutor module."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes
from web3 import Web3

from conftest import RELAY_SENDER, make_message

from message_relayer.config import DEFAULT_DESTINATION_MESSENGER, FundingConfig
from message_relayer.hashing import encode_cross_domain_message
from message_relayer.metrics import RelayerMetrics
from message_relayer.relay_executor import RelayExecutor
from message_relayer.utils.contract_utility import ContractUtility

TX_HASH = "0x" + "11" * 32


@pytest.fixture
def mock_w3():
    """Create a mock destination Web3 instance."""
    mock = MagicMock()
    mock.eth.wait_for_transaction_receipt = MagicMock(
        return_value={'status': 1, 'blockNumber': 77}
    )
    mock.eth.get_balance = MagicMock(return_value=Web3.to_wei(500, "ether"))
    return mock


@pytest.fixture
def mock_messenger():
    mock = MagicMock()
    mock.address = DEFAULT_DESTINATION_MESSENGER
    mock.encode_abi = MagicMock(return_value="0xd764ad0b")
    return mock


@pytest.fixture
def mock_fork_util():
    """Create a mock ForkUtility instance."""
    mock = AsyncMock()
    mock.send_transaction_as = AsyncMock(return_value=TX_HASH)
    mock.set_balance = AsyncMock()
    mock.add_balance = AsyncMock()
    return mock


@pytest.fixture
def metrics():
    return RelayerMetrics()


@pytest.fixture
def executor(mock_w3, mock_messenger, mock_fork_util, metrics):
    return RelayExecutor(
        w3=mock_w3,
        messenger=mock_messenger,
        relay_sender=RELAY_SENDER,
        fork_util=mock_fork_util,
        metrics=metrics,
        funding=FundingConfig(),
        receipt_timeout=5,
    )


class TestRelayCalldata:
    """Tests for relayMessage calldata construction."""

    def test_calldata_matches_identity_encoding(self, metrics):
        """The relay calldata is exactly what the message hash is computed over."""
        messenger = Web3().eth.contract(
            address=DEFAULT_DESTINATION_MESSENGER,
            abi=ContractUtility.get_contract_abi("L2CrossDomainMessenger"),
        )
        relay = RelayExecutor(
            w3=MagicMock(), messenger=messenger, relay_sender=RELAY_SENDER,
            fork_util=None, metrics=metrics, funding=FundingConfig(),
        )
        nonce = (1 << 240) | 4
        message = make_message(nonce=nonce, value=7)

        calldata = relay.build_relay_calldata(message)

        expected = encode_cross_domain_message(
            nonce, message.sender, message.target, 7, message.gas_limit, message.payload
        )
        assert HexBytes(calldata) == HexBytes(expected)

    def test_legacy_nonce_is_relayed_as_version_one(self, executor, mock_messenger):
        executor.build_relay_calldata(make_message(nonce=1))

        args = mock_messenger.encode_abi.call_args.kwargs["args"]
        assert args[0] == (1 << 240) | 1


class TestRelayForkMode:
    """Tests for relaying through an impersonated relay sender."""

    @pytest.mark.asyncio
    async def test_successful_relay(self, executor, mock_fork_util, mock_w3, metrics):
        message = make_message()

        assert await executor.relay(message) is True

        tx, sender = mock_fork_util.send_transaction_as.call_args.args
        assert sender == RELAY_SENDER
        assert tx['to'] == DEFAULT_DESTINATION_MESSENGER
        assert tx['data'] == "0xd764ad0b"
        assert tx['value'] == 0
        assert tx['gas'] == 5_000_000
        mock_w3.eth.wait_for_transaction_receipt.assert_called_once_with(TX_HASH, timeout=5)
        assert metrics.relay_failures == 0

    @pytest.mark.asyncio
    async def test_reverted_relay_returns_false(self, executor, mock_w3, metrics):
        mock_w3.eth.wait_for_transaction_receipt.return_value = {'status': 0, 'blockNumber': 77}

        assert await executor.relay(make_message()) is False
        assert metrics.relay_failures == 1

    @pytest.mark.asyncio
    async def test_submission_error_is_contained(self, executor, mock_fork_util, metrics):
        mock_fork_util.send_transaction_as.side_effect = ConnectionError("rpc down")

        assert await executor.relay(make_message()) is False
        assert metrics.relay_failures == 1

    @pytest.mark.asyncio
    async def test_value_message_funds_sender_when_short(self, executor, mock_fork_util, mock_w3):
        mock_w3.eth.get_balance.return_value = 0
        message = make_message(value=10**18)

        assert await executor.relay(message) is True

        # Value plus the minimum balance, so gas is still covered
        mock_fork_util.add_balance.assert_awaited_once_with(
            RELAY_SENDER, 10**18 + Web3.to_wei(100, "ether")
        )
        mock_fork_util.set_balance.assert_not_awaited()
        tx, _ = mock_fork_util.send_transaction_as.call_args.args
        assert tx['value'] == 10**18

    @pytest.mark.asyncio
    async def test_value_message_tops_up_only_the_shortfall(self, executor, mock_fork_util, mock_w3):
        mock_w3.eth.get_balance.return_value = Web3.to_wei(100, "ether")

        assert await executor.relay(make_message(value=Web3.to_wei(5, "ether"))) is True

        mock_fork_util.add_balance.assert_awaited_once_with(RELAY_SENDER, Web3.to_wei(5, "ether"))

    @pytest.mark.asyncio
    async def test_value_message_skips_funding_when_balance_suffices(self, executor, mock_fork_util):
        assert await executor.relay(make_message(value=10**18)) is True
        mock_fork_util.add_balance.assert_not_awaited()
        mock_fork_util.set_balance.assert_not_awaited()


class TestRelaySigningMode:
    """Tests for relaying with a local signing key."""

    @pytest.mark.asyncio
    async def test_sends_from_signing_account(self, mock_w3, mock_messenger, metrics):
        mock_w3.eth.send_transaction = MagicMock(return_value=HexBytes(TX_HASH))
        executor = RelayExecutor(
            w3=mock_w3, messenger=mock_messenger, relay_sender=RELAY_SENDER,
            fork_util=None, metrics=metrics, funding=FundingConfig(),
        )

        assert await executor.relay(make_message()) is True

        sent_tx = mock_w3.eth.send_transaction.call_args.args[0]
        assert sent_tx['from'] == RELAY_SENDER
        assert sent_tx['to'] == DEFAULT_DESTINATION_MESSENGER


class TestEnsureMessengerBalance:
    """Tests for relay sender balance top-ups."""

    @pytest.mark.asyncio
    async def test_tops_up_below_minimum(self, executor, mock_w3, mock_fork_util, metrics):
        mock_w3.eth.get_balance.return_value = Web3.to_wei(1, "ether")

        balance = await executor.ensure_messenger_balance()

        target = Web3.to_wei(1000, "ether")
        mock_fork_util.set_balance.assert_awaited_once_with(RELAY_SENDER, target)
        assert balance == target
        assert metrics.messenger_balance == target

    @pytest.mark.asyncio
    async def test_no_top_up_above_minimum(self, executor, mock_fork_util, metrics):
        balance = await executor.ensure_messenger_balance()

        mock_fork_util.set_balance.assert_not_awaited()
        assert balance == Web3.to_wei(500, "ether")
        assert metrics.messenger_balance == balance

    @pytest.mark.asyncio
    async def test_signing_mode_never_tops_up(self, mock_w3, mock_messenger, metrics):
        mock_w3.eth.get_balance.return_value = 0
        executor = RelayExecutor(
            w3=mock_w3, messenger=mock_messenger, relay_sender=RELAY_SENDER,
            fork_util=None, metrics=metrics, funding=FundingConfig(),
        )

        assert await executor.ensure_messenger_balance() == 0
