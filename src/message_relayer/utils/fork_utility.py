import logging
import typing
from typing import Any

import httpx
from web3 import Web3
from web3.types import TxParams

logger = logging.getLogger(__name__)


class ForkRpcError(Exception):
    """Raised when the fork admin endpoint returns a JSON-RPC error."""


def to_rpc_quantity(value: int) -> str:
    """Hex-encode an integer without leading zeros, as JSON-RPC quantities require."""
    return hex(value)


class ForkUtility:
    """
    Admin JSON-RPC client for forked test networks.

    Provides the test-platform capabilities the relayer relies on in a drill
    environment: setting balances directly and sending transactions from an
    impersonated account that has no private key.
    """

    def __init__(self, admin_rpc_url: str, request_timeout: float = 30.0):
        self.url = admin_rpc_url
        self.request_timeout = request_timeout
        self._request_id = 0

    async def _rpc_post(self, method: str, params: list[typing.Any]) -> typing.Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        async with httpx.AsyncClient() as client:
            logger.debug(f"Posting {method} to admin RPC")
            response = await client.post(self.url, json=payload, timeout=self.request_timeout)
            response.raise_for_status()
            body = response.json()

        if error := body.get("error"):
            raise ForkRpcError(f"{method} failed: {error.get('message', error)}")
        return body.get("result")

    async def set_balance(self, addresses: str | list[str], balance: int) -> None:
        """Set the native balance of one or more accounts (wei)."""
        await self._rpc_post("tenderly_setBalance", [addresses, to_rpc_quantity(balance)])
        logger.info(f"Set balance of {addresses} to {Web3.from_wei(balance, 'ether')} ETH")

    async def add_balance(self, addresses: str | list[str], amount: int) -> None:
        """Add to the native balance of one or more accounts (wei)."""
        await self._rpc_post("tenderly_addBalance", [addresses, to_rpc_quantity(amount)])
        logger.info(f"Added {Web3.from_wei(amount, 'ether')} ETH to {addresses}")

    async def send_transaction_as(self, tx: TxParams, sender: str) -> str:
        """
        Send a transaction from an impersonated account.

        Args:
            tx: Transaction parameters (to, data, and optionally gas, gasPrice, value)
            sender: Account to send from

        Returns:
            Transaction hash
        """
        params: dict[str, Any] = {"from": sender, "to": tx["to"], "data": tx["data"]}
        for key in ("gas", "gasPrice", "value"):
            if (value := tx.get(key)) is not None:
                params[key] = to_rpc_quantity(int(value))

        tx_hash = await self._rpc_post("eth_sendTransaction", [params])
        logger.debug(f"Impersonated transaction from {sender}: {tx_hash}")
        return tx_hash
