import json
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder


class ContractUtility:
    """
    Utility for chain connections, contract instances and ABI loading.

    Can be used in two modes:
    1. Read/impersonation mode: no secret, plain HTTP provider
    2. Signing mode: a private key is attached as the default sending account
    """

    CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"

    def __init__(self, rpc_url: str, request_timeout: int = 30, secret: str = ""):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: HTTP RPC endpoint of the chain
            request_timeout: Per-request deadline in seconds
            secret: Private key for signed transactions (optional)
        """
        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.account: LocalAccount | None = None
        self.w3 = self.setup_web3(secret)

    def setup_web3(self, secret: str = "") -> Web3:
        provider = Web3.HTTPProvider(
            self.rpc_url,
            request_kwargs={'timeout': self.request_timeout}
        )
        w3 = Web3(provider)

        if secret:
            self.account = Account.from_key(secret)
            w3.middleware_onion.inject(
                SignAndSendRawMiddlewareBuilder.build(self.account), layer=0
            )
            w3.eth.default_account = self.account.address
        return w3

    def get_contract(self, contract_name: str, address: str) -> Contract:
        """Create a contract instance bound to this utility's connection."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )

    @classmethod
    def get_contract_abi(cls, contract_name: str) -> list:
        """Fetches ABI of the given contract from the bundled contracts folder"""
        contract_path = cls.CONTRACTS_DIR / f"{contract_name}.json"

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]
