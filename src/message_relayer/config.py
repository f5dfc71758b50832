"""Configuration management for the Message Relayer.

This module provides type-safe configuration dataclasses with validation
for the relayer that indexes SentMessage events on a source chain and
relays them to a destination chain. Configuration is loaded from
environment variables with documented defaults.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

logger = logging.getLogger(__name__)

# OP Mainnet L1CrossDomainMessenger proxy
DEFAULT_SOURCE_MESSENGER = "0x25ace71c97b33cc4729cf772ae268934f7bab5fa"
# L2CrossDomainMessenger predeploy
DEFAULT_DESTINATION_MESSENGER = "0x4200000000000000000000000000000000000007"

L1_TO_L2_ALIAS_OFFSET = 0x1111000000000000000000000000000000001111


def apply_l1_to_l2_alias(l1_address: str) -> str:
    """Return the destination-chain alias of a source-chain contract address."""
    aliased = (int(l1_address, 16) + L1_TO_L2_ALIAS_OFFSET) % (1 << 160)
    return Web3.to_checksum_address(f"0x{aliased:040x}")


def _validate_rpc_url(rpc_url: str, env_name: str) -> None:
    if not rpc_url:
        raise ValueError(f"RPC URL is required ({env_name})")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid RPC URL scheme for {env_name}: {parsed.scheme}. "
            "Expected http or https"
        )


def _checksum(obj: object, attr: str, env_name: str) -> None:
    address = getattr(obj, attr)
    if not address:
        raise ValueError(f"Address is required ({env_name})")
    if not Web3.is_address(address):
        raise ValueError(f"Invalid address for {env_name}: {address}")

    checksummed = Web3.to_checksum_address(address)
    if checksummed != address:
        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(obj, attr, checksummed)


def _optional_int(env_name: str) -> int | None:
    raw = os.environ.get(env_name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{env_name} must be an integer, got {raw!r}") from None


def _int(env_name: str, default: int) -> int:
    value = _optional_int(env_name)
    return default if value is None else value


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the source chain where messages are sent.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the source chain
        messenger_address: Address of the source CrossDomainMessenger
        start_block: First block to index (None: start lookback_blocks behind head)
    """

    rpc_url: str
    messenger_address: str = DEFAULT_SOURCE_MESSENGER
    start_block: int | None = None

    def __post_init__(self) -> None:
        """Validate source chain configuration."""
        _validate_rpc_url(self.rpc_url, "SOURCE_RPC_URL")
        _checksum(self, "messenger_address", "SOURCE_MESSENGER_ADDRESS")
        if self.start_block is not None and self.start_block < 0:
            raise ValueError(f"Source start block must be non-negative, got {self.start_block}")


@dataclass(frozen=True, slots=True)
class DestinationChainConfig:
    """Configuration for the destination chain where messages are relayed.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the destination chain
        messenger_address: Address of the destination CrossDomainMessenger
        relay_sender_address: Privileged account allowed to call relayMessage
        admin_rpc_url: Endpoint accepting test-platform admin RPC methods
        start_block: First block to index (None: start lookback_blocks behind head)
    """

    rpc_url: str
    relay_sender_address: str
    messenger_address: str = DEFAULT_DESTINATION_MESSENGER
    admin_rpc_url: str = ""
    start_block: int | None = None

    def __post_init__(self) -> None:
        """Validate destination chain configuration."""
        _validate_rpc_url(self.rpc_url, "DESTINATION_RPC_URL")
        _checksum(self, "messenger_address", "DESTINATION_MESSENGER_ADDRESS")
        _checksum(self, "relay_sender_address", "RELAY_SENDER_ADDRESS")

        if not self.admin_rpc_url:
            object.__setattr__(self, 'admin_rpc_url', self.rpc_url)
        _validate_rpc_url(self.admin_rpc_url, "DESTINATION_ADMIN_RPC_URL")

        if self.start_block is not None and self.start_block < 0:
            raise ValueError(
                f"Destination start block must be non-negative, got {self.start_block}"
            )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for polling and RPC behaviour."""
    polling_interval: int = 15  # seconds between cycles
    lookback_blocks: int = 100  # blocks behind head when no start block is set
    request_timeout: int = 30  # per-RPC deadline in seconds
    receipt_timeout: int = 60  # seconds to wait for a relay receipt
    relay_gas: int = 5_000_000  # gas limit for relay transactions

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.lookback_blocks < 0:
            raise ValueError(f"Lookback blocks must be non-negative, got {self.lookback_blocks}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")

        if self.relay_gas <= 21_000:
            raise ValueError(f"Relay gas too low, got {self.relay_gas}")


@dataclass(frozen=True, slots=True)
class FundingConfig:
    """Relay sender balance top-up thresholds, in whole ether."""
    minimum_balance_eth: int = 100
    target_balance_eth: int = 1000

    def __post_init__(self) -> None:
        if self.minimum_balance_eth < 0:
            raise ValueError(
                f"Minimum messenger balance must be non-negative, got {self.minimum_balance_eth}"
            )
        if self.target_balance_eth < self.minimum_balance_eth:
            raise ValueError(
                "Target messenger balance must be at least the minimum balance "
                f"({self.target_balance_eth} < {self.minimum_balance_eth})"
            )

    @property
    def minimum_balance_wei(self) -> int:
        return Web3.to_wei(self.minimum_balance_eth, "ether")

    @property
    def target_balance_wei(self) -> int:
        return Web3.to_wei(self.target_balance_eth, "ether")


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Bind address for the health and messages endpoints."""
    host: str = "0.0.0.0"
    port: int = 7300

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid API port: {self.port}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the Message Relayer.

    Attributes:
        source_chain: Configuration for the source chain
        destination_chain: Configuration for the destination chain
        monitoring: Polling and RPC settings
        funding: Relay sender balance thresholds
        api: HTTP read surface settings
        local_mode: Sign relays with a private key instead of impersonating
        local_private_key: Private key for local mode
    """

    source_chain: SourceChainConfig
    destination_chain: DestinationChainConfig
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    funding: FundingConfig = field(default_factory=FundingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    local_mode: bool = False
    local_private_key: str | None = None

    def __post_init__(self) -> None:
        """Validate relayer configuration."""
        if self.local_mode and not self.local_private_key:
            raise ValueError(
                "Local mode requires LOCAL_PRIVATE_KEY environment variable"
            )

        if self.local_private_key:
            key = self.local_private_key.removeprefix('0x')
            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )
            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from environment variables.

        Args:
            local_mode: Sign relay transactions with LOCAL_PRIVATE_KEY

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        source_rpc_url = os.environ.get("SOURCE_RPC_URL", "")
        if not source_rpc_url:
            raise ValueError(
                "SOURCE_RPC_URL environment variable is required. "
                "This is the RPC endpoint of the chain messages are sent from."
            )

        destination_rpc_url = os.environ.get("DESTINATION_RPC_URL", "")
        if not destination_rpc_url:
            raise ValueError(
                "DESTINATION_RPC_URL environment variable is required. "
                "This is the RPC endpoint of the chain messages are relayed to."
            )

        source_messenger = os.environ.get("SOURCE_MESSENGER_ADDRESS", DEFAULT_SOURCE_MESSENGER)
        source_config = SourceChainConfig(
            rpc_url=source_rpc_url,
            messenger_address=source_messenger,
            start_block=_optional_int("SOURCE_START_BLOCK"),
        )

        relay_sender = os.environ.get("RELAY_SENDER_ADDRESS", "")
        if not relay_sender:
            relay_sender = apply_l1_to_l2_alias(source_config.messenger_address)

        destination_config = DestinationChainConfig(
            rpc_url=destination_rpc_url,
            relay_sender_address=relay_sender,
            messenger_address=os.environ.get(
                "DESTINATION_MESSENGER_ADDRESS", DEFAULT_DESTINATION_MESSENGER
            ),
            admin_rpc_url=os.environ.get("DESTINATION_ADMIN_RPC_URL", ""),
            start_block=_optional_int("DESTINATION_START_BLOCK"),
        )

        monitoring_config = MonitoringConfig(
            polling_interval=_int("POLLING_INTERVAL", 15),
            lookback_blocks=_int("LOOKBACK_BLOCKS", 100),
            request_timeout=_int("REQUEST_TIMEOUT", 30),
            receipt_timeout=_int("RECEIPT_TIMEOUT", 60),
            relay_gas=_int("RELAY_GAS", 5_000_000),
        )

        funding_config = FundingConfig(
            minimum_balance_eth=_int("MINIMUM_MESSENGER_BALANCE", 100),
            target_balance_eth=_int("TARGET_MESSENGER_BALANCE", 1000),
        )

        api_config = ApiConfig(
            host=os.environ.get("API_HOST", "0.0.0.0"),
            port=_int("API_PORT", 7300),
        )

        local_private_key = os.environ.get("LOCAL_PRIVATE_KEY") if local_mode else None

        return cls(
            source_chain=source_config,
            destination_chain=destination_config,
            monitoring=monitoring_config,
            funding=funding_config,
            api=api_config,
            local_mode=local_mode,
            local_private_key=local_private_key,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (hiding sensitive data)."""
        logger.info("=" * 60)
        logger.info("Message Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        logger.info(f"  RPC URL: {self.source_chain.rpc_url}")
        logger.info(f"  Messenger: {self.source_chain.messenger_address}")
        logger.info(f"  Start Block: {self.source_chain.start_block}")

        logger.info("Destination Chain:")
        logger.info(f"  RPC URL: {self.destination_chain.rpc_url}")
        logger.info(f"  Messenger: {self.destination_chain.messenger_address}")
        logger.info(f"  Relay Sender: {self.destination_chain.relay_sender_address}")
        logger.info(f"  Start Block: {self.destination_chain.start_block}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Receipt Timeout: {self.monitoring.receipt_timeout} seconds")

        logger.info("Funding:")
        logger.info(f"  Minimum Balance: {self.funding.minimum_balance_eth} ETH")
        logger.info(f"  Target Balance: {self.funding.target_balance_eth} ETH")

        logger.info(f"API: {self.api.host}:{self.api.port}")
        logger.info(f"Mode: {'LOCAL (signing key)' if self.local_mode else 'FORK (impersonation)'}")
        if self.local_mode:
            logger.info("  Local Key: [CONFIGURED]")

        logger.info("=" * 60)
