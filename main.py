#!/usr/bin/env python3
"""Entry point for the cross-domain Message Relayer service.

Loads configuration from the environment (and an optional .env file),
then runs the index -> confirm -> relay loop until interrupted.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


logger = logging.getLogger(__name__)

from message_relayer.relayer import MessageRelayer


async def main() -> None:
    """Main entry point for the Message Relayer."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Message Relayer - index and relay cross-domain messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SOURCE_RPC_URL                 - RPC endpoint for the source chain
  DESTINATION_RPC_URL            - RPC endpoint for the destination chain
  DESTINATION_ADMIN_RPC_URL      - Admin RPC for balance/impersonation (default: DESTINATION_RPC_URL)
  SOURCE_MESSENGER_ADDRESS       - Source CrossDomainMessenger
  DESTINATION_MESSENGER_ADDRESS  - Destination CrossDomainMessenger
  SOURCE_START_BLOCK             - First source block to index
  DESTINATION_START_BLOCK        - First destination block to index
  POLLING_INTERVAL               - Seconds between cycles (default: 15)
  LOCAL_PRIVATE_KEY              - Signing key (required with --local)
  API_PORT                       - HTTP port for /healthz and /messages (default: 7300)
  LOG_LEVEL                      - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Sign relays with LOCAL_PRIVATE_KEY instead of impersonating the relay sender"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info(f"Starting in {'LOCAL' if args.local else 'FORK'} mode")

    try:
        relayer = MessageRelayer.from_env(local_mode=args.local)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Required environment variables:")
        logger.error("  - SOURCE_RPC_URL: Source chain RPC endpoint")
        logger.error("  - DESTINATION_RPC_URL: Destination chain RPC endpoint")
        if args.local:
            logger.error("  - LOCAL_PRIVATE_KEY: Private key for signing relay transactions")
        sys.exit(1)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, relayer.stop)

    try:
        await relayer.run()
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
