"""
Per-chain scan watermarks for the Message Relayer.

A cursor holds the last block that has been fully scanned on a chain. It
only moves forward and lives in memory for the lifetime of the process.
"""

import logging

logger = logging.getLogger(__name__)


class CursorRegressionError(ValueError):
    """Raised when a cursor would move backwards."""


class BlockCursor:
    """
    Tracks the last scanned block for each chain.

    ``advance`` raises ``CursorRegressionError`` if the new block is lower
    than the current one; advancing to the same block is a no-op.
    """

    def __init__(self, initial: dict[str, int] | None = None):
        """
        Initialize the cursor.

        Args:
            initial: Mapping of chain name to last scanned block
        """
        self._blocks: dict[str, int] = dict(initial or {})

    def get(self, chain: str) -> int:
        """
        Get the last scanned block for a chain.

        Raises:
            KeyError: If the chain has no cursor
        """
        return self._blocks[chain]

    def set_initial(self, chain: str, block_number: int) -> None:
        """Set the starting point for a chain that has no cursor yet."""
        if chain in self._blocks:
            raise ValueError(f"Cursor for {chain} is already initialized")
        self._blocks[chain] = block_number

    def advance(self, chain: str, block_number: int) -> None:
        """
        Move a chain's cursor forward.

        Args:
            chain: Chain name
            block_number: Newly scanned chain head

        Raises:
            CursorRegressionError: If block_number is below the current cursor
        """
        current = self._blocks[chain]
        if block_number < current:
            raise CursorRegressionError(
                f"Refusing to move {chain} cursor back from {current} to {block_number}"
            )
        self._blocks[chain] = block_number
        logger.debug(f"{chain} cursor advanced to block {block_number}")

    def next_range(self, chain: str, latest_block: int) -> tuple[int, int] | None:
        """
        Compute the next block range to scan.

        Returns:
            (from_block, to_block) inclusive, or None if there are no new blocks
        """
        current = self._blocks[chain]
        if latest_block <= current:
            return None
        return current + 1, latest_block

    def snapshot(self) -> dict[str, int]:
        return dict(self._blocks)
