"""
Relayer metrics.

A fixed set of counters and gauges created once at startup and updated by
the relayer loop. Exposed read-only through the HTTP surface and the logs.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelayerMetrics:
    """Counters and gauges for the relayer loop."""
    # Counter keyed by (chain, section), e.g. ("source", "indexing")
    node_connection_failures: Counter = field(default_factory=Counter)
    messages_sent: int = 0
    messages_relayed: int = 0
    relay_failures: int = 0
    integrity_failures: int = 0
    unsupported_messages: int = 0
    unknown_confirmations: int = 0
    cycles_completed: int = 0
    cycles_aborted: int = 0
    # Gauges
    pending_messages: int = 0
    messenger_balance: int = 0
    last_scanned_source_block: int = -1
    last_scanned_destination_block: int = -1

    def record_connection_failure(self, chain: str, section: str) -> None:
        self.node_connection_failures[(chain, section)] += 1

    def snapshot(self) -> dict[str, Any]:
        """
        Get current metric values.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "node_connection_failures": {
                f"{chain}:{section}": count
                for (chain, section), count in sorted(self.node_connection_failures.items())
            },
            "messages_sent": self.messages_sent,
            "messages_relayed": self.messages_relayed,
            "pending_messages": self.pending_messages,
            "relay_failures": self.relay_failures,
            "integrity_failures": self.integrity_failures,
            "unsupported_messages": self.unsupported_messages,
            "unknown_confirmations": self.unknown_confirmations,
            "messenger_balance": str(self.messenger_balance),
            "cycles_completed": self.cycles_completed,
            "cycles_aborted": self.cycles_aborted,
            "last_scanned_source_block": self.last_scanned_source_block,
            "last_scanned_destination_block": self.last_scanned_destination_block,
        }

    def log_metrics(self) -> None:
        """Log current metrics."""
        logger.info(
            f"Metrics: {self.messages_sent} sent, {self.messages_relayed} relayed, "
            f"{self.pending_messages} pending, {self.relay_failures} relay failures, "
            f"{sum(self.node_connection_failures.values())} node failures"
        )
