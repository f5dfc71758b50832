"""
Message Relayer package.

Indexes cross-domain messages sent on a source chain, tracks their
confirmations on a destination chain, and relays the ones still pending.
"""

from .config import RelayerConfig
from .event_indexer import EventIndexer
from .message_store import MessageStore
from .models import Message, MessageStatus
from .relay_executor import RelayExecutor
from .relayer import MessageRelayer

__all__ = [
    "RelayerConfig",
    "MessageRelayer",
    "EventIndexer",
    "MessageStore",
    "RelayExecutor",
    "Message",
    "MessageStatus",
]
__version__ = "0.1.0"
