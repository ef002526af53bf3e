"""Message bus and event ingestion."""

from .bus import InMemoryMessageBus, Message, MessageBus, MessageHandler
from .consumer import EventIngestor

__all__ = [
    "InMemoryMessageBus",
    "Message",
    "MessageBus",
    "MessageHandler",
    "EventIngestor",
]
