"""In-memory storage."""

from .memory_store import InMemoryRepository

__all__ = [
    "InMemoryRepository",
]
