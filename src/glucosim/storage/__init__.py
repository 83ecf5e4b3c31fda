from .base import ReadingStore
from .memory import InMemoryStore

__all__ = ["ReadingStore", "InMemoryStore"]
