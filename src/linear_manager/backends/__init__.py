"""Backend implementations for linear manager."""

from linear_manager.backends.linear import LinearBackend
from linear_manager.backends.memory import MemoryBackend

__all__ = ["LinearBackend", "MemoryBackend"]
