"""
Adapters layer - Storage and clock implementations of the service ports.
"""

from .clock import FixedClock, SystemClock
from .memory_repository import InMemoryRepository

__all__ = ["FixedClock", "InMemoryRepository", "SystemClock"]
