"""Persisted resource state."""

from .manager import StateError, StateLockError, StateManager, StateNotFoundError
from .models import ResourceState

__all__ = [
    "ResourceState",
    "StateError",
    "StateLockError",
    "StateManager",
    "StateNotFoundError",
]
