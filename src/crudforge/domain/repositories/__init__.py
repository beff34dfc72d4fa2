"""Domain repository interfaces.

The abstraction is defined here with abc.ABC and @abstractmethod.
Concrete implementations live in crudforge/infrastructure/persistence/ and
are wired at the application boundary by the entity registry.
"""

from .base import StorageAdapter

__all__ = [
    "StorageAdapter",
]
