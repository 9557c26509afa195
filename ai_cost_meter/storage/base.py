"""
Key-value store interface used by the ledger and the result cache.

Any backend offering these primitives with at-least-once durability is
enough. Increments must be atomic at the store so concurrent writers in
other processes never lose updates.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional


class KeyValueStore(ABC):
    """Hash-and-string key-value store with expiry."""

    @abstractmethod
    def increment_field(self, key: str, field: str, amount: int) -> int:
        """Atomically add an integer to a hash field, creating it at 0."""
        pass

    @abstractmethod
    def increment_float_field(self, key: str, field: str, amount: float) -> float:
        """Atomically add a float to a hash field, creating it at 0."""
        pass

    @abstractmethod
    def get_all_fields(self, key: str) -> Dict[str, str]:
        """Return every field of a hash as strings; empty if the key is absent."""
        pass

    @abstractmethod
    def set_expiry(self, key: str, seconds: int) -> None:
        """Expire a key after the given number of seconds."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return a string value, or None if absent or expired."""
        pass

    @abstractmethod
    def set_with_expiry(self, key: str, value: str, seconds: int) -> None:
        """Store a string value that expires after the given number of seconds."""
        pass

    def purge_expired(self) -> int:
        """Remove expired keys that were never touched again.

        Backends that expire keys natively keep the default.

        Returns:
            Number of keys removed
        """
        return 0
