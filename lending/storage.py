"""
storage.py - Key-value storage abstraction for ledger records

The LendingLedger persists every record through the KeyValueStore protocol,
so the accounting logic does not depend on any particular backend.

Keys are tuples: a fixed tag followed by the stable identifier of the record
(a user address, an asset identifier, or nothing for singletons). Use the
key helper functions rather than building tuples by hand.
"""

from __future__ import annotations
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple, runtime_checkable


StorageKey = Tuple[str, ...]

# Key tags
POSITION = "position"
TOTALS = "totals"
RISK_CONFIG = "risk_config"
INTEREST_RATE_CONFIG = "interest_rate_config"
RESERVE_FACTOR = "reserve_factor"
TREASURY = "treasury"
ASSET_PARAMS = "asset_params"
ACTIVITY = "activity"
FLASH_LOAN_CONFIG = "flash_loan_config"
USERS = "users"
ADMIN = "admin"


def position_key(user: str) -> StorageKey:
    return (POSITION, user)


def totals_key(asset: str) -> StorageKey:
    return (TOTALS, asset)


def reserve_factor_key(asset: str) -> StorageKey:
    return (RESERVE_FACTOR, asset)


def asset_params_key(asset: str) -> StorageKey:
    return (ASSET_PARAMS, asset)


def activity_key(user: str) -> StorageKey:
    return (ACTIVITY, user)


RISK_CONFIG_KEY: StorageKey = (RISK_CONFIG,)
INTEREST_RATE_CONFIG_KEY: StorageKey = (INTEREST_RATE_CONFIG,)
TREASURY_KEY: StorageKey = (TREASURY,)
FLASH_LOAN_CONFIG_KEY: StorageKey = (FLASH_LOAN_CONFIG,)
USERS_KEY: StorageKey = (USERS,)
ADMIN_KEY: StorageKey = (ADMIN,)


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol for ledger storage backends.

    Values are immutable records (frozen dataclasses, tuples, frozensets or
    scalars); the store never needs to copy them.
    """

    def get(self, key: StorageKey) -> Optional[Any]:
        """Return the value stored under key, or None."""
        ...

    def set(self, key: StorageKey, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        ...

    def delete(self, key: StorageKey) -> None:
        """Remove key if present."""
        ...

    def keys(self) -> Iterator[StorageKey]:
        """Iterate over all stored keys."""
        ...


class InMemoryStore:
    """
    Dict-backed KeyValueStore.

    Example:
        store = InMemoryStore()
        store.set(position_key("alice"), Position(collateral=100))
        store.get(position_key("alice"))
    """

    def __init__(self, data: Optional[Dict[StorageKey, Any]] = None):
        self._data: Dict[StorageKey, Any] = dict(data) if data else {}

    def get(self, key: StorageKey) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: StorageKey, value: Any) -> None:
        if value is None:
            raise ValueError(f"Cannot store None under {key}; use delete()")
        self._data[key] = value

    def delete(self, key: StorageKey) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[StorageKey]:
        return iter(sorted(self._data.keys()))

    def copy(self) -> InMemoryStore:
        """Return an independent store with the same contents."""
        return InMemoryStore(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, InMemoryStore):
            return NotImplemented
        return self._data == other._data

    def __repr__(self):
        return f"InMemoryStore({len(self._data)} keys)"
