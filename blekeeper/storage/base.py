"""Durable key-value storage interfaces."""

from __future__ import annotations

from typing import Any, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None:
        """Return the value stored under key, or None when absent."""

    def set(self, key: str, value: Any) -> None:
        """Durably store value under key."""
