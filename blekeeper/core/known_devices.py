"""Persisted set of peripherals that connected successfully at least once."""

from __future__ import annotations

import logging
import threading

from blekeeper.core.errors import InvalidIdentifierError, StoreError
from blekeeper.core.model import DeviceIdentifier, parse_identifier
from blekeeper.storage.base import KeyValueStore

LOGGER = logging.getLogger(__name__)

KNOWN_DEVICES_KEY = "KnownPeripheralsIdentifiers"


class KnownDeviceStore:
    """Known-device identifiers kept as a list of strings under a single key.

    Reads never fail: a missing key, a malformed value, or an unreadable
    backing store all produce an empty result, and individual entries that do
    not parse as identifiers are skipped. Writes go through a lock so a
    read-modify-write cycle cannot interleave with another one.
    """

    def __init__(self, store: KeyValueStore, *, key: str = KNOWN_DEVICES_KEY) -> None:
        self._store = store
        self._key = key
        self._lock = threading.Lock()

    def load(self) -> set[DeviceIdentifier]:
        return set(self.identifiers())

    def identifiers(self) -> list[DeviceIdentifier]:
        with self._lock:
            return self._read()

    def add(self, identifier: DeviceIdentifier | str) -> bool:
        normalized = parse_identifier(identifier)
        with self._lock:
            identifiers = self._read()
            if normalized in identifiers:
                return False
            identifiers.append(normalized)
            self._store.set(self._key, [str(i) for i in identifiers])
        LOGGER.info("Stored known peripheral %s", normalized)
        return True

    def _read(self) -> list[DeviceIdentifier]:
        try:
            raw = self._store.get(self._key)
        except StoreError as exc:
            LOGGER.warning("Could not read known peripherals: %s", exc)
            return []

        if raw is None:
            return []
        if not isinstance(raw, list):
            LOGGER.warning("Ignoring known peripherals value of type %s", type(raw).__name__)
            return []

        identifiers: list[DeviceIdentifier] = []
        for entry in raw:
            try:
                identifier = parse_identifier(entry)
            except InvalidIdentifierError as exc:
                LOGGER.warning("Skipping stored peripheral identifier: %s", exc)
                continue
            if identifier not in identifiers:
                identifiers.append(identifier)
        return identifiers
