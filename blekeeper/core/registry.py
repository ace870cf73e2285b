"""In-memory registry of peripherals seen during this session."""

from __future__ import annotations

from collections.abc import Iterator

from blekeeper.core.model import ConnectionState, DeviceIdentifier, DeviceRecord


class DeviceRegistry:
    """Records keyed by identifier, ordered most-recently-discovered first.

    Records are never removed; the registry only grows.
    """

    def __init__(self) -> None:
        self._records: dict[DeviceIdentifier, DeviceRecord] = {}
        self._order: list[DeviceIdentifier] = []

    def upsert_discovered(
        self,
        identifier: DeviceIdentifier,
        name: str | None = None,
        rssi: int | None = None,
    ) -> tuple[DeviceRecord, bool]:
        existing = self._records.get(identifier)
        if existing is not None:
            return existing, False
        record = DeviceRecord(identifier=identifier, name=name, rssi=rssi)
        self._records[identifier] = record
        self._order.insert(0, identifier)
        return record, True

    def set_state(self, identifier: DeviceIdentifier, state: ConnectionState) -> bool:
        record = self._records.get(identifier)
        if record is None:
            return False
        record.state = state
        return True

    def get(self, identifier: DeviceIdentifier) -> DeviceRecord | None:
        return self._records.get(identifier)

    def all(self) -> list[DeviceRecord]:
        return [self._records[i] for i in self._order]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[DeviceRecord]:
        return iter(self.all())
