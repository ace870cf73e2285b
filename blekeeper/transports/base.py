"""Radio adapter interfaces."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Protocol, runtime_checkable

from blekeeper.core.model import AdapterEvent, DeviceIdentifier, ResolvedDevice

EventHandler = Callable[[AdapterEvent], None]


class RadioAdapter(Protocol):
    @property
    def is_scanning(self) -> bool:
        """Whether a scan is currently active."""

    def scan_for_devices(self, service_uuids: Sequence[str] = ()) -> None:
        """Start scanning; discoveries arrive as `Discovered` events."""

    def stop_scan(self) -> None:
        """Stop an active scan."""

    def connect(self, identifier: DeviceIdentifier) -> None:
        """Request a connection; the outcome arrives as an event."""

    def cancel_connect(self, identifier: DeviceIdentifier) -> None:
        """Cancel a pending connection or disconnect a live one."""

    def resolve_known(self, identifiers: Iterable[DeviceIdentifier]) -> list[ResolvedDevice]:
        """Map stored identifiers onto peripherals the platform can currently address."""


@runtime_checkable
class EventSource(Protocol):
    def set_event_handler(self, handler: EventHandler | None) -> None:
        """Register the single consumer of inbound adapter events."""

    def start(self) -> None:
        """Start delivering events."""

    def close(self) -> None:
        """Release radio resources."""
