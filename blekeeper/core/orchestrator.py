"""Connection orchestration used by the public client and CLI."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from blekeeper.core.adapter_state import AdapterStateMachine
from blekeeper.core.errors import BlekeeperError
from blekeeper.core.known_devices import KnownDeviceStore
from blekeeper.core.model import (
    AdapterEvent,
    AdapterState,
    ConnectFailed,
    Connected,
    ConnectionState,
    DeviceIdentifier,
    DeviceRecord,
    Disconnected,
    Discovered,
    PowerStateChanged,
    normalize_identifier,
)
from blekeeper.core.registry import DeviceRegistry
from blekeeper.transports.base import RadioAdapter

LOGGER = logging.getLogger(__name__)

ChangeObserver = Callable[[], None]
StateObserver = Callable[[AdapterState], None]


class ConnectionOrchestrator:
    """Drive scan/connect requests and fold adapter events into registry and store.

    All entry points, including `dispatch`, run under one re-entrant lock, so
    adapter callbacks delivered from another thread are applied one at a time.
    Observers are called with the lock held and should only read state.
    """

    def __init__(
        self,
        adapter: RadioAdapter,
        known_devices: KnownDeviceStore,
        *,
        registry: DeviceRegistry | None = None,
        scan_service_uuids: Sequence[str] = (),
    ) -> None:
        self.adapter = adapter
        self.known_device_store = known_devices
        self.registry = registry if registry is not None else DeviceRegistry()
        self.scan_service_uuids = tuple(scan_service_uuids)
        self.adapter_state_machine = AdapterStateMachine(on_powered_on=self.reconnect_known)
        self._lock = threading.RLock()
        self._observers: list[ChangeObserver] = []
        self._state_observers: list[StateObserver] = []

    @property
    def adapter_state(self) -> AdapterState:
        return self.adapter_state_machine.state

    @property
    def is_scanning(self) -> bool:
        return self.adapter.is_scanning

    def devices(self) -> list[DeviceRecord]:
        with self._lock:
            return self.registry.all()

    def known_devices(self) -> list[DeviceIdentifier]:
        return self.known_device_store.identifiers()

    def subscribe(self, observer: ChangeObserver) -> Callable[[], None]:
        """Register a change observer; returns a callable that unregisters it."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def subscribe_state(self, observer: StateObserver) -> Callable[[], None]:
        with self._lock:
            self._state_observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._state_observers:
                    self._state_observers.remove(observer)

        return _unsubscribe

    def start_scan(self) -> None:
        with self._lock:
            self.adapter_state_machine.require_ready("start scan")
            LOGGER.info("Scan started")
            self.adapter.scan_for_devices(self.scan_service_uuids)

    def stop_scan(self) -> None:
        with self._lock:
            self.adapter_state_machine.require_ready("stop scan")
            LOGGER.info("Scan stopped")
            self.adapter.stop_scan()

    def connect(self, identifier: DeviceIdentifier) -> None:
        with self._lock:
            self._request_connect(normalize_identifier(identifier))
            self._notify()

    def disconnect(self, identifier: DeviceIdentifier) -> None:
        identifier = normalize_identifier(identifier)
        with self._lock:
            LOGGER.info("Cancelling connection to %s", identifier)
            if not self.registry.set_state(identifier, ConnectionState.DISCONNECTING):
                LOGGER.debug("Disconnect requested for unknown peripheral %s", identifier)
            self.adapter.cancel_connect(identifier)
            self._notify()

    def reconnect_known(self) -> list[DeviceIdentifier]:
        """Resolve stored identifiers and issue a connect request for each resolved one.

        Connect requests do not time out; the adapter keeps each one pending
        until the peripheral comes into range or the request is cancelled.
        """
        with self._lock:
            known = self.known_device_store.load()
            if not known:
                LOGGER.info("No known peripherals found")
                return []

            resolved = [
                (normalize_identifier(device.identifier), device.name)
                for device in self.adapter.resolve_known(known)
            ]
            LOGGER.info("Known peripherals %s", [identifier for identifier, _ in resolved])

            for identifier, name in resolved:
                self.registry.upsert_discovered(identifier, name)
            self._notify()

            for identifier, _ in resolved:
                self._request_connect(identifier)
            return [identifier for identifier, _ in resolved]

    def dispatch(self, event: AdapterEvent) -> None:
        with self._lock:
            if isinstance(event, PowerStateChanged):
                self.on_power_state_changed(event.state)
            elif isinstance(event, Discovered):
                self.on_discovered(normalize_identifier(event.identifier), event.name, event.rssi)
            elif isinstance(event, Connected):
                self.on_connected(normalize_identifier(event.identifier))
            elif isinstance(event, Disconnected):
                self.on_disconnected(normalize_identifier(event.identifier))
            elif isinstance(event, ConnectFailed):
                self.on_connect_failed(normalize_identifier(event.identifier))
            else:
                raise TypeError(f"Unsupported adapter event {event!r}")

    def on_power_state_changed(self, state: AdapterState) -> None:
        with self._lock:
            self.adapter_state_machine.observe(state)
            for observer in list(self._state_observers):
                try:
                    observer(state)
                except Exception:
                    LOGGER.exception("Adapter state observer failed")

    def on_discovered(self, identifier: DeviceIdentifier, name: str | None, rssi: int | None = None) -> None:
        if not name:
            return
        with self._lock:
            _, created = self.registry.upsert_discovered(identifier, name, rssi)
            if not created:
                return
            LOGGER.info("Discovered peripheral %s (%s) rssi %s", identifier, name, rssi)
            self._notify()

    def on_connected(self, identifier: DeviceIdentifier) -> None:
        with self._lock:
            LOGGER.info("Connected peripheral %s", identifier)
            self._set_state(identifier, ConnectionState.CONNECTED)
            try:
                self.known_device_store.add(identifier)
            except BlekeeperError as exc:
                LOGGER.error("Could not remember peripheral %s: %s", identifier, exc)
            self._notify()

    def on_disconnected(self, identifier: DeviceIdentifier) -> None:
        with self._lock:
            LOGGER.info("Disconnected peripheral %s", identifier)
            self._set_state(identifier, ConnectionState.DISCONNECTED)
            self._notify()

    def on_connect_failed(self, identifier: DeviceIdentifier) -> None:
        with self._lock:
            LOGGER.warning("Failed to connect peripheral %s", identifier)
            self._set_state(identifier, ConnectionState.DISCONNECTED)
            self._notify()

    def _request_connect(self, identifier: DeviceIdentifier) -> None:
        LOGGER.info("Sending a connect request to peripheral %s", identifier)
        self._set_state(identifier, ConnectionState.CONNECTING)
        self.adapter.connect(identifier)

    def _set_state(self, identifier: DeviceIdentifier, state: ConnectionState) -> None:
        if not self.registry.set_state(identifier, state):
            LOGGER.debug("Ignoring %s for unknown peripheral %s", state, identifier)

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer()
            except Exception:
                LOGGER.exception("Change observer failed")
