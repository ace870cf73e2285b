"""Stable public API for building tooling on top of blekeeper.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from types import TracebackType

from blekeeper.core.config import Config, load_config
from blekeeper.core.errors import (
    AdapterError,
    AdapterNotReady,
    BlekeeperError,
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    InvalidIdentifierError,
    StoreError,
    StoreLoadError,
    StoreWriteError,
    UnknownDevice,
)
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
    ResolvedDevice,
    parse_identifier,
)
from blekeeper.core.orchestrator import ConnectionOrchestrator
from blekeeper.storage.base import KeyValueStore
from blekeeper.storage.yaml_store import MemoryStore, YamlFileStore
from blekeeper.transports.base import EventSource, RadioAdapter
from blekeeper.transports.bleak_adapter import BleakRadioAdapter

__all__ = [
    "BlekeeperError",
    "AdapterError",
    "AdapterNotReady",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "InvalidIdentifierError",
    "StoreError",
    "StoreLoadError",
    "StoreWriteError",
    "UnknownDevice",
    "AdapterEvent",
    "AdapterState",
    "ConnectFailed",
    "Connected",
    "ConnectionState",
    "DeviceIdentifier",
    "DeviceRecord",
    "Disconnected",
    "Discovered",
    "PowerStateChanged",
    "ResolvedDevice",
    "parse_identifier",
    "Config",
    "load_config",
    "KeyValueStore",
    "MemoryStore",
    "YamlFileStore",
    "RadioAdapter",
    "BleakRadioAdapter",
    "ConnectionOrchestrator",
    "Client",
]


class Client:
    """Public client wiring config, durable store, radio adapter, and orchestrator.

    A `Client` owns the adapter lifecycle: `start()` begins delivering radio
    events into the orchestrator (known peripherals are reconnected as soon
    as the radio reports it is powered on) and `close()` releases the radio.
    """

    def __init__(
        self,
        *,
        config: Config | None = None,
        adapter: RadioAdapter | None = None,
        store: KeyValueStore | None = None,
    ) -> None:
        self.config = config or load_config()
        self._adapter = adapter or BleakRadioAdapter(
            adapter=self.config.adapter,
            resolve_timeout_s=self.config.resolve_timeout_s,
            probe_timeout_s=self.config.probe_timeout_s,
        )
        known_devices = KnownDeviceStore(store if store is not None else YamlFileStore(self.config.store_path))
        self.manager = ConnectionOrchestrator(
            self._adapter,
            known_devices,
            scan_service_uuids=self.config.scan_service_uuids,
        )
        if isinstance(self._adapter, EventSource):
            self._adapter.set_event_handler(self.manager.dispatch)
        self._started = False

    def __enter__(self) -> Client:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def start(self) -> None:
        if self._started:
            return
        if isinstance(self._adapter, EventSource):
            self._adapter.start()
        self._started = True

    def close(self) -> None:
        if not self._started:
            return
        if isinstance(self._adapter, EventSource):
            self._adapter.close()
        self._started = False

    def wait_until_ready(self, timeout_s: float | None = None) -> bool:
        """Block until the adapter reports POWERED_ON; False on timeout."""
        ready = threading.Event()
        unsubscribe = self.manager.subscribe_state(
            lambda state: ready.set() if state is AdapterState.POWERED_ON else None
        )
        try:
            if self.manager.adapter_state is AdapterState.POWERED_ON:
                return True
            return ready.wait(timeout_s)
        finally:
            unsubscribe()

    @property
    def adapter_state(self) -> AdapterState:
        return self.manager.adapter_state

    @property
    def is_scanning(self) -> bool:
        return self.manager.is_scanning

    def devices(self) -> list[DeviceRecord]:
        return self.manager.devices()

    def device(self, identifier: DeviceIdentifier | str) -> DeviceRecord | None:
        normalized = parse_identifier(identifier)
        return next((d for d in self.manager.devices() if d.identifier == normalized), None)

    def known_devices(self) -> list[DeviceIdentifier]:
        return self.manager.known_devices()

    def start_scan(self) -> None:
        self.manager.start_scan()

    def stop_scan(self) -> None:
        self.manager.stop_scan()

    def connect(self, identifier: DeviceIdentifier | str) -> DeviceIdentifier:
        normalized = parse_identifier(identifier)
        self.manager.connect(normalized)
        return normalized

    def disconnect(self, identifier: DeviceIdentifier | str) -> DeviceIdentifier:
        normalized = parse_identifier(identifier)
        self.manager.disconnect(normalized)
        return normalized

    def reconnect_known(self) -> list[DeviceIdentifier]:
        return self.manager.reconnect_known()

    def subscribe(self, observer: Callable[[], None]) -> Callable[[], None]:
        return self.manager.subscribe(observer)
