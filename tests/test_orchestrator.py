from __future__ import annotations

import pytest

from blekeeper.core.errors import AdapterNotReady, StoreWriteError
from blekeeper.core.known_devices import KNOWN_DEVICES_KEY, KnownDeviceStore
from blekeeper.core.model import (
    AdapterState,
    ConnectFailed,
    Connected,
    ConnectionState,
    DeviceIdentifier,
    Disconnected,
    Discovered,
    PowerStateChanged,
    ResolvedDevice,
)
from blekeeper.core.orchestrator import ConnectionOrchestrator
from blekeeper.storage.yaml_store import MemoryStore

A = DeviceIdentifier("AA:BB:CC:00:00:01")
B = DeviceIdentifier("AA:BB:CC:00:00:02")
X = DeviceIdentifier("AA:BB:CC:00:00:99")


class FakeAdapter:
    def __init__(self, resolvable: set[str] | None = None) -> None:
        self.calls: list[tuple] = []
        self.resolvable = resolvable
        self.is_scanning = False

    def scan_for_devices(self, service_uuids=()) -> None:
        self.calls.append(("scan", tuple(service_uuids)))
        self.is_scanning = True

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))
        self.is_scanning = False

    def connect(self, identifier) -> None:
        self.calls.append(("connect", identifier))

    def cancel_connect(self, identifier) -> None:
        self.calls.append(("cancel_connect", identifier))

    def resolve_known(self, identifiers):
        self.calls.append(("resolve_known", frozenset(identifiers)))
        return [
            ResolvedDevice(identifier=i)
            for i in sorted(identifiers)
            if self.resolvable is None or i in self.resolvable
        ]


class BrokenStore(MemoryStore):
    def set(self, key, value) -> None:
        raise StoreWriteError("disk full")


def _build(known: list[str] | None = None, **adapter_kwargs):
    adapter = FakeAdapter(**adapter_kwargs)
    store = MemoryStore({KNOWN_DEVICES_KEY: known} if known is not None else None)
    manager = ConnectionOrchestrator(adapter, KnownDeviceStore(store), scan_service_uuids=("180f",))
    notifications: list[int] = []
    manager.subscribe(lambda: notifications.append(1))
    return manager, adapter, store, notifications


def _connects(adapter: FakeAdapter) -> list[str]:
    return [call[1] for call in adapter.calls if call[0] == "connect"]


def test_repeated_discovery_keeps_one_record_and_notifies_once() -> None:
    manager, _, _, notifications = _build()

    for rssi in (-40, -50, -60):
        manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=rssi))
    manager.dispatch(Discovered(identifier=B, name="Other", rssi=-70))

    devices = manager.devices()
    assert [d.identifier for d in devices] == [B, A]
    # rediscovery does not refresh the stored signal strength
    assert devices[1].rssi == -40
    assert len(notifications) == 2


def test_discovery_without_name_is_ignored() -> None:
    manager, _, _, notifications = _build()

    manager.dispatch(Discovered(identifier=A, name=None, rssi=-40))
    manager.dispatch(Discovered(identifier=A, name="", rssi=-40))

    assert manager.devices() == []
    assert notifications == []


def test_reconnect_known_with_empty_store_is_silent() -> None:
    manager, adapter, _, notifications = _build()

    assert manager.reconnect_known() == []
    assert adapter.calls == []
    assert notifications == []


def test_reconnect_known_connects_only_resolved_devices() -> None:
    manager, adapter, _, notifications = _build(known=[A, B], resolvable={A})

    assert manager.reconnect_known() == [A]

    assert [d.identifier for d in manager.devices()] == [A]
    assert manager.devices()[0].rssi is None
    assert manager.devices()[0].state is ConnectionState.CONNECTING
    assert _connects(adapter) == [A]
    assert adapter.calls[0] == ("resolve_known", frozenset({A, B}))
    assert len(notifications) == 1


def test_power_on_entries_each_trigger_one_reconnect() -> None:
    manager, adapter, _, _ = _build(known=[A])

    for state in (
        AdapterState.POWERED_ON,
        AdapterState.POWERED_ON,
        AdapterState.POWERED_OFF,
        AdapterState.RESETTING,
        AdapterState.POWERED_ON,
    ):
        manager.dispatch(PowerStateChanged(state))

    resolves = [call for call in adapter.calls if call[0] == "resolve_known"]
    assert len(resolves) == 2
    assert manager.adapter_state is AdapterState.POWERED_ON


def test_leaving_powered_on_keeps_registry() -> None:
    manager, _, _, _ = _build()
    manager.dispatch(PowerStateChanged(AdapterState.POWERED_ON))
    manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=-40))
    manager.dispatch(Connected(A))

    manager.dispatch(PowerStateChanged(AdapterState.POWERED_OFF))

    assert manager.devices()[0].state is ConnectionState.CONNECTED


def test_connected_persists_identifier_once() -> None:
    manager, _, store, notifications = _build()
    manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=-40))

    manager.dispatch(Connected(A))
    manager.dispatch(Connected(A))

    assert manager.known_device_store.load() == {A}
    assert store.data[KNOWN_DEVICES_KEY] == [A]
    assert store.writes == 1
    assert manager.devices()[0].state is ConnectionState.CONNECTED
    assert len(notifications) == 3


def test_connected_store_failure_is_not_fatal() -> None:
    adapter = FakeAdapter()
    manager = ConnectionOrchestrator(adapter, KnownDeviceStore(BrokenStore()))
    notifications: list[int] = []
    manager.subscribe(lambda: notifications.append(1))

    manager.dispatch(Connected(A))

    assert notifications == [1]


@pytest.mark.parametrize("event_type", [Disconnected, ConnectFailed])
def test_disconnect_events_reset_state(event_type) -> None:
    manager, _, _, notifications = _build()
    manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=-40))
    manager.connect(A)
    assert manager.devices()[0].state is ConnectionState.CONNECTING

    manager.dispatch(event_type(A))

    assert manager.devices()[0].state is ConnectionState.DISCONNECTED
    assert len(notifications) == 3


def test_disconnect_for_unknown_device_is_noop_but_notifies() -> None:
    manager, _, store, notifications = _build()

    manager.dispatch(Disconnected(X))
    manager.dispatch(ConnectFailed(X))

    assert manager.devices() == []
    assert store.writes == 0
    assert len(notifications) == 2


def test_scan_requires_powered_on_adapter() -> None:
    manager, adapter, _, _ = _build()

    with pytest.raises(AdapterNotReady):
        manager.start_scan()
    with pytest.raises(AdapterNotReady):
        manager.stop_scan()
    assert adapter.calls == []

    manager.dispatch(PowerStateChanged(AdapterState.POWERED_ON))
    manager.start_scan()
    assert manager.is_scanning
    manager.stop_scan()

    assert adapter.calls == [("scan", ("180f",)), ("stop_scan",)]


def test_disconnect_forwards_cancellation() -> None:
    manager, adapter, _, _ = _build()
    manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=-40))
    manager.connect(A)

    manager.disconnect(A)

    assert manager.devices()[0].state is ConnectionState.DISCONNECTING
    assert adapter.calls[-1] == ("cancel_connect", A)


def test_unsubscribe_and_failing_observer() -> None:
    manager, _, _, notifications = _build()

    def failing() -> None:
        raise RuntimeError("ui gone")

    manager.subscribe(failing)
    unsubscribe = manager.subscribe(lambda: notifications.append(2))
    unsubscribe()

    manager.dispatch(Discovered(identifier=A, name="Sensor", rssi=-40))

    assert notifications == [1]


def test_state_observers_receive_transitions() -> None:
    manager, _, _, _ = _build()
    seen: list[AdapterState] = []
    manager.subscribe_state(seen.append)

    manager.dispatch(PowerStateChanged(AdapterState.UNAUTHORIZED))
    manager.dispatch(PowerStateChanged(AdapterState.POWERED_ON))

    assert seen == [AdapterState.UNAUTHORIZED, AdapterState.POWERED_ON]


def test_dispatch_rejects_unknown_events() -> None:
    manager, _, _, _ = _build()
    with pytest.raises(TypeError):
        manager.dispatch(object())


def test_opaque_identifier_connects_without_persisting() -> None:
    manager, _, store, notifications = _build()
    manager.dispatch(Discovered(identifier="periph-1", name="Sensor", rssi=-40))

    manager.dispatch(Connected("periph-1"))

    assert manager.devices()[0].state is ConnectionState.CONNECTED
    assert store.writes == 0
    assert len(notifications) == 2


def test_lower_case_addresses_share_one_record() -> None:
    manager, adapter, _, _ = _build()
    manager.dispatch(Discovered(identifier="aa:bb:cc:00:00:01", name="Sensor", rssi=-40))
    manager.dispatch(Connected("aa:bb:cc:00:00:01"))

    assert manager.known_devices() == [A]
    assert manager.reconnect_known() == [A]

    assert [d.identifier for d in manager.devices()] == [A]
    assert _connects(adapter) == [A]
