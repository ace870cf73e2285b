"""Radio adapter implementation on top of bleak."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import sys
import threading
from collections.abc import Callable, Coroutine, Iterable, Sequence
from functools import partial
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from blekeeper.core.errors import AdapterError, InvalidIdentifierError
from blekeeper.core.model import (
    AdapterEvent,
    AdapterState,
    ConnectFailed,
    Connected,
    DeviceIdentifier,
    Disconnected,
    Discovered,
    PowerStateChanged,
    ResolvedDevice,
    is_mac_address,
    is_uuid,
    parse_identifier,
)
from blekeeper.transports.base import EventHandler

LOGGER = logging.getLogger(__name__)

_STATE_HINTS: tuple[tuple[str, AdapterState], ...] = (
    ("not authorized", AdapterState.UNAUTHORIZED),
    ("unauthorized", AdapterState.UNAUTHORIZED),
    ("no bluetooth adapters", AdapterState.UNSUPPORTED),
    ("unsupported", AdapterState.UNSUPPORTED),
    ("turned off", AdapterState.POWERED_OFF),
    ("powered off", AdapterState.POWERED_OFF),
    ("notready", AdapterState.POWERED_OFF),
    ("resetting", AdapterState.RESETTING),
)


def state_from_error(exc: BaseException) -> AdapterState:
    """Best-effort mapping of a bleak/backend error message onto an adapter state."""
    message = str(exc).lower()
    for hint, state in _STATE_HINTS:
        if hint in message:
            return state
    return AdapterState.UNKNOWN


def is_addressable(identifier: str, platform: str | None = None) -> bool:
    """CoreBluetooth addresses peripherals by UUID; BlueZ and WinRT by MAC."""
    platform = platform or sys.platform
    if platform == "darwin":
        return is_uuid(identifier)
    return is_mac_address(identifier)


class BleakRadioAdapter:
    """Drive bleak from a private event loop running on a daemon thread.

    Operations are scheduled onto the loop and never waited on, so the event
    handler may call back into the adapter from the loop thread. Events are
    emitted from the loop thread one at a time, and connection bookkeeping
    (`_pending`, `_clients`) is only touched from that thread.
    """

    def __init__(
        self,
        *,
        adapter: str | None = None,
        resolve_timeout_s: float = 10.0,
        probe_timeout_s: float = 2.0,
    ) -> None:
        self.adapter = adapter
        self.resolve_timeout_s = resolve_timeout_s
        self.probe_timeout_s = probe_timeout_s
        self._handler: EventHandler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._scanner: BleakScanner | None = None
        self._scanning = False
        self._seen: dict[DeviceIdentifier, BLEDevice] = {}
        self._names: dict[DeviceIdentifier, str | None] = {}
        self._pending: dict[DeviceIdentifier, asyncio.Task[None]] = {}
        self._clients: dict[DeviceIdentifier, BleakClient] = {}

    def set_event_handler(self, handler: EventHandler | None) -> None:
        self._handler = handler

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def start(self) -> None:
        if self._loop is not None:
            return
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, name="blekeeper-radio", daemon=True)
        thread.start()
        self._loop = loop
        self._thread = thread
        self.refresh_power_state()

    def refresh_power_state(self) -> None:
        self._submit(self._probe_power())

    def close(self, timeout_s: float = 5.0) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return
        future = asyncio.run_coroutine_threadsafe(self._shutdown(), loop)
        try:
            future.result(timeout=timeout_s)
        except concurrent.futures.TimeoutError:
            LOGGER.warning("Timed out releasing radio resources")
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout_s)
            loop.close()
            self._loop = None
            self._thread = None

    def scan_for_devices(self, service_uuids: Sequence[str] = ()) -> None:
        self._scanning = True
        self._submit(self._start_scan(tuple(service_uuids)))

    def stop_scan(self) -> None:
        self._scanning = False
        self._submit(self._stop_scan())

    def connect(self, identifier: DeviceIdentifier) -> None:
        self._call_soon(self._start_connect, identifier)

    def cancel_connect(self, identifier: DeviceIdentifier) -> None:
        self._call_soon(self._cancel_connect, identifier)

    def resolve_known(self, identifiers: Iterable[DeviceIdentifier]) -> list[ResolvedDevice]:
        resolved: list[ResolvedDevice] = []
        for identifier in sorted(identifiers):
            device = self._seen.get(identifier)
            if device is not None:
                resolved.append(ResolvedDevice(identifier=identifier, name=self._names.get(identifier)))
            elif is_addressable(identifier):
                resolved.append(ResolvedDevice(identifier=identifier))
            else:
                LOGGER.debug("Peripheral %s is not addressable on %s", identifier, sys.platform)
        return resolved

    def _bleak_kwargs(self) -> dict[str, Any]:
        return {"adapter": self.adapter} if self.adapter else {}

    def _submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future[Any]:
        if self._loop is None:
            coro.close()
            raise AdapterError("Radio adapter is not started")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _call_soon(self, callback: Callable[..., None], *args: Any) -> None:
        if self._loop is None:
            raise AdapterError("Radio adapter is not started")
        self._loop.call_soon_threadsafe(callback, *args)

    def _emit(self, event: AdapterEvent) -> None:
        if self._handler is None:
            return
        try:
            self._handler(event)
        except Exception:
            LOGGER.exception("Adapter event handler failed for %r", event)

    async def _probe_power(self) -> None:
        try:
            await BleakScanner.discover(timeout=self.probe_timeout_s, **self._bleak_kwargs())
        except (BleakError, OSError) as exc:
            state = state_from_error(exc) if isinstance(exc, BleakError) else AdapterState.UNSUPPORTED
            LOGGER.warning("Bluetooth radio unavailable (%s): %s", state, exc)
            self._emit(PowerStateChanged(state))
            return
        self._emit(PowerStateChanged(AdapterState.POWERED_ON))

    async def _start_scan(self, service_uuids: tuple[str, ...]) -> None:
        if self._scanner is not None:
            return
        scanner = BleakScanner(
            detection_callback=self._on_detection,
            service_uuids=list(service_uuids) or None,
            **self._bleak_kwargs(),
        )
        try:
            await scanner.start()
        except BleakError as exc:
            self._scanning = False
            LOGGER.warning("Could not start scan: %s", exc)
            self._emit(PowerStateChanged(state_from_error(exc)))
            return
        self._scanner = scanner

    async def _stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as exc:
            LOGGER.warning("Could not stop scan: %s", exc)

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        try:
            identifier = parse_identifier(device.address)
        except InvalidIdentifierError:
            LOGGER.debug("Ignoring advertisement from unparseable address %r", device.address)
            return
        name = advertisement.local_name or device.name
        self._seen[identifier] = device
        self._names[identifier] = name
        self._emit(Discovered(identifier=identifier, name=name, rssi=advertisement.rssi))

    def _start_connect(self, identifier: DeviceIdentifier) -> None:
        if identifier in self._pending or identifier in self._clients:
            LOGGER.debug("Connection to %s already pending or established", identifier)
            return
        self._pending[identifier] = asyncio.get_running_loop().create_task(
            self._connect_when_reachable(identifier),
            name=f"blekeeper-connect-{identifier}",
        )

    def _cancel_connect(self, identifier: DeviceIdentifier) -> None:
        task = self._pending.pop(identifier, None)
        if task is not None:
            task.cancel()
            self._emit(Disconnected(identifier))
            return
        client = self._clients.get(identifier)
        if client is not None:
            asyncio.get_running_loop().create_task(self._disconnect_client(client))

    def _finish_attempt(self, identifier: DeviceIdentifier) -> bool:
        """Drop the pending entry if it belongs to the running task."""
        if self._pending.get(identifier) is not asyncio.current_task():
            return False
        del self._pending[identifier]
        return True

    async def _connect_when_reachable(self, identifier: DeviceIdentifier) -> None:
        try:
            device = self._seen.get(identifier)
            while device is None:
                device = await BleakScanner.find_device_by_address(
                    identifier,
                    timeout=self.resolve_timeout_s,
                    **self._bleak_kwargs(),
                )
                if device is None:
                    LOGGER.debug("Peripheral %s not in range yet", identifier)
            client = BleakClient(
                device,
                disconnected_callback=partial(self._on_client_disconnected, identifier),
                **self._bleak_kwargs(),
            )
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            LOGGER.warning("Connect to %s failed: %s", identifier, exc)
            if self._finish_attempt(identifier):
                self._emit(ConnectFailed(identifier))
            return

        if not self._finish_attempt(identifier):
            # cancelled while the connection was being established
            await self._disconnect_client(client)
            return
        self._clients[identifier] = client
        self._emit(Connected(identifier))

    def _on_client_disconnected(self, identifier: DeviceIdentifier, _client: BleakClient) -> None:
        if self._clients.pop(identifier, None) is not None:
            self._emit(Disconnected(identifier))

    async def _disconnect_client(self, client: BleakClient) -> None:
        try:
            await client.disconnect()
        except BleakError as exc:
            LOGGER.warning("Could not disconnect %s: %s", client.address, exc)

    async def _shutdown(self) -> None:
        await self._stop_scan()
        self._scanning = False
        pending, self._pending = self._pending, {}
        for identifier, task in pending.items():
            task.cancel()
            self._emit(Disconnected(identifier))
        await asyncio.gather(*pending.values(), return_exceptions=True)
        for client in list(self._clients.values()):
            await self._disconnect_client(client)
