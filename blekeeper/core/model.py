"""Core data models shared by the registry, store, orchestrator, and adapters."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import NewType, Union

from blekeeper.core.errors import InvalidIdentifierError

DeviceIdentifier = NewType("DeviceIdentifier", str)

_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$")
_UUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$")


def parse_identifier(raw: object) -> DeviceIdentifier:
    """Normalize a MAC address or CoreBluetooth UUID into a `DeviceIdentifier`."""
    if not isinstance(raw, str):
        raise InvalidIdentifierError(f"Device identifier must be a string, got {type(raw).__name__}")
    normalized = raw.strip().upper()
    if normalized.count("-") == 5:
        # Windows-style MAC notation
        normalized = normalized.replace("-", ":")
    if _MAC_RE.match(normalized) or _UUID_RE.match(normalized):
        return DeviceIdentifier(normalized)
    raise InvalidIdentifierError(f"'{raw}' is not a MAC address or UUID")


def normalize_identifier(raw: object) -> DeviceIdentifier:
    """Canonical form for MAC addresses and UUIDs; any other identifier is kept opaque."""
    try:
        return parse_identifier(raw)
    except InvalidIdentifierError:
        return DeviceIdentifier(str(raw).strip())


def is_mac_address(identifier: str) -> bool:
    return bool(_MAC_RE.match(identifier))


def is_uuid(identifier: str) -> bool:
    return bool(_UUID_RE.match(identifier))


class ConnectionState(Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTING = "Disconnecting"

    def __str__(self) -> str:
        return self.value


class AdapterState(Enum):
    UNKNOWN = "Unknown"
    RESETTING = "Resetting"
    UNSUPPORTED = "Unsupported"
    UNAUTHORIZED = "Unauthorized"
    POWERED_OFF = "Powered Off"
    POWERED_ON = "Powered On"

    def __str__(self) -> str:
        return self.value


@dataclass
class DeviceRecord:
    identifier: DeviceIdentifier
    name: str | None = None
    state: ConnectionState = ConnectionState.DISCONNECTED
    rssi: int | None = None


@dataclass(frozen=True)
class ResolvedDevice:
    identifier: DeviceIdentifier
    name: str | None = None
    rssi: int | None = None


@dataclass(frozen=True)
class PowerStateChanged:
    state: AdapterState


@dataclass(frozen=True)
class Discovered:
    identifier: DeviceIdentifier
    name: str | None
    rssi: int | None = None


@dataclass(frozen=True)
class Connected:
    identifier: DeviceIdentifier


@dataclass(frozen=True)
class Disconnected:
    identifier: DeviceIdentifier


@dataclass(frozen=True)
class ConnectFailed:
    identifier: DeviceIdentifier


AdapterEvent = Union[PowerStateChanged, Discovered, Connected, Disconnected, ConnectFailed]
