from __future__ import annotations

from pathlib import Path

import pytest

from blekeeper.core.errors import InvalidIdentifierError
from blekeeper.core.known_devices import KNOWN_DEVICES_KEY, KnownDeviceStore
from blekeeper.storage.yaml_store import MemoryStore, YamlFileStore

UUID_ID = "5A2B8E1C-3D4F-4A6B-9C8D-7E6F5A4B3C2D"


def test_empty_store_loads_empty_set() -> None:
    assert KnownDeviceStore(MemoryStore()).load() == set()


def test_add_is_idempotent() -> None:
    backing = MemoryStore()
    store = KnownDeviceStore(backing)

    assert store.add("aa:bb:cc:dd:ee:ff") is True
    assert store.add("AA:BB:CC:DD:EE:FF") is False
    assert store.add(UUID_ID.lower()) is True

    assert backing.data[KNOWN_DEVICES_KEY] == ["AA:BB:CC:DD:EE:FF", UUID_ID]
    assert backing.writes == 2
    assert store.load() == {"AA:BB:CC:DD:EE:FF", UUID_ID}


def test_add_rejects_invalid_identifier() -> None:
    with pytest.raises(InvalidIdentifierError):
        KnownDeviceStore(MemoryStore()).add("not-a-device")


def test_malformed_entries_are_skipped() -> None:
    backing = MemoryStore({KNOWN_DEVICES_KEY: ["AA:BB:CC:DD:EE:FF", "garbage", 42, None, UUID_ID, "aa:bb:cc:dd:ee:ff"]})

    assert KnownDeviceStore(backing).identifiers() == ["AA:BB:CC:DD:EE:FF", UUID_ID]


def test_non_list_value_loads_empty() -> None:
    backing = MemoryStore({KNOWN_DEVICES_KEY: "AA:BB:CC:DD:EE:FF"})
    assert KnownDeviceStore(backing).load() == set()


def test_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "state" / "known_devices.yaml"
    KnownDeviceStore(YamlFileStore(path)).add("AA:BB:CC:DD:EE:01")
    KnownDeviceStore(YamlFileStore(path)).add("AA:BB:CC:DD:EE:02")

    assert KnownDeviceStore(YamlFileStore(path)).identifiers() == ["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"]


def test_corrupt_file_loads_empty_and_is_rewritten(tmp_path: Path) -> None:
    path = tmp_path / "known_devices.yaml"
    path.write_text("KnownPeripheralsIdentifiers: [unterminated\n", encoding="utf-8")
    store = KnownDeviceStore(YamlFileStore(path))

    assert store.load() == set()
    assert store.add("AA:BB:CC:DD:EE:01") is True
    assert store.load() == {"AA:BB:CC:DD:EE:01"}
