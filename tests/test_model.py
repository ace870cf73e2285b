from __future__ import annotations

import pytest

from blekeeper.core.errors import InvalidIdentifierError
from blekeeper.core.model import AdapterState, ConnectionState, parse_identifier


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("aa:bb:cc:dd:ee:ff", "AA:BB:CC:DD:EE:FF"),
        (" AA-BB-CC-DD-EE-FF ", "AA:BB:CC:DD:EE:FF"),
        ("5a2b8e1c-3d4f-4a6b-9c8d-7e6f5a4b3c2d", "5A2B8E1C-3D4F-4A6B-9C8D-7E6F5A4B3C2D"),
    ],
)
def test_parse_identifier_normalizes(raw: str, expected: str) -> None:
    assert parse_identifier(raw) == expected


@pytest.mark.parametrize("raw", ["", "AA:BB:CC", "not a uuid", 7, None])
def test_parse_identifier_rejects_garbage(raw) -> None:
    with pytest.raises(InvalidIdentifierError):
        parse_identifier(raw)


def test_state_labels() -> None:
    assert str(AdapterState.POWERED_ON) == "Powered On"
    assert str(ConnectionState.CONNECTING) == "Connecting"
