from __future__ import annotations

import pytest

from blekeeper.core.adapter_state import AdapterStateMachine
from blekeeper.core.errors import AdapterNotReady
from blekeeper.core.model import AdapterState


def test_initial_state_is_unknown() -> None:
    machine = AdapterStateMachine(on_powered_on=lambda: None)
    assert machine.state is AdapterState.UNKNOWN
    assert not machine.is_ready


def test_powered_on_hook_fires_once_per_entry() -> None:
    entries: list[int] = []
    machine = AdapterStateMachine(on_powered_on=lambda: entries.append(1))

    assert machine.observe(AdapterState.POWERED_ON) is AdapterState.UNKNOWN
    machine.observe(AdapterState.POWERED_ON)
    machine.observe(AdapterState.POWERED_OFF)
    machine.observe(AdapterState.POWERED_ON)

    assert len(entries) == 2
    assert machine.is_ready


def test_require_ready_names_operation_and_state() -> None:
    machine = AdapterStateMachine(on_powered_on=lambda: None)
    machine.observe(AdapterState.UNAUTHORIZED)

    with pytest.raises(AdapterNotReady) as exc:
        machine.require_ready("start scan")

    assert "start scan" in str(exc.value)
    assert "Unauthorized" in str(exc.value)
