"""Radio power/availability tracking."""

from __future__ import annotations

import logging
from collections.abc import Callable

from blekeeper.core.errors import AdapterNotReady
from blekeeper.core.model import AdapterState

LOGGER = logging.getLogger(__name__)


class AdapterStateMachine:
    """Record adapter state notifications and fire a hook on entry into POWERED_ON.

    The state is only ever changed by `observe`, which the orchestrator calls
    for each power-state notification delivered by the radio adapter.
    """

    def __init__(self, on_powered_on: Callable[[], None]) -> None:
        self._state = AdapterState.UNKNOWN
        self._on_powered_on = on_powered_on

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is AdapterState.POWERED_ON

    def observe(self, new_state: AdapterState) -> AdapterState:
        previous = self._state
        self._state = new_state
        LOGGER.info("Adapter state: %s", new_state)

        if new_state is AdapterState.POWERED_ON and previous is not AdapterState.POWERED_ON:
            self._on_powered_on()
        elif previous is AdapterState.POWERED_ON and new_state is not AdapterState.POWERED_ON:
            LOGGER.info("Adapter left %s; registry left as-is", previous)
        return previous

    def require_ready(self, operation: str) -> None:
        if not self.is_ready:
            raise AdapterNotReady(f"Cannot {operation}: adapter is {self._state}, not {AdapterState.POWERED_ON}")
