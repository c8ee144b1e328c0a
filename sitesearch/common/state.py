from __future__ import annotations

import threading
from enum import Enum


class FlightState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SingleFlight:
    """At most one indexing session system-wide.

    Transitions are compare-and-swap under a lock: IDLE -> RUNNING via
    ``try_start`` and RUNNING -> IDLE via ``finish``. A transition from the
    wrong state is refused and reported as ``False``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = FlightState.IDLE

    @property
    def state(self) -> FlightState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is FlightState.RUNNING

    def _swap(self, expected: FlightState, new: FlightState) -> bool:
        with self._lock:
            if self._state is not expected:
                return False
            self._state = new
            return True

    def try_start(self) -> bool:
        return self._swap(FlightState.IDLE, FlightState.RUNNING)

    def finish(self) -> bool:
        return self._swap(FlightState.RUNNING, FlightState.IDLE)


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
