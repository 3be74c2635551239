from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Phase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_TERMINAL = (Phase.COMPLETED, Phase.CANCELLED, Phase.FAILED)


@dataclass(frozen=True)
class RunSnapshot:
    phase: Phase
    cancel_requested: bool
    current: int
    total: int
    status: str
    last_outcome: Optional[Phase]

    @property
    def active(self) -> bool:
        return self.phase in (Phase.PREPARING, Phase.RUNNING)

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return (self.current * 100) // self.total


class RunState:
    """Progress and cancellation state of one kind of run (sync or summarization).

    Idle -> Preparing -> Running -> {Completed, Cancelled, Failed} -> Idle.
    ``begin()`` refuses to start while a run is active; ``finish()`` records
    the terminal outcome and drops back to Idle with the final status text kept.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._phase = Phase.IDLE
        self._current = 0
        self._total = 0
        self._status = ""
        self._last_outcome: Optional[Phase] = None

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._phase

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._phase in (Phase.PREPARING, Phase.RUNNING)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def begin(self, status: str="Preparing...") -> bool:
        with self._lock:
            if self._phase in (Phase.PREPARING, Phase.RUNNING):
                return False
            self._phase = Phase.PREPARING
            self._current = 0
            self._total = 0
            self._status = status
            self._cancel.clear()
            return True

    def start_running(self, total: int, status: str=""):
        with self._lock:
            if self._phase is not Phase.PREPARING:
                raise RuntimeError(f"{self.name}: cannot start running from {self._phase.value}")
            self._phase = Phase.RUNNING
            self._total = total
            self._current = 0
            if status:
                self._status = status

    def advance(self, status: Optional[str]=None) -> int:
        with self._lock:
            self._current += 1
            if status is not None:
                self._status = status
            return self._current

    def set_status(self, status: str):
        with self._lock:
            self._status = status

    def request_cancel(self) -> bool:
        """Set the cancel flag. Returns False when nothing is running."""
        with self._lock:
            if self._phase not in (Phase.PREPARING, Phase.RUNNING):
                return False
            self._status = "Cancelling..."
        self._cancel.set()
        return True

    def finish(self, outcome: Phase, status: str):
        if outcome not in _TERMINAL:
            raise ValueError(f"{outcome} is not a terminal phase")
        with self._lock:
            self._last_outcome = outcome
            self._status = status
            self._phase = Phase.IDLE

    def snapshot(self) -> RunSnapshot:
        with self._lock:
            return RunSnapshot(
                phase=self._phase,
                cancel_requested=self._cancel.is_set(),
                current=self._current,
                total=self._total,
                status=self._status,
                last_outcome=self._last_outcome,
            )
