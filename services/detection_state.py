"""Detection mode state machine.

At most one control loop runs at a time. The session asks this machine
before starting a loop and reads it on every tick, so it is the single
source of truth for "is this loop still active".
"""

from __future__ import annotations

from enum import Enum

from core.errors import DetectionModeError
from core.logging import logger


class DetectionMode(str, Enum):
    """Which control loop currently owns the video."""

    IDLE = "idle"
    BATCH_SCANNING = "batch_scanning"
    LIVE_DETECTING = "live_detecting"


class ScanPhase(str, Enum):
    """Progress of a batch scan."""

    IDLE = "idle"
    SEEKING = "seeking"
    SAMPLING = "sampling"
    DONE = "done"


_ALLOWED_TRANSITIONS: dict[DetectionMode, frozenset[DetectionMode]] = {
    DetectionMode.IDLE: frozenset({DetectionMode.BATCH_SCANNING, DetectionMode.LIVE_DETECTING}),
    DetectionMode.BATCH_SCANNING: frozenset({DetectionMode.IDLE}),
    DetectionMode.LIVE_DETECTING: frozenset({DetectionMode.IDLE}),
}


class DetectionStateMachine:
    """Guarded transitions between detection modes."""

    def __init__(self) -> None:
        self.mode = DetectionMode.IDLE
        self.scan_phase = ScanPhase.IDLE
        self._run_id = 0

    @property
    def run_id(self) -> int:
        """Identifier of the current (or most recent) loop run."""

        return self._run_id

    def can_enter(self, mode: DetectionMode) -> bool:
        return mode in _ALLOWED_TRANSITIONS[self.mode]

    def is_active(self, mode: DetectionMode, run_id: int) -> bool:
        """Return whether the loop started as ``run_id`` in ``mode`` is still running."""

        return self.mode is mode and self._run_id == run_id

    def enter(self, mode: DetectionMode, reason: str = "") -> int:
        """Start a loop in ``mode`` and return its run id."""

        if mode is DetectionMode.IDLE:
            raise DetectionModeError("Use finish() to return to idle")
        if not self.can_enter(mode):
            raise DetectionModeError(
                f"Cannot start {mode.value} while {self.mode.value} is active"
            )
        self._run_id += 1
        self._transition(mode, reason)
        if mode is DetectionMode.BATCH_SCANNING:
            self.scan_phase = ScanPhase.IDLE
        return self._run_id

    def finish(self, mode: DetectionMode, reason: str = "") -> bool:
        """Return to idle if ``mode`` is the active one; report whether it was."""

        if self.mode is not mode:
            return False
        self._transition(DetectionMode.IDLE, reason)
        return True

    def set_scan_phase(self, phase: ScanPhase) -> None:
        if self.mode is not DetectionMode.BATCH_SCANNING and phase is not ScanPhase.DONE:
            raise DetectionModeError(f"Scan phase {phase.value} outside a batch scan")
        self.scan_phase = phase

    def _transition(self, new_mode: DetectionMode, reason: str) -> None:
        last_mode = self.mode
        self.mode = new_mode
        logger.info(
            "Detection mode transition: %s -> %s%s",
            last_mode.value,
            new_mode.value,
            f" ({reason})" if reason else "",
        )
