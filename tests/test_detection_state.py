"""Tests for the detection mode state machine."""

from __future__ import annotations

import pytest

from core.errors import DetectionModeError
from services.detection_state import DetectionMode, DetectionStateMachine, ScanPhase


def test_only_one_loop_at_a_time() -> None:
    state = DetectionStateMachine()

    run_id = state.enter(DetectionMode.LIVE_DETECTING)

    assert state.is_active(DetectionMode.LIVE_DETECTING, run_id)
    assert not state.can_enter(DetectionMode.BATCH_SCANNING)
    with pytest.raises(DetectionModeError):
        state.enter(DetectionMode.BATCH_SCANNING)
    with pytest.raises(DetectionModeError):
        state.enter(DetectionMode.LIVE_DETECTING)


def test_finish_only_affects_active_mode() -> None:
    state = DetectionStateMachine()
    state.enter(DetectionMode.BATCH_SCANNING)

    assert state.finish(DetectionMode.LIVE_DETECTING) is False
    assert state.mode is DetectionMode.BATCH_SCANNING
    assert state.finish(DetectionMode.BATCH_SCANNING) is True
    assert state.mode is DetectionMode.IDLE


def test_run_ids_distinguish_restarted_loops() -> None:
    state = DetectionStateMachine()
    first = state.enter(DetectionMode.LIVE_DETECTING)
    state.finish(DetectionMode.LIVE_DETECTING)
    second = state.enter(DetectionMode.LIVE_DETECTING)

    assert second != first
    assert not state.is_active(DetectionMode.LIVE_DETECTING, first)
    assert state.is_active(DetectionMode.LIVE_DETECTING, second)


def test_scan_phase_requires_batch_mode() -> None:
    state = DetectionStateMachine()

    with pytest.raises(DetectionModeError):
        state.set_scan_phase(ScanPhase.SEEKING)
    with pytest.raises(DetectionModeError):
        state.enter(DetectionMode.IDLE)

    state.enter(DetectionMode.BATCH_SCANNING)
    state.set_scan_phase(ScanPhase.SAMPLING)
    assert state.scan_phase is ScanPhase.SAMPLING
