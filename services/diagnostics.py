"""Diagnostics routines for the services subsystem."""

from __future__ import annotations

import asyncio

import numpy as np

from diagnostics.models import DiagnosticResult, DiagnosticStatus
from media.video_hal import SyntheticVideoSource
from services.detection_session import DetectionSession, Pipeline
from services.detection_settings import DetectionSettings
from services.notifications import NotificationCenter


def _moving_block_clip() -> SyntheticVideoSource:
    """Two-second 32x32 clip that is static except for a block from 1.0s."""

    def frame_at(time_s: float) -> np.ndarray:
        frame = np.zeros((32, 32, 4), dtype=np.uint8)
        frame[..., 3] = 255
        if time_s >= 1.0:
            frame[8:24, 8:24, :3] = 255
        return frame

    return SyntheticVideoSource(frames=frame_at, width=32, height=32, duration=2.0)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def probe() -> DiagnosticResult:
    """Run an offline motion scan over a synthetic clip.

    The scan drives its own event loop, so it is skipped when called from
    running async code.

    Returns:
        PASS when exactly one event is found at 1.0s.
    """

    name = "services"
    if _loop_running():
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details="Skipped offline scan: diagnostics were run inside an event loop",
        )
    session = DetectionSession(settings=DetectionSettings(), notifications=NotificationCenter())
    session.load_video(_moving_block_clip())
    summary = asyncio.run(session.process_video(Pipeline.MOTION))
    if summary is None:
        notices = session.notifications.recent(1)
        reason = notices[0].description if notices else "no reason reported"
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Offline scan did not run: {reason}",
        )

    timestamps = [event.timestamp for event in session.timeline]
    if timestamps != [1.0]:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Offline scan found events at {timestamps}, expected [1.0]",
        )
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Offline scan OK ({summary.samples} samples, 1 event)",
    )
