"""Diagnostics routines for the media subsystem."""

from __future__ import annotations

import asyncio
import importlib.util

import numpy as np

from core.errors import ZoneWatchError
from diagnostics.models import DiagnosticResult, DiagnosticStatus
from media.sampler import FrameSampler
from media.video_hal import SyntheticVideoSource

_PROBE_OWNER = "media-diagnostics"


def _sample_synthetic() -> tuple[int, float]:
    """Seek a tiny synthetic clip and sample it; return (red value, position)."""

    frames = [np.full((8, 8, 4), (index * 10, 0, 0, 255), dtype=np.uint8) for index in range(10)]
    source = SyntheticVideoSource(frames=frames, width=8, height=8, duration=1.0, fps=10)
    sampler = FrameSampler(source)
    sampler.surface.claim(_PROBE_OWNER)
    try:
        asyncio.run(source.seek(0.5))
        frame = sampler.sample(_PROBE_OWNER)
    finally:
        sampler.surface.release(_PROBE_OWNER)
    return int(frame.pixels[0, 0, 0]), source.current_time


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def probe() -> DiagnosticResult:
    """Check the decoder dependency and the seek-then-sample path.

    Returns:
        FAIL when sampling is broken, WARN when OpenCV is missing.
    """

    name = "media"
    if _loop_running():
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details="Skipped synthetic sampling: diagnostics were run inside an event loop",
        )
    try:
        red, position = _sample_synthetic()
    except (ZoneWatchError, RuntimeError, ValueError) as exc:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Synthetic sampling failed: {exc}",
        )
    if red != 50 or position != 0.5:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Sampled wrong frame after seek (red={red}, position={position})",
        )

    if importlib.util.find_spec("cv2") is None:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details="OpenCV not installed; only in-memory sources are available",
        )
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details="OpenCV available; synthetic seek and sample OK",
    )
