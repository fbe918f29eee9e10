"""Diagnostics routines for the vision subsystem."""

from __future__ import annotations

import importlib.util

import numpy as np

from diagnostics.models import DiagnosticResult, DiagnosticStatus
from vision.frames import Frame, Zone
from vision.motion_detector import analyze_motion


def _motion_self_test() -> str | None:
    """Diff two 16x16 frames with a 4x4 block change; return an error or ``None``."""

    before = np.zeros((16, 16, 4), dtype=np.uint8)
    before[..., 3] = 255
    after = before.copy()
    after[4:8, 6:10, :3] = 200
    analysis = analyze_motion(
        Frame.from_array(before),
        Frame.from_array(after),
        Zone.full_frame(16, 16),
        sensitivity_threshold=30,
        movement_threshold=10,
    )
    if analysis.changed_pixels != 16:
        return f"expected 16 changed pixels, got {analysis.changed_pixels}"
    if analysis.bounding_box != Zone(6, 4, 3, 3):
        return f"unexpected bounding box {analysis.bounding_box}"
    return None


def probe(backend: str = "ultralytics") -> DiagnosticResult:
    """Check frame differencing and whether the object detector backend is importable.

    Args:
        backend: Name of the object detector backend package.

    Returns:
        FAIL when motion detection is broken, WARN without the backend package.
    """

    name = "vision"
    error = _motion_self_test()
    if error is not None:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Motion self-test failed: {error}",
        )

    if importlib.util.find_spec(backend) is None:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details=f"Motion OK; object detector backend '{backend}' not installed",
        )
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Motion OK; object detector backend '{backend}' available",
    )
