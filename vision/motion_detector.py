"""Frame-differencing motion detector.

A pixel counts as changed when the unweighted mean of its absolute red,
green and blue differences exceeds the sensitivity threshold; alpha is
ignored. Movement means the changed-pixel count inside the zone strictly
exceeds the movement threshold.

Both frames must come from the same source and have the same size. That is
the caller's precondition and is not checked here.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from vision.frames import Frame, Zone


@dataclass(frozen=True)
class MotionAnalysis:
    """Result of one fused diff pass over a frame pair."""

    changed_pixels: int
    has_movement: bool
    bounding_box: Zone | None


def _changed_mask(
    prev_frame: Frame,
    curr_frame: Frame,
    zone: Zone | None,
    sensitivity_threshold: float,
) -> tuple[np.ndarray, int, int] | None:
    """Return the changed-pixel mask of the zone and its top-left offset.

    Zone parts outside the raster are clipped away. ``None`` means the zone
    does not overlap the frame at all.
    """

    if zone is None:
        x0, y0, x1, y1 = 0, 0, prev_frame.width, prev_frame.height
    else:
        bounds = zone.pixel_bounds(prev_frame.width, prev_frame.height)
        if bounds is None:
            return None
        x0, y0, x1, y1 = bounds

    prev_rgb = prev_frame.pixels[y0:y1, x0:x1, :3].astype(np.int16)
    curr_rgb = curr_frame.pixels[y0:y1, x0:x1, :3].astype(np.int16)
    channel_sum = np.abs(prev_rgb - curr_rgb).sum(axis=2)
    # mean > threshold  <=>  sum > 3 * threshold, without float rounding
    return channel_sum > 3 * sensitivity_threshold, x0, y0


def analyze_motion(
    prev_frame: Frame,
    curr_frame: Frame,
    zone: Zone | None,
    sensitivity_threshold: float = 30,
    movement_threshold: float = 50,
) -> MotionAnalysis:
    """Count changed pixels and locate them in a single pass.

    The bounding box follows :func:`extract_bounding_box` (``None`` for a
    ``None`` zone) and never depends on ``movement_threshold``.
    """

    result = _changed_mask(prev_frame, curr_frame, zone, sensitivity_threshold)
    if result is None:
        return MotionAnalysis(changed_pixels=0, has_movement=False, bounding_box=None)

    mask, offset_x, offset_y = result
    changed = int(np.count_nonzero(mask))
    box = None
    if zone is not None and changed:
        box = _mask_bounds(mask, offset_x, offset_y)
    return MotionAnalysis(
        changed_pixels=changed,
        has_movement=changed > movement_threshold,
        bounding_box=box,
    )


def count_changed_pixels(
    prev_frame: Frame,
    curr_frame: Frame,
    zone: Zone | None,
    sensitivity_threshold: float = 30,
) -> int:
    result = _changed_mask(prev_frame, curr_frame, zone, sensitivity_threshold)
    if result is None:
        return 0
    return int(np.count_nonzero(result[0]))


def has_movement(
    prev_frame: Frame,
    curr_frame: Frame,
    zone: Zone | None,
    sensitivity_threshold: float = 30,
    movement_threshold: float = 50,
) -> bool:
    """Return whether enough pixels changed inside ``zone`` (whole frame if ``None``)."""

    changed = count_changed_pixels(prev_frame, curr_frame, zone, sensitivity_threshold)
    return changed > movement_threshold


def extract_bounding_box(
    prev_frame: Frame,
    curr_frame: Frame,
    zone: Zone | None,
    sensitivity_threshold: float = 30,
) -> Zone | None:
    """Return the tight box around every changed pixel inside ``zone``.

    Width and height are the inclusive pixel span (``max - min``), so a
    single changed pixel yields a zero-sized box. Separate moving regions
    merge into one box. A ``None`` zone always returns ``None``; pass
    :meth:`Zone.full_frame` for a frame-level box.
    """

    if zone is None:
        return None
    result = _changed_mask(prev_frame, curr_frame, zone, sensitivity_threshold)
    if result is None:
        return None
    mask, offset_x, offset_y = result
    if not mask.any():
        return None
    return _mask_bounds(mask, offset_x, offset_y)


def _mask_bounds(mask: np.ndarray, offset_x: int, offset_y: int) -> Zone:
    rows = np.flatnonzero(mask.any(axis=1))
    cols = np.flatnonzero(mask.any(axis=0))
    min_y, max_y = int(rows[0]) + offset_y, int(rows[-1]) + offset_y
    min_x, max_x = int(cols[0]) + offset_x, int(cols[-1]) + offset_x
    return Zone(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)
