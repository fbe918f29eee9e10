"""Detection event schemas shared by the timeline and live overlay.

Every box in these records is already in display coordinates, i.e. scaled
from the source frame to the surface the video is shown on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from vision.frames import Zone


@dataclass(frozen=True)
class DetectedObject:
    """Single object reported by the external detector."""

    x: float
    y: float
    width: float
    height: float
    label: str
    confidence: float

    @property
    def box(self) -> Zone:
        return Zone(x=self.x, y=self.y, width=self.width, height=self.height)

    def as_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "label": self.label,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class MovementEvent:
    """One detected occurrence at one sampled instant."""

    timestamp: float
    bounding_box: Zone | None
    detected_objects: tuple[DetectedObject, ...] | None = None

    @property
    def labels(self) -> tuple[str, ...]:
        if not self.detected_objects:
            return ()
        return tuple(obj.label for obj in self.detected_objects)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp,
            "boundingBox": self.bounding_box.as_dict() if self.bounding_box is not None else None,
        }
        if self.detected_objects is not None:
            payload["detectedObjects"] = [obj.as_dict() for obj in self.detected_objects]
        return payload


@dataclass(frozen=True)
class LiveDetection:
    """Current value shown by the live overlay."""

    timestamp: float
    bounding_box: Zone | None = None
    detected_objects: tuple[DetectedObject, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.bounding_box is None and not self.detected_objects


def enclosing_box(objects: Iterable[DetectedObject]) -> Zone | None:
    """Return the tightest rectangle around all objects, or ``None`` if there are none."""

    items = list(objects)
    if not items:
        return None
    min_x = min(obj.x for obj in items)
    min_y = min(obj.y for obj in items)
    max_x = max(obj.x + obj.width for obj in items)
    max_y = max(obj.y + obj.height for obj in items)
    return Zone(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)
