"""Frame and zone types shared by the motion and object pipelines.

Frames hold an RGBA raster as a read-only ``numpy.uint8`` array of shape
``(height, width, 4)``, row-major with the origin at the top-left pixel.
Zones are axis-aligned rectangles in source-frame pixel coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from PIL import Image

CHANNELS = 4
MIN_ZONE_SIZE = 10


@dataclass(frozen=True)
class Zone:
    """Axis-aligned rectangle ``(x, y, width, height)``."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def full_frame(cls, width: int, height: int) -> "Zone":
        """Return a zone covering a whole ``width`` x ``height`` frame."""

        return cls(x=0, y=0, width=width, height=height)

    def pixel_bounds(self, frame_width: int, frame_height: int) -> tuple[int, int, int, int] | None:
        """Return ``(x0, y0, x1, y1)`` clipped to the frame, or ``None`` if empty.

        Coordinates are rounded to whole pixels; the end bounds are exclusive.
        """

        x0 = int(round(self.x))
        y0 = int(round(self.y))
        x1 = x0 + int(round(self.width))
        y1 = y0 + int(round(self.height))
        x0, x1 = max(x0, 0), min(x1, frame_width)
        y0, y1 = max(y0, 0), min(y1, frame_height)
        if x0 >= x1 or y0 >= y1:
            return None
        return x0, y0, x1, y1

    def contains(self, x: float, y: float) -> bool:
        """Return whether the point lies inside the closed rectangle."""

        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Frame:
    """One decoded RGBA snapshot of a video."""

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        expected = (self.height, self.width, CHANNELS)
        if self.pixels.shape != expected:
            raise ValueError(f"Frame pixels have shape {self.pixels.shape}, expected {expected}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Frame pixels must be uint8, got {self.pixels.dtype}")
        if self.pixels.flags.writeable:
            self.pixels.flags.writeable = False

    @classmethod
    def from_array(cls, pixels: Any) -> "Frame":
        """Copy an ``(h, w, 4)`` or ``(h, w, 3)`` RGB(A) array into a frame."""

        array = np.asarray(pixels, dtype=np.uint8)
        if array.ndim != 3 or array.shape[2] not in (3, CHANNELS):
            raise ValueError(f"Expected an (h, w, 3|4) array, got shape {array.shape}")
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        else:
            array = array.copy()
        height, width = array.shape[:2]
        return cls(width=width, height=height, pixels=array)

    @classmethod
    def from_buffer(cls, width: int, height: int, data: bytes | bytearray | memoryview) -> "Frame":
        """Build a frame from a flat interleaved RGBA byte buffer."""

        expected = width * height * CHANNELS
        if len(data) != expected:
            raise ValueError(f"Buffer holds {len(data)} bytes, expected {expected}")
        array = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, CHANNELS).copy()
        return cls(width=width, height=height, pixels=array)

    @classmethod
    def from_image(cls, image: Image.Image) -> "Frame":
        """Build a frame from a Pillow image in any mode."""

        return cls.from_array(np.asarray(image.convert("RGBA")))

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def to_image(self) -> Image.Image:
        """Return the frame as an RGBA Pillow image."""

        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def tobytes(self) -> bytes:
        """Return the flat interleaved RGBA buffer."""

        return self.pixels.tobytes()


def scale_zone(zone: Zone, from_size: tuple[float, float], to_size: tuple[float, float]) -> Zone:
    """Map a rectangle between coordinate spaces, scaling each axis independently."""

    from_width, from_height = from_size
    to_width, to_height = to_size
    if from_width <= 0 or from_height <= 0:
        raise ValueError(f"Cannot scale from an empty coordinate space {from_size}")
    scale_x = to_width / from_width
    scale_y = to_height / from_height
    return Zone(
        x=zone.x * scale_x,
        y=zone.y * scale_y,
        width=zone.width * scale_x,
        height=zone.height * scale_y,
    )


def zone_from_drag(
    start: tuple[float, float],
    end: tuple[float, float],
    display_size: tuple[float, float],
    source_size: tuple[int, int],
    min_size: float = MIN_ZONE_SIZE,
) -> Zone | None:
    """Turn a display-space drag into a source-space zone.

    The drag may run in any direction. Drags narrower or shorter than
    ``min_size`` display pixels are not selections and return ``None``.
    """

    x0, x1 = sorted((start[0], end[0]))
    y0, y1 = sorted((start[1], end[1]))
    display_width, display_height = display_size
    x0, x1 = max(x0, 0.0), min(x1, display_width)
    y0, y1 = max(y0, 0.0), min(y1, display_height)
    if x1 - x0 < min_size or y1 - y0 < min_size:
        return None

    scaled = scale_zone(Zone(x0, y0, x1 - x0, y1 - y0), display_size, source_size)
    zone = Zone(
        x=int(round(scaled.x)),
        y=int(round(scaled.y)),
        width=int(round(scaled.width)),
        height=int(round(scaled.height)),
    )
    if zone.width <= 0 or zone.height <= 0:
        return None
    return zone
