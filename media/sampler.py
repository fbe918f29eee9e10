"""Off-screen raster surface and the frame sampler that snapshots onto it."""

from __future__ import annotations

import numpy as np

from core.errors import ResourceUnavailableError
from core.logging import logger
from media.video_hal import VideoSource
from vision.frames import CHANNELS, Frame


class RasterSurface:
    """Reusable RGBA buffer with at most one owner at a time."""

    def __init__(self, width: int, height: int) -> None:
        if int(width) <= 0 or int(height) <= 0:
            raise ResourceUnavailableError(
                f"Raster surface could not be created for a {width}x{height} video"
            )
        self.width = int(width)
        self.height = int(height)
        self._buffer = np.zeros((self.height, self.width, CHANNELS), dtype=np.uint8)
        self._owner: str | None = None

    @property
    def owner(self) -> str | None:
        return self._owner

    @property
    def buffer(self) -> np.ndarray:
        return self._buffer

    def claim(self, owner: str) -> None:
        if self._owner is not None and self._owner != owner:
            raise ResourceUnavailableError(
                f"Raster surface is in use by {self._owner}; cannot hand it to {owner}"
            )
        self._owner = owner

    def release(self, owner: str) -> None:
        if self._owner == owner:
            self._owner = None

    def snapshot(self) -> Frame:
        return Frame(width=self.width, height=self.height, pixels=self._buffer.copy())


class FrameSampler:
    """Render the video's current frame onto the shared surface and copy it out."""

    def __init__(self, source: VideoSource, surface: RasterSurface | None = None) -> None:
        self.source = source
        self.surface = surface or RasterSurface(source.width, source.height)
        self.samples_taken = 0

    def sample(self, owner: str) -> Frame:
        if self.surface.owner != owner:
            raise ResourceUnavailableError(
                f"{owner} sampled without owning the raster surface (owner={self.surface.owner})"
            )
        self.source.render(self.surface.buffer)
        self.samples_taken += 1
        frame = self.surface.snapshot()
        logger.debug("[VIDEO] Sampled frame %d for %s", self.samples_taken, owner)
        return frame
