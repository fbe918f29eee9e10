"""Thin video-source HAL used by the detection loops."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import time
from typing import Callable, Protocol, Sequence

import numpy as np

Clock = Callable[[], float]


class VideoSource(Protocol):
    """Playback surface the detection loops sample from.

    Positions are in seconds. ``seek`` resolves only once the frame at the new
    position is ready to render; ``render`` draws the currently shown frame
    into an ``(height, width, 4)`` RGBA buffer.
    """

    width: int
    height: int
    duration: float

    @property
    def current_time(self) -> float:
        """Return the playback position in seconds."""

    @property
    def is_playing(self) -> bool:
        """Return whether playback is advancing."""

    def play(self) -> None:
        """Start or resume playback."""

    def pause(self) -> None:
        """Pause playback at the current position."""

    async def seek(self, time_s: float) -> None:
        """Move to ``time_s`` and return once the frame there is decoded."""

    def render(self, surface: np.ndarray) -> None:
        """Draw the current frame into ``surface``."""


class PlaybackClock:
    """Playback position that advances with a monotonic clock while playing."""

    def __init__(self, duration: float, clock: Clock | None = None, rate: float = 1.0) -> None:
        self.duration = max(0.0, float(duration))
        self.rate = rate
        self._clock = clock or time.monotonic
        self._position = 0.0
        self._started_at: float | None = None

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    @property
    def position(self) -> float:
        if self._started_at is None:
            return self._position
        elapsed = (self._clock() - self._started_at) * self.rate
        return min(self.duration, self._position + elapsed)

    def play(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is not None:
            self._position = self.position
            self._started_at = None

    def set_position(self, time_s: float) -> float:
        self._position = max(0.0, min(self.duration, float(time_s)))
        if self._started_at is not None:
            self._started_at = self._clock()
        return self._position


FrameProvider = Callable[[float], np.ndarray]


@dataclass
class SyntheticVideoSource:
    """In-memory video for tests and offline diagnostics.

    ``frames`` is either a sequence of RGBA arrays shown at ``fps`` or a
    callable mapping a time in seconds to an RGBA array.
    """

    frames: Sequence[np.ndarray] | FrameProvider
    width: int
    height: int
    duration: float
    fps: float = 30.0
    clock: Clock | None = None
    seek_delay_s: float = 0.0
    seeks: list[float] = field(default_factory=list)
    render_times: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._playback = PlaybackClock(self.duration, clock=self.clock)

    @property
    def current_time(self) -> float:
        return self._playback.position

    @property
    def is_playing(self) -> bool:
        return self._playback.is_playing

    def play(self) -> None:
        self._playback.play()

    def pause(self) -> None:
        self._playback.pause()

    async def seek(self, time_s: float) -> None:
        self.seeks.append(float(time_s))
        await asyncio.sleep(self.seek_delay_s)
        self._playback.set_position(time_s)

    def frame_at(self, time_s: float) -> np.ndarray:
        if callable(self.frames):
            return np.asarray(self.frames(time_s), dtype=np.uint8)
        index = int(time_s * self.fps + 1e-9)
        index = max(0, min(index, len(self.frames) - 1))
        return np.asarray(self.frames[index], dtype=np.uint8)

    def render(self, surface: np.ndarray) -> None:
        time_s = self.current_time
        self.render_times.append(time_s)
        surface[...] = self.frame_at(time_s)
