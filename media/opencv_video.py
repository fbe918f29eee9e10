"""Video file source backed by OpenCV decoding."""

from __future__ import annotations

import asyncio
from pathlib import Path
import threading

import cv2
import numpy as np

from core.errors import ResourceUnavailableError
from core.logging import logger
from media.video_hal import Clock, PlaybackClock

FALLBACK_FPS = 30.0
MAX_GRAB_AHEAD = 90  # Decode forward instead of seeking for short jumps
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v"}


class OpenCvVideoSource:
    """Decode a video file and expose it as a :class:`~media.video_hal.VideoSource`."""

    def __init__(self, video_path: str | Path, clock: Clock | None = None) -> None:
        self.path = Path(video_path)
        self._lock = threading.Lock()
        self._cap = cv2.VideoCapture(str(self.path))
        if not self._cap.isOpened():
            raise ResourceUnavailableError(f"Could not open video {self.path}")

        fps = self._cap.get(cv2.CAP_PROP_FPS)
        self.fps = fps if fps and fps > 0 else FALLBACK_FPS
        self.frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.duration = self.frame_count / self.fps if self.frame_count > 0 else 0.0

        self._playback = PlaybackClock(self.duration, clock=clock)
        self._frame_index: int | None = None
        self._frame_rgba: np.ndarray | None = None

        logger.info(
            "[VIDEO] Opened %s (%dx%d, %.1f fps, %.1fs)",
            self.path.name,
            self.width,
            self.height,
            self.fps,
            self.duration,
        )

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
        target = max(0.0, min(self.duration, float(time_s)))
        await asyncio.to_thread(self._decode_at, target)
        self._playback.set_position(target)

    def render(self, surface: np.ndarray) -> None:
        """Copy the frame at the playback position into ``surface``.

        Decoding happens on the calling thread. After :meth:`seek` the frame is
        already cached, so the batch scan never decodes here. During playback
        the live loop calls this on the event loop, and a forward step of up to
        ``MAX_GRAB_AHEAD`` frames is grabbed inline.
        """

        surface[...] = self._decode_at(self.current_time)

    def close(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
            self._frame_rgba = None
            self._frame_index = None

    def _index_for(self, time_s: float) -> int:
        index = int(time_s * self.fps + 1e-9)
        if self.frame_count > 0:
            index = min(index, self.frame_count - 1)
        return max(index, 0)

    def _decode_at(self, time_s: float) -> np.ndarray:
        index = self._index_for(time_s)
        with self._lock:
            if self._cap is None:
                raise ResourceUnavailableError(f"Video {self.path} is closed")
            if self._frame_index == index and self._frame_rgba is not None:
                return self._frame_rgba

            gap = index - self._frame_index if self._frame_index is not None else -1
            if 0 < gap <= MAX_GRAB_AHEAD:
                for _ in range(gap - 1):
                    self._cap.grab()
            else:
                self._cap.set(cv2.CAP_PROP_POS_FRAMES, index)

            ret, frame = self._cap.read()
            if not ret:
                if self._frame_rgba is not None:
                    self._frame_index = None
                    logger.warning("[VIDEO] Could not decode frame %d; keeping previous frame", index)
                    return self._frame_rgba
                raise ResourceUnavailableError(f"Could not decode frame {index} of {self.path}")

            self._frame_rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
            self._frame_index = index
            return self._frame_rgba


def list_video_files(directory: str | Path) -> list[Path]:
    """Return the video files directly inside ``directory``, sorted by name."""

    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(
        path for path in root.iterdir() if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS
    )
