"""Video sources and frame sampling."""

from media.opencv_video import OpenCvVideoSource, list_video_files
from media.sampler import FrameSampler, RasterSurface
from media.video_hal import PlaybackClock, SyntheticVideoSource, VideoSource

__all__ = [
    "FrameSampler",
    "OpenCvVideoSource",
    "PlaybackClock",
    "RasterSurface",
    "SyntheticVideoSource",
    "VideoSource",
    "list_video_files",
]
