"""Error types raised by detection sessions and detector handles."""

from __future__ import annotations


class ZoneWatchError(RuntimeError):
    """Base class for ZoneWatch failures."""


class PreconditionError(ZoneWatchError):
    """An operation was requested before its inputs were ready."""


class DetectionModeError(PreconditionError):
    """A detection mode transition is not allowed from the current mode."""


class ResourceUnavailableError(ZoneWatchError):
    """A shared resource (raster surface, video decoder) could not be acquired."""


class ModelLoadError(ZoneWatchError):
    """The external object detection model failed to initialize."""


class InferenceError(ZoneWatchError):
    """The external object detection model failed on a single frame."""
