"""Ordered event log backing the seekable timeline."""

from __future__ import annotations

from typing import Iterable

from vision.detections import MovementEvent


def format_time(seconds: float) -> str:
    """Format a position as ``MM:SS``."""

    seconds = max(0.0, float(seconds))
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"


def marker_position(event: MovementEvent, duration: float) -> float:
    """Return where ``event`` sits along the timeline, as a percentage."""

    if duration <= 0:
        return 0.0
    return min(100.0, max(0.0, event.timestamp / duration * 100.0))


def time_at_fraction(fraction: float, duration: float) -> float:
    """Map a click position along the timeline (0..1) to a playback time."""

    fraction = max(0.0, min(1.0, float(fraction)))
    return fraction * max(0.0, duration)


class EventTimeline:
    """Append-ordered list of movement events."""

    def __init__(self, events: Iterable[MovementEvent] | None = None) -> None:
        self._events: list[MovementEvent] = list(events or [])

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    @property
    def events(self) -> list[MovementEvent]:
        return list(self._events)

    def append(self, event: MovementEvent) -> None:
        self._events.append(event)

    def has_event_near(self, timestamp: float, window_s: float) -> bool:
        """Return whether any event lies strictly within ``window_s`` of ``timestamp``."""

        return any(abs(event.timestamp - timestamp) < window_s for event in self._events)

    def append_deduplicated(self, event: MovementEvent, window_s: float = 0.5) -> bool:
        """Append unless another event is closer than ``window_s``; report whether appended."""

        if self.has_event_near(event.timestamp, window_s):
            return False
        self._events.append(event)
        return True

    def replace(self, events: Iterable[MovementEvent]) -> None:
        self._events = list(events)

    def clear(self) -> None:
        self._events.clear()

    def event_at(self, time_s: float, window_s: float = 0.5) -> MovementEvent | None:
        """Return the first event whose ``[timestamp, timestamp + window_s]`` covers ``time_s``."""

        for event in self._events:
            if event.timestamp <= time_s <= event.timestamp + window_s:
                return event
        return None

    def distinct_labels(self) -> list[str]:
        """Return object labels seen across all events, in first-seen order."""

        seen: dict[str, None] = {}
        for event in self._events:
            for label in event.labels:
                seen.setdefault(label, None)
        return list(seen)

    def marker_positions(self, duration: float) -> list[float]:
        """Return each event's position along the timeline as a percentage."""

        return [marker_position(event, duration) for event in self._events]
